"""
Local filesystem storage for snapshots.

Directory structure:
    {base_path}/{snapshot_name}/
        manifest.yaml
        cluster/
            namespace-prod.yaml
            clusterrole-reader.yaml
        {namespace}/
            {kind}-{name}.yaml

With compression enabled the directory is packed into
``{base_path}/{snapshot_name}.tar.gz`` and then removed.
"""

import logging
import shutil
import tempfile
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence, Set, Tuple

from ..core.cancellation import CancellationToken
from ..core.exceptions import CancellationError, StorageError
from ..core.models import ResourceRecord
from .manifest import FORMAT_VERSION, MANIFEST_FILE_NAME, SnapshotManifest, SnapshotMetadata
from .pack import SnapshotPacker, SnapshotUnpacker, archive_stem, is_archive

logger = logging.getLogger(__name__)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def record_relative_path(record: ResourceRecord) -> str:
    """Relative location of a record inside a snapshot."""
    return f"{record.scope_dir}/{record.kind.lower()}-{record.name}.yaml"


def _resolve_inside(root: Path, relative_path: str) -> Path:
    """Join a manifest path onto the snapshot root, refusing to escape it."""
    root = root.resolve()
    target = (root / relative_path).resolve()
    if target != root and root not in target.parents:
        raise StorageError(f"record path escapes snapshot directory: {relative_path}")
    return target


class SnapshotStore:
    """
    Saves, loads, lists and deletes snapshots under a base directory.
    """

    def __init__(self, base_path):
        """
        Args:
            base_path: Directory holding all snapshots
        """
        self.base_path = Path(base_path)

    def resolve_path(self, name: str) -> Path:
        """Return the directory path a snapshot with this name is written to."""
        return self.base_path / name

    def locate(self, path_or_name) -> Path:
        """
        Find an existing snapshot by path or by name under the base path.

        Raises:
            StorageError if nothing matches
        """
        candidates = [
            Path(path_or_name),
            self.base_path / str(path_or_name),
            self.base_path / f"{path_or_name}.tar.gz",
        ]
        for candidate in candidates:
            if candidate.exists():
                return candidate
        raise StorageError(f"snapshot not found: {path_or_name}")

    # ------------------------------------------------------------------
    # save
    # ------------------------------------------------------------------

    def save(
        self,
        metadata: SnapshotMetadata,
        records: Sequence[ResourceRecord],
        cancel_token: Optional[CancellationToken] = None,
    ) -> Tuple[SnapshotMetadata, List[ResourceRecord]]:
        """
        Persist a snapshot.

        Args:
            metadata: Snapshot metadata; counts, size and path are filled in
            records: Records to write, content written unchanged
            cancel_token: Checked between record writes

        Returns:
            Tuple of (final metadata, records with relative_path assigned)

        Raises:
            StorageError on any filesystem or archive failure
            CancellationError if cancelled mid-write
        """
        snapshot_dir = self.resolve_path(metadata.name)
        archive_path = snapshot_dir.with_name(snapshot_dir.name + ".tar.gz")
        if snapshot_dir.exists() or archive_path.exists():
            raise StorageError(f"snapshot already exists: {metadata.name}")

        logger.info(f"Writing snapshot {metadata.name} ({len(records)} resources) to {snapshot_dir}")

        try:
            written = self._write_records(snapshot_dir, records, cancel_token)

            final = replace(
                metadata,
                format_version=FORMAT_VERSION,
                namespaces=sorted(metadata.namespaces),
                kinds=sorted(metadata.kinds),
                total_resources=len(written),
                size_bytes=sum(len(r.content) for r in written),
                path=str(snapshot_dir),
            )
            manifest = SnapshotManifest(metadata=final, records=written)
            manifest.validate()
            manifest.save(snapshot_dir / MANIFEST_FILE_NAME)

            if final.compressed:
                archive = SnapshotPacker(snapshot_dir).pack(archive_path)
                shutil.rmtree(snapshot_dir)
                final = replace(final, path=str(archive))
        except (StorageError, CancellationError):
            self._discard(snapshot_dir, archive_path)
            raise
        except OSError as e:
            self._discard(snapshot_dir, archive_path)
            raise StorageError(f"failed to write snapshot {metadata.name}: {e}") from e

        logger.info(f"Snapshot {final.name} saved to {final.path} ({final.size_bytes} bytes)")
        return final, written

    def _write_records(
        self,
        snapshot_dir: Path,
        records: Sequence[ResourceRecord],
        cancel_token: Optional[CancellationToken],
    ) -> List[ResourceRecord]:
        created_dirs: Set[Path] = set()

        def ensure_dir(directory: Path) -> None:
            if directory not in created_dirs:
                directory.mkdir(parents=True, exist_ok=True)
                created_dirs.add(directory)

        ensure_dir(snapshot_dir)

        written = []
        seen_paths = set()
        for record in records:
            if cancel_token is not None and cancel_token.is_cancelled():
                raise CancellationError(
                    f"snapshot write cancelled after {len(written)} records",
                    partial_result=written,
                )

            relative_path = record_relative_path(record)
            if relative_path in seen_paths:
                raise StorageError(f"duplicate record in snapshot: {record.display_name()}")
            seen_paths.add(relative_path)

            target = snapshot_dir / relative_path
            ensure_dir(target.parent)
            target.write_bytes(record.content)
            written.append(replace(record, relative_path=relative_path))

        return written

    def _discard(self, snapshot_dir: Path, archive_path: Path) -> None:
        """Remove a partially written snapshot directory and its archive."""
        if snapshot_dir.exists():
            logger.debug(f"Removing incomplete snapshot directory {snapshot_dir}")
            shutil.rmtree(snapshot_dir, ignore_errors=True)
        if archive_path.exists():
            logger.debug(f"Removing incomplete snapshot archive {archive_path}")
            archive_path.unlink()

    # ------------------------------------------------------------------
    # load
    # ------------------------------------------------------------------

    def load(
        self,
        path,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Tuple[SnapshotManifest, List[ResourceRecord]]:
        """
        Load a snapshot from a directory or archive.

        Archives are extracted into a temporary directory that is removed on
        every exit path.

        Returns:
            Tuple of (manifest, records with content)

        Raises:
            StorageError if the snapshot is missing, malformed or unreadable
            CancellationError if cancelled between record reads
        """
        snapshot_path = self.locate(path)

        if is_archive(snapshot_path):
            with tempfile.TemporaryDirectory(prefix="clustersnap-extract-") as temp_dir:
                extracted = SnapshotUnpacker(snapshot_path).unpack(Path(temp_dir))
                return self._load_directory(extracted, cancel_token)

        if not snapshot_path.is_dir():
            raise StorageError(f"not a snapshot directory or archive: {snapshot_path}")
        return self._load_directory(snapshot_path, cancel_token)

    def _load_directory(
        self,
        snapshot_dir: Path,
        cancel_token: Optional[CancellationToken],
    ) -> Tuple[SnapshotManifest, List[ResourceRecord]]:
        manifest = SnapshotManifest.load(snapshot_dir / MANIFEST_FILE_NAME)
        manifest.validate()

        records = []
        for entry in manifest.records:
            if cancel_token is not None and cancel_token.is_cancelled():
                raise CancellationError(
                    f"snapshot load cancelled after {len(records)} records",
                    partial_result=records,
                )

            record_path = _resolve_inside(snapshot_dir, entry.relative_path)
            try:
                content = record_path.read_bytes()
            except OSError as e:
                raise StorageError(f"failed to read resource file {entry.relative_path}: {e}") from e
            records.append(replace(entry, content=content))

        logger.debug(f"Loaded {len(records)} records from {snapshot_dir}")
        return manifest, records

    # ------------------------------------------------------------------
    # list / delete
    # ------------------------------------------------------------------

    def list(self) -> List[SnapshotMetadata]:
        """
        List snapshots under the base path, newest first.

        Entries whose manifest cannot be read are skipped.
        """
        if not self.base_path.exists():
            return []

        snapshots = []
        for entry in self.base_path.iterdir():
            try:
                if entry.is_dir():
                    metadata = self._metadata_from_directory(entry)
                elif is_archive(entry):
                    metadata = self._metadata_from_archive(entry)
                else:
                    continue
            except (StorageError, OSError) as e:
                logger.debug(f"Skipping unreadable snapshot entry {entry}: {e}")
                continue
            snapshots.append(metadata)

        snapshots.sort(key=lambda m: m.timestamp or _OLDEST, reverse=True)
        return snapshots

    def _metadata_from_directory(self, snapshot_dir: Path) -> SnapshotMetadata:
        manifest = SnapshotManifest.load(snapshot_dir / MANIFEST_FILE_NAME)
        return replace(manifest.metadata, path=str(snapshot_dir))

    def _metadata_from_archive(self, archive_path: Path) -> SnapshotMetadata:
        content = SnapshotUnpacker(archive_path).read_member(MANIFEST_FILE_NAME)
        manifest = SnapshotManifest.parse(content)
        return replace(
            manifest.metadata,
            path=str(archive_path),
            size_bytes=archive_path.stat().st_size,
            compressed=True,
        )

    def latest(self) -> Optional[SnapshotMetadata]:
        """Return the newest snapshot, or None if there are none."""
        snapshots = self.list()
        return snapshots[0] if snapshots else None

    def delete(self, path) -> None:
        """
        Delete a snapshot directory or archive.

        Raises:
            StorageError if the path does not exist or cannot be removed
        """
        snapshot_path = Path(path)
        if not snapshot_path.exists():
            raise StorageError(f"snapshot not found: {path}")

        try:
            if snapshot_path.is_dir():
                shutil.rmtree(snapshot_path)
            else:
                snapshot_path.unlink()
        except OSError as e:
            raise StorageError(f"failed to delete snapshot {path}: {e}") from e

        logger.info(f"Deleted snapshot {archive_stem(snapshot_path)} at {snapshot_path}")
