"""
Pack and unpack operations for snapshot archives.

A compressed snapshot is a gzipped tar of the snapshot directory with member
names relative to that directory (``manifest.yaml`` sits at the archive root).
"""

import logging
import os
import tarfile
from pathlib import Path, PurePosixPath
from typing import Optional

from ..core.exceptions import StorageError

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIXES = (".tar.gz", ".tgz")


def is_archive(path) -> bool:
    """Return True if the path names a compressed snapshot."""
    return str(path).endswith(ARCHIVE_SUFFIXES)


def archive_stem(path: Path) -> str:
    """Snapshot name of an archive path ('backup-1.tar.gz' -> 'backup-1')."""
    name = Path(path).name
    for suffix in ARCHIVE_SUFFIXES:
        if name.endswith(suffix):
            return name[: -len(suffix)]
    return name


def _check_member(member: tarfile.TarInfo) -> None:
    """Reject members that would land outside the extraction directory."""
    member_path = PurePosixPath(member.name)
    if member_path.is_absolute() or ".." in member_path.parts:
        raise StorageError(f"unsafe path in archive: {member.name}")
    if member.issym() or member.islnk():
        raise StorageError(f"links are not allowed in snapshot archives: {member.name}")


class SnapshotPacker:
    """
    Packs a snapshot directory into a tar.gz archive.
    """

    def __init__(self, dataset_dir: Path):
        """
        Initialize the packer.

        Args:
            dataset_dir: Path to the snapshot directory
        """
        self.dataset_dir = Path(dataset_dir)

        if not self.dataset_dir.is_dir():
            raise StorageError(f"Snapshot directory not found: {self.dataset_dir}")

    def pack(self, output_path: Optional[Path] = None) -> Path:
        """
        Pack the directory into an archive.

        Args:
            output_path: Archive path (default: '<dataset_dir>.tar.gz')

        Returns:
            Path to the created archive
        """
        if output_path is None:
            output_path = self.dataset_dir.with_name(self.dataset_dir.name + ".tar.gz")
        output_path = Path(output_path)

        logger.info(f"Packing snapshot {self.dataset_dir.name} to {output_path}")

        try:
            with tarfile.open(output_path, "w:gz") as tf:
                for file_path in sorted(self.dataset_dir.rglob("*")):
                    arcname = file_path.relative_to(self.dataset_dir).as_posix()
                    tf.add(file_path, arcname=arcname, recursive=False)
                    logger.debug(f"  Added: {arcname}")
        except (OSError, tarfile.TarError) as e:
            if output_path.exists():
                output_path.unlink()
            raise StorageError(f"failed to create archive {output_path}: {e}") from e

        logger.info(f"Created archive: {output_path} ({output_path.stat().st_size} bytes)")
        return output_path


class SnapshotUnpacker:
    """
    Unpacks a tar.gz snapshot archive.
    """

    def __init__(self, archive_path: Path):
        """
        Initialize the unpacker.

        Args:
            archive_path: Path to the archive file
        """
        self.archive_path = Path(archive_path)

        if not self.archive_path.is_file():
            raise StorageError(f"Archive not found: {self.archive_path}")

    def unpack(self, output_dir: Path) -> Path:
        """
        Unpack the archive into a directory.

        Every member is checked before anything is written.

        Args:
            output_dir: Directory to extract to

        Returns:
            The extraction directory
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        logger.debug(f"Unpacking {self.archive_path} to {output_dir}")

        try:
            with tarfile.open(self.archive_path, "r:gz") as tf:
                members = tf.getmembers()
                for member in members:
                    _check_member(member)
                for member in members:
                    target = output_dir / member.name
                    if member.isdir():
                        target.mkdir(parents=True, exist_ok=True)
                        continue
                    if not member.isfile():
                        continue
                    target.parent.mkdir(parents=True, exist_ok=True)
                    source = tf.extractfile(member)
                    with source, open(target, "wb") as out:
                        out.write(source.read())
        except (OSError, tarfile.TarError, EOFError) as e:
            raise StorageError(f"failed to extract archive {self.archive_path}: {e}") from e

        return output_dir

    def read_member(self, name: str) -> bytes:
        """
        Read a single member without extracting the archive.

        Raises:
            StorageError if the archive is unreadable or has no such member
        """
        try:
            with tarfile.open(self.archive_path, "r:gz") as tf:
                for member in tf:
                    if os.path.normpath(member.name) == name and member.isfile():
                        with tf.extractfile(member) as source:
                            return source.read()
        except (OSError, tarfile.TarError, EOFError) as e:
            raise StorageError(f"failed to read archive {self.archive_path}: {e}") from e

        raise StorageError(f"{name} not found in archive {self.archive_path}")
