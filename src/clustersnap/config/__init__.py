"""
Configuration for clustersnap.
"""

from .config_loader import ClusterSnapConfig

__all__ = ["ClusterSnapConfig"]
