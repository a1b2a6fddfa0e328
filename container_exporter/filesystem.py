"""
Filesystem capacity sampling.

The base path is either the root path, sampled as a single filesystem, or a
directory whose immediate subdirectories are sampled one by one (typically
the mount points of data volumes).
"""

import logging
import os
from dataclasses import dataclass
from typing import List

from container_exporter.config import ROOT_PATH
from container_exporter.errors import FilesystemStatError, MountListError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FilesystemSample:
    """Space and inode capacity of one filesystem, in bytes and inodes."""
    free_bytes: int
    available_bytes: int
    size_bytes: int
    inodes_free: int
    inodes: int


def mount_points(base_path: str) -> List[str]:
    """
    Paths to sample for a base path.

    Raises:
        MountListError: if the base directory cannot be listed
    """
    if os.path.realpath(base_path) == ROOT_PATH:
        return [base_path]

    try:
        with os.scandir(base_path) as entries:
            paths = [entry.path for entry in entries if entry.is_dir()]
    except OSError as e:
        raise MountListError(str(e), operation='scandir', target=base_path) from e
    return sorted(paths)


def sample(path: str) -> FilesystemSample:
    """
    Stat one filesystem.

    Raises:
        FilesystemStatError: if statvfs fails
    """
    try:
        st = os.statvfs(path)
    except OSError as e:
        raise FilesystemStatError(str(e), operation='statvfs', target=path) from e

    block_size = st.f_frsize or st.f_bsize
    return FilesystemSample(
        free_bytes=st.f_bfree * block_size,
        available_bytes=st.f_bavail * block_size,
        size_bytes=st.f_blocks * block_size,
        inodes_free=st.f_ffree,
        inodes=st.f_files,
    )
