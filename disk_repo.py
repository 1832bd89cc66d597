#!/usr/bin/env python3

import os
import shutil
import logging
import tempfile
from typing import List, Union

from errors import ResourceNotFoundError
from models import DirectoryEntry, EntryType

logger = logging.getLogger(__name__)

FileData = Union[str, bytes]

# Metadata directories some NAS appliances drop into every share
IGNORED_DIRECTORIES = ("#recycle", "@eaDir")


class DiskRepo:
    """Filesystem operations on already resolved paths"""

    def exists(self, path: str) -> bool:
        """Probe whether the path is accessible; never raises"""
        try:
            return os.access(path, os.F_OK)
        except (OSError, ValueError):
            return False

    def ensure_parent_directory(self, full_path: str):
        """Create parent directories if they don't exist"""
        parent_dir = os.path.dirname(full_path)
        if parent_dir and not os.path.exists(parent_dir):
            os.makedirs(parent_dir, exist_ok=True)

    def read_file(self, path: str) -> bytes:
        with open(path, "rb") as f:
            return f.read()

    def write_file(self, path: str, data: FileData):
        """Create or overwrite a file with text or binary content"""
        self.ensure_parent_directory(path)
        if isinstance(data, str):
            data = data.encode("utf-8")
        with open(path, "wb") as f:
            f.write(data)

    def create_file_exclusive(self, path: str, data: FileData):
        """Create a file that must not exist yet.

        Raises FileExistsError when it does; the check and the create are a
        single filesystem operation.
        """
        self.ensure_parent_directory(path)
        if isinstance(data, str):
            data = data.encode("utf-8")
        with open(path, "xb") as f:
            f.write(data)

    def move_file(self, path: str, source_local_file: str):
        """Copy a local (temporary) file into place.

        The copy lands in a sibling temp file first and is then renamed over
        the destination, so readers never observe a partial upload.
        """
        self.ensure_parent_directory(path)
        directory = os.path.dirname(path)
        fd, temp_path = tempfile.mkstemp(dir=directory, prefix=".upload-")
        os.close(fd)
        try:
            shutil.copyfile(source_local_file, temp_path)
            os.replace(temp_path, path)
        except BaseException:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

    def create_directory(self, path: str):
        """Create the directory and any missing ancestors"""
        os.makedirs(path, exist_ok=True)

    def delete(self, path: str):
        """Remove a file or a whole directory tree; missing paths are fine"""
        try:
            if os.path.isdir(path) and not os.path.islink(path):
                shutil.rmtree(path)
            else:
                os.remove(path)
        except FileNotFoundError:
            logger.debug(f"Nothing to delete at {path}")

    def list_directory(self, path: str) -> List[DirectoryEntry]:
        """List the immediate children of a directory, sorted by name"""
        try:
            with os.scandir(path) as iterator:
                entries = []
                for entry in iterator:
                    if entry.name in IGNORED_DIRECTORIES:
                        continue
                    if entry.is_dir():
                        entry_type = EntryType.DIRECTORY
                    elif entry.is_file():
                        entry_type = EntryType.FILE
                    else:
                        entry_type = EntryType.OTHER
                    entries.append(DirectoryEntry(name=entry.name, entry_type=entry_type))
        except (FileNotFoundError, NotADirectoryError, PermissionError) as e:
            logger.debug(f"Cannot list {path}: {e}")
            raise ResourceNotFoundError() from e

        return sorted(entries, key=lambda entry: entry.name)
