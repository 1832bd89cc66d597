#!/usr/bin/env python3

import os
import logging
from typing import List

from disk_repo import DiskRepo
from errors import (
    InvalidIdentifierError,
    PermissionDeniedError,
    ResourceExistsError,
    ResourceNotFoundError,
    TerraformLockExistsError,
)
from models import (
    ContentsListing,
    DiskLocation,
    OridListItem,
    TerraformBody,
    serialize_terraform_body,
)
from orid import ORID, Orid, FS_SERVICE
from path_resolver import PathResolver

logger = logging.getLogger(__name__)

STATE_FILE = "terraform.tfstate"
LOCK_FILE = "terraform.lock"


class Logic:
    """Resource operations exposed to the transport layer"""

    def __init__(self, path_resolver: PathResolver, disk_repo: DiskRepo, provider_key: str):
        self.path_resolver = path_resolver
        self.disk_repo = disk_repo
        self.provider_key = provider_key

    def _state_file_path(self, orid: Orid) -> str:
        return self.path_resolver.resolve(orid.with_rider(STATE_FILE)).path

    def _lock_file_path(self, orid: Orid) -> str:
        return self.path_resolver.resolve(orid.with_rider(LOCK_FILE)).path

    # Containers, directories and files

    def create_container_or_directory(self, orid: Orid):
        resolved = self.path_resolver.resolve(orid)
        if orid.resource_rider and not resolved.write_nested:
            raise PermissionDeniedError(f"Cannot create directories in '{orid.resource_id}'")

        if self.disk_repo.exists(resolved.path):
            raise ResourceExistsError()

        logger.debug(f"Creating directory {resolved.path} for {orid!r}")
        self.disk_repo.create_directory(resolved.path)

    def delete_file_or_directory(self, orid: Orid):
        resolved = self.path_resolver.resolve(orid)
        if not self.disk_repo.exists(resolved.path):
            raise ResourceNotFoundError()

        # Acting on the container itself or on something inside it
        if not orid.resource_rider and not resolved.delete:
            raise PermissionDeniedError(f"Container '{orid.resource_id}' cannot be deleted")
        if orid.resource_rider and not resolved.delete_nested:
            raise PermissionDeniedError(f"Cannot delete items in '{orid.resource_id}'")

        logger.debug(f"Deleting {resolved.path} for {orid!r}")
        self.disk_repo.delete(resolved.path)

    def save_file(self, orid: Orid, file_name: str, source_local_file: str) -> Orid:
        """Move an uploaded temp file below orid and return the new file's ORID.

        Existing files are overwritten without a conflict check.
        """
        if not file_name or file_name in (".", "..") or "/" in file_name:
            raise InvalidIdentifierError(f"Invalid file name '{file_name}'")

        new_file_orid = ORID.parse(ORID.generate(orid.child(file_name)))
        resolved = self.path_resolver.resolve(new_file_orid)

        if not resolved.write_nested:
            raise PermissionDeniedError(f"Cannot write files in '{orid.resource_id}'")
        if not resolved.allows_extension(file_name):
            raise PermissionDeniedError(f"File type of '{file_name}' is not allowed")

        logger.debug(f"Saving {source_local_file} to {resolved.path} for {new_file_orid!r}")
        self.disk_repo.move_file(resolved.path, source_local_file)
        return new_file_orid

    def get_internal_file_path(self, orid: Orid) -> DiskLocation:
        resolved = self.path_resolver.resolve(orid)
        if not resolved.read:
            raise PermissionDeniedError(f"Container '{orid.resource_id}' is not readable")
        return DiskLocation(
            path=os.path.dirname(resolved.path),
            filename=os.path.basename(resolved.path),
        )

    def get_containers(self, account_id: str) -> List[OridListItem]:
        """List the containers of an account; an unknown account has none"""
        account_root = self.path_resolver.resolve_account_root(account_id)
        if not self.disk_repo.exists(account_root):
            return []

        return [
            OridListItem(
                name=entry.name,
                orid=ORID.generate(
                    Orid(
                        provider=self.provider_key,
                        account_id=account_id,
                        service=FS_SERVICE,
                        resource_id=entry.name,
                    )
                ),
            )
            for entry in self.disk_repo.list_directory(account_root)
            if entry.is_directory
        ]

    def get_contents(self, orid: Orid) -> ContentsListing:
        resolved = self.path_resolver.resolve(orid)
        if not resolved.read:
            raise PermissionDeniedError(f"Container '{orid.resource_id}' is not readable")

        listing = ContentsListing()
        for entry in self.disk_repo.list_directory(resolved.path):
            item = OridListItem(name=entry.name, orid=ORID.generate(orid.child(entry.name)))
            if entry.is_directory:
                listing.directories.append(item)
            elif entry.is_file:
                listing.files.append(item)
        return listing

    # Terraform remote state

    def create_terraform_lock(self, orid: Orid, lock_info: str = ""):
        lock_path = self._lock_file_path(orid)
        try:
            self.disk_repo.create_file_exclusive(lock_path, lock_info)
        except FileExistsError:
            raise TerraformLockExistsError()
        logger.debug(f"Created terraform lock {lock_path}")

    def release_terraform_lock(self, orid: Orid):
        lock_path = self._lock_file_path(orid)
        if not self.disk_repo.exists(lock_path):
            raise ResourceNotFoundError()
        self.disk_repo.delete(lock_path)
        logger.debug(f"Released terraform lock {lock_path}")

    def remove_terraform_metadata(self, orid: Orid):
        """Delete state and lock files; either may already be gone"""
        for path in (self._state_file_path(orid), self._lock_file_path(orid)):
            if self.disk_repo.exists(path):
                self.disk_repo.delete(path)

    def save_terraform_state(self, orid: Orid, body: TerraformBody):
        payload = serialize_terraform_body(body)
        self.disk_repo.write_file(self._state_file_path(orid), payload)

    def get_terraform_state(self, orid: Orid) -> str:
        state_path = self._state_file_path(orid)
        if not self.disk_repo.exists(state_path):
            raise ResourceNotFoundError()
        return self.disk_repo.read_file(state_path).decode("utf-8")
