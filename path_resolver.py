#!/usr/bin/env python3

import os
import logging
from typing import Optional

from container_permissions import ContainerPermissionsConfig
from errors import PathEscapeError
from models import ResolvedPath
from orid import Orid

logger = logging.getLogger(__name__)


class PathResolver:
    """Map ORIDs onto paths below the upload root, one subtree per account"""

    def __init__(
        self,
        upload_root: str,
        permissions: Optional[ContainerPermissionsConfig] = None,
    ):
        if not upload_root:
            raise ValueError("upload_root is required")
        self.upload_root = os.path.abspath(upload_root)
        self.permissions = permissions

    def _confine(self, path: str, base_directory: str, description: str) -> str:
        """
        Ensure path is strictly inside base_directory.

        Args:
            path: The path to check
            base_directory: The directory that must contain the path
            description: What the path represents, for error messages

        Returns:
            str: The normalized absolute path

        Raises:
            PathEscapeError: If the path is the base directory or escapes it
        """
        normalized_path = os.path.abspath(path)
        base_absolute = os.path.abspath(base_directory)

        if normalized_path == base_absolute:
            raise PathEscapeError(f"{description} resolves to its base directory")
        if not normalized_path.startswith(base_absolute + os.sep):
            raise PathEscapeError(f"{description} attempts to escape base directory")

        return normalized_path

    def resolve_account_root(self, account_id: str) -> str:
        """Get the directory holding every container of an account"""
        if not account_id:
            raise PathEscapeError("Account id is required")
        if "/" in account_id or os.sep in account_id or account_id in (".", ".."):
            raise PathEscapeError(f"Account '{account_id}' is not a single path segment")

        account_root = self._confine(
            os.path.join(self.upload_root, account_id),
            self.upload_root,
            f"Account '{account_id}'",
        )
        if os.path.dirname(account_root) != self.upload_root:
            raise PathEscapeError(f"Account '{account_id}' attempts to escape base directory")
        return account_root

    def resolve(self, orid: Orid) -> ResolvedPath:
        """Compute the on-disk path and capabilities for an ORID"""
        account_root = self.resolve_account_root(orid.account_id)

        parts = [account_root, orid.resource_id]
        if orid.resource_rider:
            parts.append(orid.resource_rider)

        path = self._confine(
            os.path.join(*parts),
            account_root,
            f"Resource '{orid.resource_id}'",
        )

        resolved = ResolvedPath(path=path)
        overrides = self.permissions.get(orid.resource_id) if self.permissions else None
        if overrides:
            resolved.read = overrides.read
            resolved.delete = overrides.delete
            resolved.write_nested = overrides.write_nested
            resolved.delete_nested = overrides.delete_nested
            resolved.extension_whitelist = list(overrides.extension_whitelist)
            resolved.extension_blacklist = list(overrides.extension_blacklist)

        logger.debug(f"Resolved {orid!r} to {path}")
        return resolved
