#!/usr/bin/env python3


class FileServiceError(Exception):
    """Base class for domain errors raised by the file service core"""

    default_message = "file service error"

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message)


class ResourceNotFoundError(FileServiceError):
    """The operation requires state that does not exist"""

    default_message = "resource not found"


class ResourceExistsError(FileServiceError):
    """The operation requires state to be absent but it is present"""

    default_message = "resource already exists"


class TerraformLockExistsError(FileServiceError):
    default_message = "lock file already exists"


class PermissionDeniedError(FileServiceError):
    """The container permissions do not allow the requested operation"""

    default_message = "operation not permitted on resource"


class InvalidIdentifierError(ValueError):
    """An ORID string or value does not follow the v1 grammar"""


class PathEscapeError(ValueError):
    """A resolved path would leave the account's storage subtree"""
