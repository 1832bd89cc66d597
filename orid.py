#!/usr/bin/env python3

import re
from dataclasses import dataclass, field, replace
from typing import List, Optional

from errors import InvalidIdentifierError


SCHEME = "orid"
VERSION = 1
FS_SERVICE = "fs"

# orid:1:<provider>:<custom1>:<custom2>:<accountId>:<service>:<resource section>
FIELD_COUNT = 8

RESOURCE_SECTION_REGEX = re.compile(r"^([^/:]*)(?:[/:](.*))?$", re.DOTALL)


def normalize_rider(rider: Optional[str]) -> Optional[str]:
    """Collapse a rider into its canonical '/'-joined form.

    Empty and '.' segments are dropped, so an empty rider becomes None.
    A leading slash or a '..' segment is rejected.
    """
    if rider is None:
        return None
    if rider.startswith("/"):
        raise InvalidIdentifierError(f"Resource rider '{rider}' must not start with a slash")

    segments: List[str] = []
    for segment in rider.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            raise InvalidIdentifierError(
                f"Resource rider '{rider}' contains directory traversal sequences"
            )
        segments.append(segment)

    return "/".join(segments) or None


def _check_account_id(account_id: Optional[str]):
    """An account id names exactly one directory below the upload root"""
    if account_id and ("/" in account_id or account_id in (".", "..")):
        raise InvalidIdentifierError(f"Invalid account id '{account_id}'")


@dataclass(frozen=True)
class Orid:
    """A v1 ORID addressing a container, directory or file in an account"""

    provider: str
    account_id: str
    resource_id: str
    service: str = FS_SERVICE
    resource_rider: Optional[str] = None
    custom1: str = field(default="", compare=False)
    custom2: str = field(default="", compare=False)
    version: int = field(default=VERSION, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "resource_rider", normalize_rider(self.resource_rider))

    def with_rider(self, rider: Optional[str]) -> "Orid":
        """Same resource, rider replaced"""
        return replace(self, resource_rider=rider)

    def child(self, name: str) -> "Orid":
        """Same resource, name appended to the rider"""
        if self.resource_rider:
            return self.with_rider(f"{self.resource_rider}/{name}")
        return self.with_rider(name)


class ORID:
    @staticmethod
    def parse(orid: str) -> Orid:
        """Decode string representation to an Orid"""
        if not orid or not isinstance(orid, str):
            raise InvalidIdentifierError("Empty ORID")

        parts = orid.split(":", FIELD_COUNT - 1)
        if len(parts) < FIELD_COUNT:
            raise InvalidIdentifierError(f"Invalid ORID format: {orid}")

        scheme, version, provider, custom1, custom2, account_id, service, resource = parts

        if scheme != SCHEME:
            raise InvalidIdentifierError(f"Unknown ORID scheme '{scheme}'")
        if version != str(VERSION):
            raise InvalidIdentifierError(f"Unsupported ORID version '{version}'")
        if not service:
            raise InvalidIdentifierError("ORID is missing the service")
        _check_account_id(account_id)

        match = RESOURCE_SECTION_REGEX.match(resource)
        resource_id, resource_rider = match.group(1), match.group(2)
        if not resource_id:
            raise InvalidIdentifierError("ORID is missing the resource id")
        if resource_id in (".", ".."):
            raise InvalidIdentifierError(f"Invalid resource id '{resource_id}'")

        return Orid(
            provider=provider,
            custom1=custom1,
            custom2=custom2,
            account_id=account_id,
            service=service,
            resource_id=resource_id,
            resource_rider=resource_rider,
        )

    @staticmethod
    def generate(orid: Orid) -> str:
        """Encode an Orid to string representation. Riders always use '/'."""
        fields = [orid.provider, orid.custom1, orid.custom2, orid.account_id, orid.service]
        if any(":" in (value or "") for value in fields):
            raise InvalidIdentifierError("ORID fields must not contain ':'")
        if not orid.service:
            raise InvalidIdentifierError("ORID is missing the service")
        _check_account_id(orid.account_id)
        if (
            not orid.resource_id
            or orid.resource_id in (".", "..")
            or "/" in orid.resource_id
            or ":" in orid.resource_id
        ):
            raise InvalidIdentifierError(f"Invalid resource id '{orid.resource_id}'")

        value = ":".join([SCHEME, str(VERSION)] + [value or "" for value in fields])
        value += f":{orid.resource_id}"
        if orid.resource_rider:
            value += f"/{orid.resource_rider}"
        return value

    @staticmethod
    def is_valid(orid: str) -> bool:
        """Non-throwing probe for input that may not be an ORID at all"""
        try:
            ORID.parse(orid)
            return True
        except InvalidIdentifierError:
            return False
