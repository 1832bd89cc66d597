#!/usr/bin/env python3

import json
import os
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Union


class HealthStatus(Enum):
    OK = "OK"


class EntryType(Enum):
    """Classification of a directory entry as seen by list operations"""
    FILE = "file"
    DIRECTORY = "directory"
    OTHER = "other"


@dataclass
class ResolvedPath:
    """On-disk location of an ORID together with the capabilities it grants"""
    path: str
    read: bool = True
    delete: bool = True
    write_nested: bool = True
    delete_nested: bool = True
    extension_whitelist: List[str] = field(default_factory=list)
    extension_blacklist: List[str] = field(default_factory=list)

    def allows_extension(self, file_name: str) -> bool:
        """Check a file name against the whitelist and blacklist"""
        extension = os.path.splitext(file_name)[1].lower()
        if self.extension_whitelist and extension not in self.extension_whitelist:
            return False
        if extension and extension in self.extension_blacklist:
            return False
        return True


@dataclass
class DiskLocation:
    path: str
    filename: str


@dataclass
class DirectoryEntry:
    name: str
    entry_type: EntryType

    @property
    def is_directory(self) -> bool:
        return self.entry_type == EntryType.DIRECTORY

    @property
    def is_file(self) -> bool:
        return self.entry_type == EntryType.FILE


@dataclass
class OridListItem:
    name: str
    orid: str

    def to_dict(self) -> Dict[str, str]:
        return {"orid": self.orid, "name": self.name}


@dataclass
class ContentsListing:
    directories: List[OridListItem] = field(default_factory=list)
    files: List[OridListItem] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List[Dict[str, str]]]:
        return asdict(self)


@dataclass
class TextBody:
    """Terraform payload that is already in its canonical text form"""
    text: str


@dataclass
class StructuredBody:
    """Terraform payload that still needs to be JSON encoded"""
    value: Any


TerraformBody = Union[TextBody, StructuredBody]


def serialize_terraform_body(body: TerraformBody) -> str:
    """Render a Terraform payload to the exact text that gets persisted.

    Structured values are encoded compactly so that {"a": 1} is stored as
    {"a":1}, which is what Terraform clients read back byte for byte.
    """
    if isinstance(body, TextBody):
        return body.text
    if isinstance(body, StructuredBody):
        return json.dumps(body.value, separators=(",", ":"), ensure_ascii=False)
    raise TypeError(f"Unsupported terraform body type {type(body)}")
