#!/usr/bin/env python3

import os
import logging
import tomllib
from typing import List, Dict, Optional, Any
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


def parse_for_truthy(value: Any) -> bool:
    """Accept real booleans as well as "true"/"false" strings"""
    if isinstance(value, bool):
        return value
    return str(value).lower() == "true"


def _normalize_extensions(extensions: Optional[List[str]]) -> List[str]:
    result = []
    for extension in extensions or []:
        extension = str(extension).strip().lower()
        if not extension:
            continue
        if not extension.startswith("."):
            extension = f".{extension}"
        result.append(extension)
    return result


@dataclass
class ContainerPermissions:
    """Capability overrides for a single container"""

    name: str
    read: bool = True
    delete: bool = True
    write_nested: bool = True
    delete_nested: bool = True
    extension_whitelist: List[str] = field(default_factory=list)
    extension_blacklist: List[str] = field(default_factory=list)

    def __post_init__(self):
        """Validate the configuration after initialization"""
        if not self.name:
            raise ValueError("name is required")
        if "/" in self.name or ":" in self.name:
            raise ValueError(f"Invalid container name: {self.name}")

        self.read = parse_for_truthy(self.read)
        self.delete = parse_for_truthy(self.delete)
        self.write_nested = parse_for_truthy(self.write_nested)
        self.delete_nested = parse_for_truthy(self.delete_nested)
        self.extension_whitelist = _normalize_extensions(self.extension_whitelist)
        self.extension_blacklist = _normalize_extensions(self.extension_blacklist)


class ContainerPermissionsConfig:
    """Per-container permission overrides loaded from a TOML file.

    Containers without an entry are fully permissive.
    """

    def __init__(self, config_file: Optional[str] = None):
        self.config_file = config_file
        self.containers: Dict[str, ContainerPermissions] = {}
        self._load_config()

    def _load_config(self):
        """Load container permissions from TOML configuration file"""
        self.containers = {}
        if not self.config_file:
            return

        config_path = Path(self.config_file)
        if not config_path.exists():
            logger.info(f"Container permissions file not found: {config_path}")
            return

        with open(config_path, "rb") as f:
            config_data = tomllib.load(f)

        entries = config_data.get("container", [])
        if not isinstance(entries, list):
            raise ValueError("container must be an array of tables in TOML config")

        for i, entry in enumerate(entries):
            try:
                permissions = ContainerPermissions(
                    name=entry["name"],
                    read=entry.get("read", True),
                    delete=entry.get("delete", True),
                    write_nested=entry.get("write_nested", True),
                    delete_nested=entry.get("delete_nested", True),
                    extension_whitelist=entry.get("extension_whitelist", []),
                    extension_blacklist=entry.get("extension_blacklist", []),
                )
            except KeyError as e:
                raise ValueError(f"Missing required field in container[{i}]: {e}")

            if permissions.name in self.containers:
                raise ValueError(f"Duplicate container[{i}]: name={permissions.name}")
            self.containers[permissions.name] = permissions
            logger.info(
                f"Loaded container permissions: name={permissions.name}, "
                f"read={permissions.read}, delete={permissions.delete}, "
                f"write_nested={permissions.write_nested}, "
                f"delete_nested={permissions.delete_nested}"
            )

    def get(self, container_id: str) -> Optional[ContainerPermissions]:
        """Get the overrides for a container, if any"""
        return self.containers.get(container_id)

    def reload_config(self):
        """Reload configuration from file"""
        self._load_config()

    def get_config_file_path(self) -> Optional[str]:
        """Get the full path to the configuration file"""
        if not self.config_file:
            return None
        return os.path.abspath(self.config_file)

    def create_example_config(self) -> bool:
        """Create an example configuration file"""
        example_content = """# Container Permissions
# Containers listed here override the default (fully permissive) capabilities.

[[container]]
name = "Special"
read = true
delete = false          # the container itself cannot be deleted
write_nested = true
delete_nested = false   # files and directories inside cannot be deleted
extension_whitelist = [".txt", ".md"]
extension_blacklist = []
"""

        if not self.config_file:
            logger.error("No container permissions file configured")
            return False

        config_path = Path(self.config_file)
        if config_path.exists():
            logger.warning(f"Config file already exists: {config_path}")
            return False

        with open(config_path, "w") as f:
            f.write(example_content)
        logger.info(f"Created example container permissions config: {config_path}")
        return True
