#!/usr/bin/env python3

import os
from dataclasses import dataclass
from typing import Optional


def env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Runtime configuration of the file service"""

    upload_folder: str
    orid_provider_key: str = "orid"
    api_port: int = 8888
    jwt_secret: Optional[str] = None
    jwt_public_key: Optional[str] = None
    jwt_audience: Optional[str] = None
    identity_url: Optional[str] = None
    system_account_id: str = "1"
    container_permissions_file: Optional[str] = None
    upload_temp_dir: Optional[str] = None
    enable_swagger: bool = False
    log_level: str = "info"

    def __post_init__(self):
        """Validate the configuration after initialization"""
        if not self.upload_folder:
            raise ValueError("upload_folder is required")
        if not self.jwt_secret and not self.jwt_public_key:
            raise ValueError("jwt_secret or jwt_public_key is required")
        if self.orid_provider_key is None or ":" in self.orid_provider_key:
            raise ValueError(f"Invalid orid_provider_key: {self.orid_provider_key}")
        if not self.system_account_id:
            raise ValueError("system_account_id is required")
        self.api_port = int(self.api_port)
        self.log_level = (self.log_level or "info").lower()

