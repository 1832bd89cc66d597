#!/usr/bin/env python3

import argparse
import os
import logging
import sys

from container_permissions import ContainerPermissionsConfig
from disk_repo import DiskRepo
from identity_client import IdentityClient
from jwt_auth import JWTValidator
from logic import Logic
from path_resolver import PathResolver
from settings import Settings, env_flag
from token_cache import InMemoryTokenCache
from web_server import StarletteWebServer, create_server

# Configure logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def build_logic(settings: Settings) -> Logic:
    """Wire the resolver, the disk repo and the resource logic together"""
    permissions = ContainerPermissionsConfig(settings.container_permissions_file)
    path_resolver = PathResolver(settings.upload_folder, permissions)
    return Logic(path_resolver, DiskRepo(), settings.orid_provider_key)


def build_server(settings: Settings) -> StarletteWebServer:
    os.makedirs(settings.upload_folder, exist_ok=True)

    jwt_validator = JWTValidator(
        signing_secret=settings.jwt_secret,
        public_key=settings.jwt_public_key,
        audience=settings.jwt_audience,
    )

    identity_client = None
    if settings.identity_url:
        identity_client = IdentityClient(settings.identity_url)
    else:
        logger.warning("IDENTITY_URL not set, basic authentication for Terraform is disabled")

    return create_server(
        build_logic(settings),
        settings,
        jwt_validator,
        identity_client=identity_client,
        token_cache=InMemoryTokenCache(),
    )


def run_server(settings: Settings):
    print(f"Upload folder: {settings.upload_folder}")
    print(f"ORID provider key: {settings.orid_provider_key}")

    try:
        web_server = build_server(settings)
        web_server.run(port=settings.api_port)
    except KeyboardInterrupt:
        print("\nServer shutting down...")
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        raise


def parse_settings(argv=None) -> Settings:
    parser = argparse.ArgumentParser(description="ORID file service")
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("API_PORT", "8888")),
        help="Port to listen on (default: from API_PORT env var or 8888)",
    )
    parser.add_argument(
        "--upload-folder",
        default=os.getenv("UPLOAD_FOLDER"),
        help="Directory where uploaded files are persisted (default: from UPLOAD_FOLDER env var)",
    )
    parser.add_argument(
        "--orid-provider-key",
        default=os.getenv("ORID_PROVIDER_KEY", "orid"),
        help="Provider element of every ORID created or accepted (default: from ORID_PROVIDER_KEY env var or 'orid')",
    )
    parser.add_argument(
        "--jwt-secret",
        default=os.getenv("JWT_SECRET"),
        help="HS256 secret used to verify identity tokens (default: from JWT_SECRET env var)",
    )
    parser.add_argument(
        "--jwt-public-key-file",
        default=os.getenv("JWT_PUBLIC_KEY_FILE"),
        help="PEM public key used to verify RS256 identity tokens (default: from JWT_PUBLIC_KEY_FILE env var)",
    )
    parser.add_argument(
        "--identity-url",
        default=os.getenv("IDENTITY_URL"),
        help="Identity service URL used for basic authentication (default: from IDENTITY_URL env var)",
    )
    parser.add_argument(
        "--permissions-file",
        default=os.getenv("CONTAINER_PERMISSIONS_FILE"),
        help="TOML file with per-container permission overrides (default: from CONTAINER_PERMISSIONS_FILE env var)",
    )
    parser.add_argument(
        "--enable-swagger",
        action="store_true",
        default=env_flag("ENABLE_SWAGGER"),
        help="Serve /docs and /openapi.yaml; not meant for production",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    args = parser.parse_args(argv)

    log_level = "debug" if args.verbose else os.getenv("LOG_LEVEL", "info").strip().lower()
    logging.getLogger().setLevel(log_level.upper())

    public_key = os.getenv("JWT_PUBLIC_KEY")
    if args.jwt_public_key_file:
        with open(args.jwt_public_key_file, "r") as f:
            public_key = f.read()

    return Settings(
        upload_folder=args.upload_folder,
        orid_provider_key=args.orid_provider_key,
        api_port=args.port,
        jwt_secret=args.jwt_secret,
        jwt_public_key=public_key,
        jwt_audience=os.getenv("JWT_AUDIENCE"),
        identity_url=args.identity_url,
        system_account_id=os.getenv("SYSTEM_ACCOUNT_ID", "1"),
        container_permissions_file=args.permissions_file,
        upload_temp_dir=os.getenv("UPLOAD_TEMP_DIR"),
        enable_swagger=args.enable_swagger,
        log_level=log_level,
    )


def main(argv=None):
    try:
        settings = parse_settings(argv)
    except ValueError as e:
        print(f"Error: {e}")
        print("Set UPLOAD_FOLDER and JWT_SECRET (or JWT_PUBLIC_KEY) or pass the matching flags.")
        return 1

    run_server(settings)
    return 0


if __name__ == "__main__":
    sys.exit(main())
