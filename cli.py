#!/usr/bin/env python3

import argparse
import os
import sys
import logging
import secrets
import base64
import jwt
import datetime

from container_permissions import ContainerPermissionsConfig
from disk_repo import DiskRepo
from logic import Logic
from path_resolver import PathResolver

# Configure logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def generate_jwt_secret():
    """Generate a secure JWT signing secret"""
    secret_bytes = secrets.token_bytes(32)
    secret_key = base64.urlsafe_b64encode(secret_bytes).decode("utf-8").rstrip("=")
    return f"sk_{secret_key}"


def create_jwt_token(secret, account_id, expires_in_days=30, user_id=None, audience=None):
    """Create an identity token for an account, signed with an HS256 secret"""
    now = datetime.datetime.now(datetime.timezone.utc)
    exp = now + datetime.timedelta(days=expires_in_days)

    payload = {"iat": now, "exp": exp, "accountId": str(account_id)}

    if user_id:
        payload["userId"] = user_id
    if audience:
        payload["aud"] = audience

    # Use the secret directly (remove prefix if present)
    signing_secret = secret
    if secret.startswith("sk_"):
        signing_secret = secret[3:]

    token = jwt.encode(payload, signing_secret, algorithm="HS256")
    return token


def api_keygen_command(args):
    """Handle api keygen command"""
    secret = generate_jwt_secret()
    print("Generated JWT signing secret:")
    print(secret)
    print("\nSet it as JWT_SECRET for the file service.")
    return 0


def api_token_create_command(args):
    """Handle api token create command"""
    if not args.jwt_secret:
        print("Error: JWT secret is required. Set JWT_SECRET environment variable or use --jwt-secret flag.")
        return 1

    token = create_jwt_token(
        args.jwt_secret,
        args.account_id,
        expires_in_days=args.expires,
        user_id=args.user_id,
        audience=args.audience,
    )
    print(f"Token for account {args.account_id} (expires in {args.expires} days):")
    print(token)
    return 0


def permissions_init_command(args):
    """Handle permissions init command"""
    config = ContainerPermissionsConfig(args.permissions_file)
    if config.create_example_config():
        print(f"Created example permissions file: {config.get_config_file_path()}")
        return 0
    print(f"Permissions file not created: {config.get_config_file_path()}")
    return 1


def permissions_list_command(args):
    """Handle permissions list command"""
    config = ContainerPermissionsConfig(args.permissions_file)
    if not config.containers:
        print("No container permission overrides configured")
        return 0

    print(f"Container permission overrides ({len(config.containers)}):")
    for permissions in config.containers.values():
        print(f"  {permissions.name}:")
        print(f"    read={permissions.read} delete={permissions.delete}")
        print(f"    write_nested={permissions.write_nested} delete_nested={permissions.delete_nested}")
        if permissions.extension_whitelist:
            print(f"    whitelist: {', '.join(permissions.extension_whitelist)}")
        if permissions.extension_blacklist:
            print(f"    blacklist: {', '.join(permissions.extension_blacklist)}")
    return 0


def containers_list_command(args):
    """Handle containers list command"""
    if not args.upload_folder:
        print("Error: Upload folder is required. Set UPLOAD_FOLDER environment variable or use --upload-folder flag.")
        return 1

    permissions = ContainerPermissionsConfig(args.permissions_file)
    logic = Logic(PathResolver(args.upload_folder, permissions), DiskRepo(), args.orid_provider_key)

    containers = logic.get_containers(args.account_id)
    if not containers:
        print(f"No containers for account {args.account_id}")
        return 0

    for container in containers:
        print(f"{container.name}\t{container.orid}")
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(description="ORID file service management")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--permissions-file",
        default=os.getenv("CONTAINER_PERMISSIONS_FILE", "container_permissions.toml"),
        help="Container permissions TOML file (default: from CONTAINER_PERMISSIONS_FILE env var)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # API command group
    api_parser = subparsers.add_parser("api", help="Identity token management")
    api_subparsers = api_parser.add_subparsers(dest="api_action", help="API actions")

    api_keygen_parser = api_subparsers.add_parser("keygen", help="Generate JWT signing secret")
    api_keygen_parser.set_defaults(func=api_keygen_command)

    api_token_parser = api_subparsers.add_parser("token", help="Create a token for local use")
    api_token_parser.add_argument("--account-id", required=True, help="Account the token grants access to")
    api_token_parser.add_argument("--user-id", help="User id recorded in the token")
    api_token_parser.add_argument(
        "--expires", type=int, default=30, help="Expiration in days (default: 30)"
    )
    api_token_parser.add_argument("--audience", default=os.getenv("JWT_AUDIENCE"), help="Token audience")
    api_token_parser.add_argument(
        "--jwt-secret",
        default=os.getenv("JWT_SECRET"),
        help="Signing secret (default: from JWT_SECRET env var)",
    )
    api_token_parser.set_defaults(func=api_token_create_command)

    # Permissions command group
    permissions_parser = subparsers.add_parser("permissions", help="Container permission overrides")
    permissions_subparsers = permissions_parser.add_subparsers(
        dest="permissions_action", help="Permission actions"
    )

    permissions_init_parser = permissions_subparsers.add_parser(
        "init", help="Create example permissions configuration"
    )
    permissions_init_parser.set_defaults(func=permissions_init_command)

    permissions_list_parser = permissions_subparsers.add_parser(
        "list", help="List configured permission overrides"
    )
    permissions_list_parser.set_defaults(func=permissions_list_command)

    # Containers command
    containers_parser = subparsers.add_parser("containers", help="List the containers of an account")
    containers_parser.add_argument("--account-id", required=True, help="Account id")
    containers_parser.add_argument(
        "--upload-folder",
        default=os.getenv("UPLOAD_FOLDER"),
        help="Upload folder (default: from UPLOAD_FOLDER env var)",
    )
    containers_parser.add_argument(
        "--orid-provider-key",
        default=os.getenv("ORID_PROVIDER_KEY", "orid"),
        help="ORID provider key (default: from ORID_PROVIDER_KEY env var or 'orid')",
    )
    containers_parser.set_defaults(func=containers_list_command)

    # Parse arguments
    args = parser.parse_args(argv)

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Validate command
    if not args.command:
        parser.print_help()
        return 1

    # Check if command has a function handler
    if not hasattr(args, "func"):
        # This means user didn't specify a subcommand for a command group
        if args.command == "api":
            api_parser.print_help()
        elif args.command == "permissions":
            permissions_parser.print_help()
        else:
            parser.print_help()
        return 1

    # Execute command
    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        return 130  # Standard exit code for SIGINT
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
