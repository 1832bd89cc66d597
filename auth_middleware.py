#!/usr/bin/env python3

import base64
import binascii
import logging
import time
from typing import Optional, Callable, Tuple
from functools import wraps
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, PlainTextResponse
from starlette.requests import Request
from errors import InvalidIdentifierError
from identity_client import IdentityClient, IdentityAuthenticationError
from jwt_auth import JWTValidator, get_token_expiry
from orid import ORID, FS_SERVICE
from token_cache import TokenCache

logger = logging.getLogger(__name__)

# Seconds shaved off a cached token's lifetime so it is never used right at expiry
TOKEN_EXPIRY_BUFFER = 5


class DefaultRejectMiddleware(BaseHTTPMiddleware):
    """Middleware to enforce default reject pattern"""

    async def dispatch(self, request, call_next):
        response = await call_next(request)

        # Check if endpoint lacks explicit auth configuration
        auth_explicitly_disabled = getattr(request.state, 'auth_explicitly_disabled', False)
        auth_explicitly_required = getattr(request.state, 'auth_explicitly_required', False)

        # If neither @noauth nor @require_auth was used, reject
        if not auth_explicitly_disabled and not auth_explicitly_required:
            return JSONResponse(
                {"error": "Endpoint requires explicit authentication configuration"},
                status_code=401
            )

        return response


class AuthMiddleware(BaseHTTPMiddleware):
    """Credential extraction; validation happens in the endpoint decorators"""

    def __init__(
        self,
        app,
        jwt_validator: JWTValidator,
        provider_key: str,
        system_account_id: str = "1",
        identity_client: Optional[IdentityClient] = None,
        token_cache: Optional[TokenCache] = None,
    ):
        super().__init__(app)
        self.jwt_validator = jwt_validator
        self.provider_key = provider_key
        self.system_account_id = system_account_id
        self.identity_client = identity_client
        self.token_cache = token_cache

    async def dispatch(self, request: Request, call_next):
        request.state.user = None
        request.state.auth_error = None
        request.state.jwt_token = None
        request.state.basic_credentials = None

        request.state.jwt_validator = self.jwt_validator
        request.state.identity_client = self.identity_client
        request.state.token_cache = self.token_cache
        request.state.provider_key = self.provider_key
        request.state.system_account_id = self.system_account_id

        self._extract_credentials(request)

        return await call_next(request)

    def _extract_credentials(self, request: Request):
        """Store bearer tokens or basic credentials found in the headers"""
        auth_header = request.headers.get('Authorization')
        if auth_header:
            auth_type, _, auth_value = auth_header.partition(' ')
            auth_type = auth_type.lower()
            auth_value = auth_value.strip()

            if auth_type == 'bearer' and auth_value:
                request.state.jwt_token = auth_value
                return

            if auth_type == 'basic' and auth_value:
                try:
                    request.state.basic_credentials = _decode_basic_credentials(auth_value)
                except ValueError as e:
                    logger.debug(f"Malformed basic credentials: {e}")
                    request.state.auth_error = "Malformed basic credentials"
                return

        # Older clients send the raw token in a dedicated header
        legacy_token = request.headers.get('token')
        if legacy_token:
            request.state.jwt_token = legacy_token


def _decode_basic_credentials(value: str) -> Tuple[str, str]:
    try:
        decoded = base64.b64decode(value, validate=True).decode('utf-8')
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ValueError(f"Invalid base64 credentials: {e}")

    user_id, separator, password = decoded.partition(':')
    if not separator or not user_id:
        raise ValueError("Credentials must be in the form user:password")
    return user_id, password


def _split_args(args) -> Tuple[Optional[object], Request]:
    # Handle both instance methods (self, request) and standalone functions (request)
    if len(args) == 2:
        return args[0], args[1]
    elif len(args) == 1:
        return None, args[0]
    raise ValueError("Expected 1 or 2 positional arguments")


async def _call(func: Callable, self_arg, request: Request):
    if self_arg is not None:
        return await func(self_arg, request)
    return await func(request)


def noauth(func: Callable) -> Callable:
    """Decorator to explicitly allow unauthenticated access"""
    @wraps(func)
    async def wrapper(*args, **kwargs):
        self_arg, request = _split_args(args)

        # Mark request as explicitly allowing no auth
        request.state.auth_explicitly_disabled = True

        return await _call(func, self_arg, request)

    # Mark the function as no-auth required
    wrapper._no_auth_required = True
    return wrapper


async def _exchange_basic_credentials(request: Request) -> Tuple[Optional[str], Optional[JSONResponse]]:
    """Turn basic credentials into an identity token, using the token cache"""
    user_id, password = request.state.basic_credentials

    orid_value = request.path_params.get('orid')
    try:
        account_id = ORID.parse(orid_value).account_id if orid_value else None
    except InvalidIdentifierError:
        return None, PlainTextResponse("Resource not understood", status_code=400)

    if not account_id:
        logger.debug("Request missing account id.")
        return None, PlainTextResponse("Please include account id in request", status_code=403)

    identity_client = getattr(request.state, 'identity_client', None)
    if identity_client is None:
        return None, JSONResponse(
            {"error": "Authentication failed: basic authentication is not configured"},
            status_code=401
        )

    token_cache = getattr(request.state, 'token_cache', None)
    cache_key = f"{account_id}|{user_id}"
    if token_cache is not None:
        cached_token = token_cache.get(cache_key)
        if cached_token:
            logger.debug(f"Using cached token for {cache_key}")
            return cached_token, None

    try:
        token = await run_in_threadpool(identity_client.authenticate, account_id, user_id, password)
    except IdentityAuthenticationError as e:
        logger.info(f"Basic authentication failed for {cache_key}: {e}")
        return None, JSONResponse({"error": f"Authentication failed: {e}"}, status_code=401)

    if token_cache is not None:
        ttl = None
        exp = get_token_expiry(token)
        if exp is not None:
            ttl = exp - time.time() - TOKEN_EXPIRY_BUFFER
        token_cache.put(cache_key, token, ttl)

    return token, None


def require_auth(allow_basic: bool = False) -> Callable:
    """
    Decorator to require a valid identity token

    Args:
        allow_basic: Also accept HTTP basic credentials, exchanged for a token
            through the identity service (used by Terraform clients)
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            self_arg, request = _split_args(args)

            # Mark that this endpoint has explicit auth requirements
            request.state.auth_explicitly_required = True

            jwt_token = getattr(request.state, 'jwt_token', None)
            jwt_validator = getattr(request.state, 'jwt_validator', None)
            basic_credentials = getattr(request.state, 'basic_credentials', None)
            auth_error = getattr(request.state, 'auth_error', None)

            if not jwt_token and basic_credentials and allow_basic:
                jwt_token, error_response = await _exchange_basic_credentials(request)
                if error_response is not None:
                    return error_response

            user = None
            if jwt_token and not auth_error and jwt_validator:
                is_valid, payload, error_msg = jwt_validator.validate_token(jwt_token)
                if is_valid:
                    user = payload
                else:
                    auth_error = error_msg

            if not user:
                error_detail = "Authentication required"
                if auth_error:
                    error_detail = f"Authentication failed: {auth_error}"
                return JSONResponse(
                    {"error": error_detail},
                    status_code=401
                )

            request.state.user = user
            request.state.account_id = user['accountId']

            return await _call(func, self_arg, request)
        return wrapper
    return decorator


def orid_access(func: Callable) -> Callable:
    """
    Decorator that parses the {orid} path parameter and checks that the
    caller may act on it. Must be applied inside @require_auth.
    """
    @wraps(func)
    async def wrapper(*args, **kwargs):
        self_arg, request = _split_args(args)

        orid_value = request.path_params.get('orid', '')
        if not ORID.is_valid(orid_value):
            logger.debug(f"Resource not understood: {orid_value}")
            return PlainTextResponse("Resource not understood", status_code=400)

        orid = ORID.parse(orid_value)
        if orid.service != FS_SERVICE or orid.provider != request.state.provider_key:
            logger.debug(f"Invalid orid in request: {orid!r}")
            return JSONResponse({"error": "Invalid orid in request"}, status_code=400)

        token_account_id = request.state.account_id
        if orid.account_id != token_account_id and token_account_id != request.state.system_account_id:
            logger.debug(
                f"Insufficient privilege for request: token account {token_account_id}, "
                f"requested account {orid.account_id}"
            )
            return JSONResponse({"error": "Insufficient privilege for request"}, status_code=403)

        request.state.orid = orid
        return await _call(func, self_arg, request)
    return wrapper
