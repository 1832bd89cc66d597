#!/usr/bin/env python3

import logging
import requests
from typing import Optional

logger = logging.getLogger(__name__)


class IdentityAuthenticationError(Exception):
    """The identity service rejected the credentials or could not be reached"""


class IdentityClient:
    """Exchange account/user/password credentials for an identity token"""

    AUTHENTICATE_PATH = "/v1/authenticate"

    def __init__(self, identity_url: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        if not identity_url:
            raise ValueError("Identity service URL is required")
        self.identity_url = identity_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def authenticate(self, account_id: str, user_id: str, password: str) -> str:
        """Return a signed token for the given credentials"""
        url = f"{self.identity_url}{self.AUTHENTICATE_PATH}"
        logger.debug(f"Authenticating user {user_id} of account {account_id} against {url}")

        try:
            response = self.session.post(
                url,
                json={"accountId": account_id, "userId": user_id, "password": password},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise IdentityAuthenticationError(f"Identity service request failed: {e}") from e

        if response.status_code != 200:
            raise IdentityAuthenticationError(
                f"Identity service rejected credentials with status {response.status_code}"
            )

        try:
            token = response.json().get("token")
        except ValueError as e:
            raise IdentityAuthenticationError("Identity service returned invalid JSON") from e

        if not token:
            raise IdentityAuthenticationError("Identity service response did not include a token")
        return token
