#!/usr/bin/env python3

import jwt
from typing import Tuple, Dict, Any, Optional


class JWTValidator:
    """Identity token validation for the file service endpoints"""

    def __init__(
        self,
        signing_secret: Optional[str] = None,
        public_key: Optional[str] = None,
        audience: Optional[str] = None,
    ):
        if not signing_secret and not public_key:
            raise ValueError("A signing secret or a public key is required")

        self.audience = audience
        if public_key:
            self.key = public_key
            self.algorithms = ["RS256"]
        else:
            self.key = signing_secret
            if signing_secret.startswith("sk_"):
                self.key = signing_secret[3:]
            self.algorithms = ["HS256"]

    def validate_token(
        self, token: str
    ) -> Tuple[bool, Optional[Dict[str, Any]], Optional[str]]:
        """
        Validate an identity token

        Returns:
            (is_valid, payload, error_message)
        """
        try:
            options = {"require": ["exp"]}
            if not self.audience:
                options["verify_aud"] = False

            payload = jwt.decode(
                token,
                self.key,
                algorithms=self.algorithms,
                audience=self.audience,
                options=options,
            )

            if not payload.get("accountId"):
                return False, None, "Token does not carry an account id"

            payload["accountId"] = str(payload["accountId"])
            return True, payload, None

        except jwt.ExpiredSignatureError:
            return False, None, "Token has expired"
        except jwt.InvalidTokenError:
            return False, None, "Invalid token"


def get_token_expiry(token: str) -> Optional[int]:
    """Read the exp claim without verifying the token"""
    try:
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return None
    exp = payload.get("exp")
    return int(exp) if exp is not None else None
