#!/usr/bin/env python3

from unittest.mock import Mock

import pytest
import requests
from identity_client import IdentityClient, IdentityAuthenticationError


def _response(status_code=200, payload=None, json_error=None):
    response = Mock()
    response.status_code = status_code
    if json_error:
        response.json.side_effect = json_error
    else:
        response.json.return_value = payload
    return response


class TestIdentityClient:
    def setup_method(self):
        self.session = Mock(spec=requests.Session)
        self.client = IdentityClient("https://identity.example.com/", session=self.session)

    def test_authenticate(self):
        self.session.post.return_value = _response(payload={"token": "abc"})

        assert self.client.authenticate("1001", "alice", "secret") == "abc"
        self.session.post.assert_called_once_with(
            "https://identity.example.com/v1/authenticate",
            json={"accountId": "1001", "userId": "alice", "password": "secret"},
            timeout=10.0,
        )

    def test_rejected(self):
        self.session.post.return_value = _response(status_code=401)

        with pytest.raises(IdentityAuthenticationError, match="status 401"):
            self.client.authenticate("1001", "alice", "wrong")

    def test_unreachable(self):
        self.session.post.side_effect = requests.ConnectionError("refused")

        with pytest.raises(IdentityAuthenticationError, match="request failed"):
            self.client.authenticate("1001", "alice", "secret")

    def test_invalid_json(self):
        self.session.post.return_value = _response(json_error=ValueError("no json"))

        with pytest.raises(IdentityAuthenticationError, match="invalid JSON"):
            self.client.authenticate("1001", "alice", "secret")

    def test_missing_token(self):
        self.session.post.return_value = _response(payload={})

        with pytest.raises(IdentityAuthenticationError, match="did not include a token"):
            self.client.authenticate("1001", "alice", "secret")

    def test_requires_url(self):
        with pytest.raises(ValueError):
            IdentityClient("")
