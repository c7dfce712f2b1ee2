"""
Authentication headers for CloudStorage API requests.

The session owns an AuthManager and asks it for headers right before each
request is sent. Request bodies are streamed, so signatures cover the
method, path and timestamp only.
"""

import base64
import hashlib
import hmac
import time
from typing import Dict, Optional

from .exceptions import ConfigurationError

API_VERSION = "1.0"


class AuthManager:
    """
    Supplies authentication headers for an established API key.

    Adds a bearer token to every request and, when an API secret is
    configured, an HMAC-SHA256 signature with its timestamp.
    """

    def __init__(self, api_key: str, api_secret: Optional[str] = None):
        """
        Initialize authentication manager.

        Args:
            api_key: API key for authentication
            api_secret: API secret for request signing (optional)
        """
        if not api_key:
            raise ConfigurationError("API key is required for authentication", config_key="api_key")

        self.api_key = api_key
        self.api_secret = api_secret
        self._validate_credentials()

    def _validate_credentials(self):
        """Validate API credentials format."""
        if not self.api_key.startswith(("ak_", "test_")):
            raise ConfigurationError(
                "Invalid API key format. API keys should start with 'ak_' or 'test_'",
                config_key="api_key",
            )

        if self.api_secret and not self.api_secret.startswith(("sk_", "test_")):
            raise ConfigurationError(
                "Invalid API secret format. API secrets should start with 'sk_' or 'test_'",
                config_key="api_secret",
            )

    def get_auth_headers(self, method: str = "GET", path: str = "/") -> Dict[str, str]:
        """
        Generate authentication headers for an API request.

        Args:
            method: HTTP method (GET, POST, etc.)
            path: Request path including the query string

        Returns:
            Dictionary of authentication headers
        """
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "X-CloudStorage-Version": API_VERSION,
        }

        if self.api_secret:
            timestamp = str(int(time.time()))
            headers["X-CloudStorage-Signature"] = self._generate_signature(method, path, timestamp)
            headers["X-CloudStorage-Timestamp"] = timestamp

        return headers

    def _generate_signature(self, method: str, path: str, timestamp: str) -> str:
        """Base64-encoded HMAC-SHA256 over method, path and timestamp."""
        string_to_sign = "\n".join([method.upper(), path, timestamp])

        signature = hmac.new(
            self.api_secret.encode("utf-8"),
            string_to_sign.encode("utf-8"),
            hashlib.sha256,
        ).digest()

        return base64.b64encode(signature).decode("utf-8")
