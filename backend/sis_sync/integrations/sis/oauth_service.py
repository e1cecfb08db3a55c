"""
OAuth 2.0 client-credentials service for the PowerSchool token endpoint.
"""

import asyncio
import base64
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import aiohttp

from sis_sync.core.config import settings
from sis_sync.core.sis_config import PowerSchoolCredential
from sis_sync.integrations.sis.error_handler import AuthAcquisitionError, AuthConfigError
from sis_sync.utils import utcnow


logger = logging.getLogger(__name__)

USER_AGENT = 'Report-Sync/1.0'


@dataclass
class TokenInfo:
    """An access token and the moment it stops being valid."""
    access_token: str
    expires_at: datetime
    token_type: str = "Bearer"


def basic_auth_header(client_id: str, client_secret: str) -> str:
    encoded = base64.b64encode(f"{client_id}:{client_secret}".encode()).decode()
    return f"Basic {encoded}"


class PowerSchoolOAuthService:
    """Requests access tokens from PowerSchool using the client-credentials grant."""

    def __init__(self, timeout: Optional[int] = None, default_ttl: Optional[int] = None):
        self.timeout = timeout or settings.PS_HTTP_TIMEOUT_SECONDS
        self.default_ttl = default_ttl or settings.PS_DEFAULT_TOKEN_TTL_SECONDS
        self._http_session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        """Async context manager entry."""
        self._http_session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            headers={'User-Agent': USER_AGENT}
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self._http_session:
            await self._http_session.close()
            self._http_session = None

    async def request_token(self, credential: PowerSchoolCredential) -> TokenInfo:
        """
        Request a new access token.

        Args:
            credential: Connection settings holding endpoint, client id and secret

        Returns:
            The issued token with its absolute expiry

        Raises:
            AuthConfigError: Credentials are incomplete
            AuthAcquisitionError: The token endpoint rejected the request or was unreachable
        """
        if not self._http_session:
            raise RuntimeError("OAuth service must be used as async context manager")

        if not credential.is_complete:
            raise AuthConfigError(details={'missing': credential.missing_fields()})

        headers = {
            'Authorization': basic_auth_header(credential.client_id, credential.client_secret),
            'Content-Type': 'application/x-www-form-urlencoded',
        }

        try:
            async with self._http_session.post(
                credential.token_url,
                data={'grant_type': 'client_credentials'},
                headers=headers
            ) as response:

                if response.status != 200:
                    error_text = await response.text()
                    logger.error(
                        f"Token request failed for {credential.endpoint}: "
                        f"Status {response.status}, Error: {error_text}"
                    )
                    raise AuthAcquisitionError(
                        f"Failed to get PowerSchool access token: {response.status} {error_text}",
                        status=response.status,
                        body=error_text
                    )

                try:
                    token_response = await response.json(content_type=None)
                except ValueError as e:
                    raise AuthAcquisitionError(
                        "PowerSchool token endpoint returned invalid JSON",
                        status=response.status,
                        original_exception=e
                    )

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"HTTP error during token request for {credential.endpoint}: {e}")
            raise AuthAcquisitionError(f"HTTP error: {e}", original_exception=e)

        token = self._parse_token_response(token_response)
        logger.info(f"Obtained PowerSchool access token, expires at {token.expires_at.isoformat()}")
        return token

    def _parse_token_response(self, token_response: Any) -> TokenInfo:
        if not isinstance(token_response, dict) or not token_response.get('access_token'):
            raise AuthAcquisitionError("PowerSchool token response did not include an access token")

        expires_in = self._expires_in(token_response)
        return TokenInfo(
            access_token=token_response['access_token'],
            expires_at=utcnow() + timedelta(seconds=expires_in),
            token_type=token_response.get('token_type') or "Bearer",
        )

    def _expires_in(self, token_response: Dict[str, Any]) -> int:
        value = token_response.get('expires_in')
        if value is None:
            return self.default_ttl
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning(f"Invalid expires_in {value!r} in token response, using {self.default_ttl}s")
            return self.default_ttl
