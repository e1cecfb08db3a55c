"""
Access token lifecycle for PowerSchool: caching, expiry checks and refresh.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sis_sync.core.config import settings
from sis_sync.integrations.sis.error_handler import AuthConfigError
from sis_sync.integrations.sis.oauth_service import PowerSchoolOAuthService, TokenInfo
from sis_sync.repositories.settings import CredentialStore
from sis_sync.utils import utcnow


logger = logging.getLogger(__name__)


class TokenManager:
    """
    Hands out bearer tokens that are valid at call time.

    Refreshes are not serialized; two concurrent callers that both see an expired
    token will each request a new one and the last write wins.
    Without an OAuth service the manager can only report on the cached token.
    """

    def __init__(
        self,
        credential_store: CredentialStore,
        oauth_service: Optional[PowerSchoolOAuthService] = None,
        expiry_skew_seconds: Optional[int] = None
    ):
        self.credential_store = credential_store
        self.oauth_service = oauth_service
        if expiry_skew_seconds is None:
            expiry_skew_seconds = settings.PS_TOKEN_EXPIRY_SKEW_SECONDS
        self.expiry_skew = timedelta(seconds=expiry_skew_seconds)

    def is_expired(self, expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
        """A token counts as expired once it is within the skew window of its expiry."""
        if expires_at is None:
            return True
        now = now or utcnow()
        return now >= expires_at - self.expiry_skew

    async def ensure_valid_token(self) -> str:
        """
        Return a cached token, or acquire a new one if it is missing or expired.

        Raises:
            AuthConfigError: Credentials are incomplete
            AuthAcquisitionError: The token endpoint rejected the request
        """
        credential = await self.credential_store.get_config()
        if not credential.is_complete:
            raise AuthConfigError(details={'missing': credential.missing_fields()})

        if credential.access_token and not self.is_expired(credential.token_expires_at):
            return credential.access_token

        logger.info("PowerSchool access token missing or expired, requesting a new one")
        token = await self.fetch_new_token()
        return token.access_token

    async def fetch_new_token(self) -> TokenInfo:
        """Unconditionally request a new token and persist it."""
        if self.oauth_service is None:
            raise RuntimeError("TokenManager needs an OAuth service to request tokens")
        credential = await self.credential_store.get_config()
        token = await self.oauth_service.request_token(credential)
        await self.credential_store.update_token(token.access_token, token.expires_at)
        return token

    async def clear_token(self) -> None:
        await self.credential_store.clear_token()

    async def get_token_status(self) -> Dict[str, Any]:
        """Describe the cached token without revealing it."""
        credential = await self.credential_store.get_config()
        expires_at = credential.token_expires_at
        return {
            'configured': credential.is_complete,
            'has_token': bool(credential.access_token),
            'is_expired': self.is_expired(expires_at) if credential.access_token else True,
            'expires_at': expires_at.isoformat() if expires_at else None,
        }
