"""
FastAPI router for the PowerSchool access token.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from sis_sync.core.database import get_db
from sis_sync.integrations.sis.error_handler import handle_sis_errors
from sis_sync.integrations.sis.oauth_service import PowerSchoolOAuthService
from sis_sync.integrations.sis.token_manager import TokenManager
from sis_sync.repositories.settings import CredentialStore
from sis_sync.schemas.sync import TokenStatusResponse, TokenRefreshResponse

router = APIRouter()


@router.get("/token", response_model=TokenStatusResponse)
async def get_token_status(db: AsyncSession = Depends(get_db)):
    """Report whether a usable token is cached. The token itself is never returned."""
    token_manager = TokenManager(CredentialStore(db))
    return TokenStatusResponse(**await token_manager.get_token_status())


@router.post("/token", response_model=TokenRefreshResponse)
@handle_sis_errors("token_refresh")
async def refresh_token(db: AsyncSession = Depends(get_db)):
    """Force a new token from PowerSchool."""
    async with PowerSchoolOAuthService() as oauth_service:
        token_manager = TokenManager(CredentialStore(db), oauth_service)
        token = await token_manager.fetch_new_token()

    return TokenRefreshResponse(
        access_token_present=bool(token.access_token),
        token_type=token.token_type,
        expires_at=token.expires_at,
    )
