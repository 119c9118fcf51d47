from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from app.api import deps
from app.core.errors import ValidationError
from app.db.session import get_db
from app.models.token import as_utc
from app.schemas.meta import AuthCallbackResponse, AuthStartResponse, AuthStatusResponse
from app.services.meta_oauth import MetaOAuthService
from app.services.token_store import get_user_token

router = APIRouter()

@router.get("/start", response_model=AuthStartResponse)
def start(
    user_id: Optional[str] = Query(None, alias="userId"),
    oauth: MetaOAuthService = Depends(deps.get_oauth_service),
):
    """Build the Facebook Login URL the bot sends to the user."""
    if not user_id:
        raise ValidationError("userId is required")

    return AuthStartResponse(authUrl=oauth.build_authorization_url(user_id))

@router.get("/callback", response_model=AuthCallbackResponse)
async def callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    db: Session = Depends(get_db),
    oauth: MetaOAuthService = Depends(deps.get_oauth_service),
):
    """Redirect target registered in the Meta app."""
    result = await oauth.complete_authorization(db, code=code, state=state, error=error)
    return AuthCallbackResponse(**result)

@router.get("/status", response_model=AuthStatusResponse, response_model_exclude_unset=True)
def status(
    user_id: Optional[str] = Query(None, alias="userId"),
    db: Session = Depends(get_db),
):
    if not user_id:
        raise ValidationError("userId is required")

    user_token = get_user_token(db, user_id)
    if not user_token:
        return AuthStatusResponse(success=False, authenticated=False, message="User not authenticated")

    is_expired = user_token.is_expired()
    return AuthStatusResponse(
        success=True,
        authenticated=not is_expired,
        expired=is_expired,
        expiresAt=as_utc(user_token.expires_at),
        adAccountId=user_token.ad_account_id,
        needsRefresh=user_token.needs_refresh(),
    )
