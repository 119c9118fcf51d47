from dataclasses import dataclass
from typing import Annotated, Optional
from fastapi import Depends, Query
from sqlmodel import Session

from app.core.config import Settings, settings
from app.core.errors import AuthenticationError, ValidationError
from app.db.session import get_db
from app.models.token import UserToken
from app.services.meta_api import MetaGraphClient
from app.services.meta_oauth import MetaOAuthService
from app.services.token_store import get_user_token


def get_settings() -> Settings:
    return settings


def get_graph_client(config: Annotated[Settings, Depends(get_settings)]) -> MetaGraphClient:
    return MetaGraphClient(config)


def get_oauth_service(
    config: Annotated[Settings, Depends(get_settings)],
    graph: Annotated[MetaGraphClient, Depends(get_graph_client)],
) -> MetaOAuthService:
    return MetaOAuthService(config, graph)


@dataclass
class MetaContext:
    user_token: UserToken
    access_token: str
    ad_account_id: Optional[str]

    def require_ad_account(self) -> str:
        if not self.ad_account_id:
            raise ValidationError(
                "adAccountId is required. Provide it in query params or complete OAuth to auto-detect."
            )
        return self.ad_account_id


def get_meta_context(
    db: Annotated[Session, Depends(get_db)],
    user_id: Annotated[Optional[str], Query(alias="userId")] = None,
    ad_account_id: Annotated[Optional[str], Query(alias="adAccountId")] = None,
) -> MetaContext:
    """
    Gate in front of every /meta route.
    Resolves userId to a live Meta credential; 400 without userId, 401 otherwise.
    """
    if not user_id:
        raise ValidationError("userId is required")

    user_token = get_user_token(db, user_id)
    if not user_token:
        raise AuthenticationError("User not authenticated. Please complete OAuth flow first.")

    if user_token.is_expired():
        raise AuthenticationError("Access token expired. Please re-authenticate.", expired=True)

    return MetaContext(
        user_token=user_token,
        access_token=user_token.access_token,
        ad_account_id=ad_account_id or user_token.ad_account_id,
    )
