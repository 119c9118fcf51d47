import base64
import json
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from authlib.oauth2.rfc6749.parameters import prepare_grant_uri
from sqlmodel import Session

from app.core.config import Settings
from app.core.errors import ConfigurationError, OAuthCallbackError, UpstreamError
from app.models.token import utcnow
from app.services.meta_api import MetaGraphClient
from app.services.token_store import upsert_user_token

logger = logging.getLogger(__name__)

SCOPES = ["ads_read", "ads_management", "business_management", "leads_retrieval"]

# Meta documents long-lived user tokens as valid for about 60 days
LONG_LIVED_TOKEN_SECONDS = 5184000


def encode_state(user_id: str) -> str:
    payload = json.dumps({"userId": user_id}).encode("utf-8")
    return base64.b64encode(payload).decode("ascii")


def decode_state(state: str) -> str:
    """Recover the userId stored by encode_state."""
    try:
        decoded = json.loads(base64.b64decode(state).decode("utf-8"))
    except ValueError as e:  # covers binascii, unicode and json errors
        raise OAuthCallbackError("Invalid state parameter") from e

    user_id = decoded.get("userId") if isinstance(decoded, dict) else None
    if not isinstance(user_id, str) or not user_id:
        raise OAuthCallbackError("Invalid state parameter")
    return user_id


class MetaOAuthService:
    """
    Facebook Login flow for the Ads API.

    No intermediate state is stored: the userId rides through the redirect
    inside the OAuth `state` parameter.
    """

    def __init__(self, settings: Settings, graph_client: MetaGraphClient,
                 clock: Callable[[], datetime] = utcnow):
        self.settings = settings
        self.graph = graph_client
        self.clock = clock

    def build_authorization_url(self, user_id: str) -> str:
        if not self.settings.oauth_configured:
            raise ConfigurationError("Meta OAuth credentials not configured")

        return prepare_grant_uri(
            self.settings.oauth_dialog_url,
            client_id=self.settings.META_APP_ID,
            response_type="code",
            redirect_uri=self.settings.META_REDIRECT_URI,
            scope=",".join(SCOPES),
            state=encode_state(user_id),
        )

    def _expiry(self, expires_in: Any) -> Optional[datetime]:
        if not expires_in:
            return None
        return self.clock() + timedelta(seconds=int(expires_in))

    async def _exchange_code(self, code: str) -> Dict[str, Any]:
        return await self.graph.get("/oauth/access_token", {
            "client_id": self.settings.META_APP_ID,
            "client_secret": self.settings.META_APP_SECRET,
            "redirect_uri": self.settings.META_REDIRECT_URI,
            "code": code,
        })

    async def _exchange_long_lived(self, access_token: str) -> Dict[str, Any]:
        return await self.graph.get("/oauth/access_token", {
            "grant_type": "fb_exchange_token",
            "client_id": self.settings.META_APP_ID,
            "client_secret": self.settings.META_APP_SECRET,
            "fb_exchange_token": access_token,
        })

    async def _discover_ad_account(self, access_token: str) -> Optional[str]:
        accounts = await self.graph.request(access_token, "/me/adaccounts", {
            "fields": "id,account_id",
            "limit": 1,
        })
        data = accounts.get("data") or []
        return data[0].get("id") if data else None

    async def complete_authorization(self, db: Session, code: Optional[str], state: Optional[str],
                                     error: Optional[str] = None) -> Dict[str, Any]:
        if error:
            raise OAuthCallbackError(f"OAuth error: {error}")
        if not code or not state:
            raise OAuthCallbackError("Missing code or state parameter")

        user_id = decode_state(state)

        # 1. code -> short-lived token
        short_lived = await self._exchange_code(code)
        if not short_lived.get("access_token"):
            raise OAuthCallbackError("Failed to obtain access token")

        access_token = short_lived["access_token"]
        expires_at = self._expiry(short_lived.get("expires_in"))

        # 2. short-lived -> long-lived (best effort)
        try:
            long_lived = await self._exchange_long_lived(access_token)
            if long_lived.get("access_token"):
                access_token = long_lived["access_token"]
                expires_at = self._expiry(long_lived.get("expires_in") or LONG_LIVED_TOKEN_SECONDS)
        except UpstreamError as e:
            logger.warning(f"Failed to exchange for long-lived token: {e.message}")

        # 3. first ad account, for convenience (best effort)
        ad_account_id = None
        try:
            ad_account_id = await self._discover_ad_account(access_token)
        except UpstreamError as e:
            logger.warning(f"Failed to fetch ad account: {e.message}")

        upsert_user_token(
            db,
            user_id,
            access_token=access_token,
            expires_at=expires_at,
            token_type=short_lived.get("token_type") or "Bearer",
            ad_account_id=ad_account_id,
        )
        logger.info(f"Stored Meta credential for {user_id} (ad account: {ad_account_id or 'none'})")

        return {
            "success": True,
            "message": "Authentication successful",
            "userId": user_id,
            "expiresAt": expires_at,
        }
