"""
OAuth exchange flow: state round trip, authorization URL, callback handling.
"""
import base64
import json
from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import pytest
from sqlmodel import select

from app.core.errors import ConfigurationError, OAuthCallbackError, UpstreamError
from app.models.token import UserToken
from app.services.meta_oauth import (
    LONG_LIVED_TOKEN_SECONDS,
    MetaOAuthService,
    decode_state,
    encode_state,
)


def test_state_round_trip():
    state = encode_state("abc")
    assert json.loads(base64.b64decode(state)) == {"userId": "abc"}
    assert decode_state(state) == "abc"


def test_state_round_trip_keeps_unusual_ids():
    user_id = "zoho/user+42 é"
    assert decode_state(encode_state(user_id)) == user_id


@pytest.mark.parametrize("state", [
    "not base64 !!",
    base64.b64encode(b"not json").decode(),
    base64.b64encode(b'["a list"]').decode(),
    base64.b64encode(b'{"other": "key"}').decode(),
])
def test_bad_state_is_rejected(state):
    with pytest.raises(OAuthCallbackError) as exc:
        decode_state(state)
    assert exc.value.status_code == 400


def test_authorization_url(oauth_service, settings):
    url = urlparse(oauth_service.build_authorization_url("abc"))
    query = {k: v[0] for k, v in parse_qs(url.query).items()}

    assert f"{url.scheme}://{url.netloc}{url.path}" == "https://www.facebook.com/v18.0/dialog/oauth"
    assert query["client_id"] == "app-123"
    assert query["redirect_uri"] == settings.META_REDIRECT_URI
    assert query["response_type"] == "code"
    assert query["scope"] == "ads_read,ads_management,business_management,leads_retrieval"
    assert decode_state(query["state"]) == "abc"


def test_authorization_url_requires_app_credentials(settings, graph_client):
    settings.META_APP_SECRET = None
    service = MetaOAuthService(settings, graph_client)

    with pytest.raises(ConfigurationError):
        service.build_authorization_url("abc")


class TestCallback:

    @pytest.fixture
    def happy_graph(self, graph):
        def token_endpoint(request):
            params = parse_qs(request.url.query.decode())
            if params.get("grant_type") == ["fb_exchange_token"]:
                return {"access_token": "long-lived", "token_type": "bearer", "expires_in": 5000000}
            return {"access_token": "short-lived", "token_type": "bearer", "expires_in": 3600}

        graph.add("/oauth/access_token", token_endpoint)
        graph.add("/me/adaccounts", {"data": [{"id": "act_1001", "account_id": "1001"}]})
        return graph

    @pytest.mark.asyncio
    async def test_stores_long_lived_token(self, session, oauth_service, happy_graph, frozen_now):
        result = await oauth_service.complete_authorization(session, "the-code", encode_state("abc"))

        assert result["success"] is True
        assert result["userId"] == "abc"
        assert result["expiresAt"] == frozen_now + timedelta(seconds=5000000)

        stored = session.exec(select(UserToken).where(UserToken.user_id == "abc")).one()
        assert stored.access_token == "long-lived"
        assert stored.ad_account_id == "act_1001"
        assert stored.token_type == "bearer"

    @pytest.mark.asyncio
    async def test_code_exchange_parameters(self, session, oauth_service, happy_graph, settings):
        await oauth_service.complete_authorization(session, "the-code", encode_state("abc"))

        code_call, upgrade_call = happy_graph.params_for("/oauth/access_token")
        assert code_call == {
            "client_id": "app-123",
            "client_secret": "secret-xyz",
            "redirect_uri": settings.META_REDIRECT_URI,
            "code": "the-code",
        }
        assert upgrade_call["fb_exchange_token"] == "short-lived"
        discovery = happy_graph.params_for("/me/adaccounts")[0]
        assert discovery["access_token"] == "long-lived"
        assert discovery["limit"] == "1"

    @pytest.mark.asyncio
    async def test_long_lived_default_expiry(self, session, oauth_service, graph, frozen_now):
        def token_endpoint(request):
            if b"fb_exchange_token" in request.url.query:
                return {"access_token": "long-lived"}
            return {"access_token": "short-lived", "expires_in": 3600}

        graph.add("/oauth/access_token", token_endpoint)
        graph.add("/me/adaccounts", {"data": []})

        result = await oauth_service.complete_authorization(session, "code", encode_state("abc"))

        assert LONG_LIVED_TOKEN_SECONDS == 5184000
        assert result["expiresAt"] == frozen_now + timedelta(seconds=5184000)

    @pytest.mark.asyncio
    async def test_upgrade_failure_keeps_short_lived_token(self, session, oauth_service, graph, frozen_now):
        def token_endpoint(request):
            if b"fb_exchange_token" in request.url.query:
                return 400, {"error": {"message": "Invalid exchange"}}
            return {"access_token": "short-lived", "expires_in": 3600}

        graph.add("/oauth/access_token", token_endpoint)
        graph.add("/me/adaccounts", {"data": [{"id": "act_5"}]})

        result = await oauth_service.complete_authorization(session, "code", encode_state("abc"))

        stored = session.exec(select(UserToken).where(UserToken.user_id == "abc")).one()
        assert stored.access_token == "short-lived"
        assert stored.token_type == "Bearer"
        assert result["expiresAt"] == frozen_now + timedelta(seconds=3600)

    @pytest.mark.asyncio
    async def test_short_lived_without_expiry_never_expires(self, session, oauth_service, graph):
        def token_endpoint(request):
            if b"fb_exchange_token" in request.url.query:
                return 500, {"error": {"message": "down"}}
            return {"access_token": "short-lived"}

        graph.add("/oauth/access_token", token_endpoint)
        graph.add("/me/adaccounts", {"data": []})

        result = await oauth_service.complete_authorization(session, "code", encode_state("abc"))
        assert result["expiresAt"] is None

    @pytest.mark.asyncio
    async def test_account_discovery_failure_is_tolerated(self, session, oauth_service, happy_graph):
        happy_graph.add("/me/adaccounts", (403, {"error": {"message": "No permission"}}))

        result = await oauth_service.complete_authorization(session, "code", encode_state("abc"))

        assert result["success"] is True
        stored = session.exec(select(UserToken).where(UserToken.user_id == "abc")).one()
        assert stored.ad_account_id is None

    @pytest.mark.asyncio
    async def test_repeated_callbacks_replace_credential(self, session, oauth_service, happy_graph):
        for _ in range(3):
            await oauth_service.complete_authorization(session, "code", encode_state("abc"))

        rows = session.exec(select(UserToken).where(UserToken.user_id == "abc")).all()
        assert len(rows) == 1

    @pytest.mark.asyncio
    async def test_missing_token_fails(self, session, oauth_service, graph):
        graph.add("/oauth/access_token", {"error_description": "nope"})

        with pytest.raises(OAuthCallbackError, match="Failed to obtain access token"):
            await oauth_service.complete_authorization(session, "code", encode_state("abc"))

    @pytest.mark.asyncio
    async def test_code_exchange_upstream_error(self, session, oauth_service, graph):
        graph.add("/oauth/access_token", (400, {"error": {"message": "This authorization code has expired."}}))

        with pytest.raises(UpstreamError, match="authorization code has expired"):
            await oauth_service.complete_authorization(session, "code", encode_state("abc"))

        assert session.exec(select(UserToken)).all() == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code,state,error,message", [
        ("code", "state", "access_denied", "OAuth error: access_denied"),
        (None, "state", None, "Missing code or state parameter"),
        ("code", None, None, "Missing code or state parameter"),
        ("code", "%%%", None, "Invalid state parameter"),
    ])
    async def test_protocol_errors(self, session, oauth_service, graph, code, state, error, message):
        with pytest.raises(OAuthCallbackError, match=message):
            await oauth_service.complete_authorization(session, code, state, error=error)

        assert graph.calls == []
