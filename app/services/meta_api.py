import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from app.core.config import Settings
from app.core.errors import UpstreamError

logger = logging.getLogger(__name__)

ACCOUNT_PREFIX = "act_"

AD_ACCOUNT_FIELDS = "id,name,account_id,currency,timezone_name"
CAMPAIGN_FIELDS = "id,name,status,objective,daily_budget,lifetime_budget,created_time,updated_time"
ADSET_FIELDS = (
    "id,name,status,campaign_id,daily_budget,lifetime_budget,"
    "billing_event,optimization_goal,created_time"
)
INSIGHT_FIELDS = "campaign_id,campaign_name,spend,impressions,clicks,ctr,cpc,cpp,cpm,reach,frequency,actions"
LEADGEN_FORM_FIELDS = "id,name,status"
LEAD_FIELDS = "id,created_time,field_data"

DEFAULT_LIMIT = 25
DEFAULT_DATE_PRESET = "last_30d"
DEFAULT_LEVEL = "campaign"


def normalize_account_id(ad_account_id: str) -> str:
    """Graph API wants ad accounts addressed as act_<id>."""
    if ad_account_id.startswith(ACCOUNT_PREFIX):
        return ad_account_id
    return f"{ACCOUNT_PREFIX}{ad_account_id}"


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        message = body["error"].get("message")
        if message:
            return message
    return f"Request failed with status code {response.status_code}"


@dataclass
class LeadsResult:
    data: List[Dict[str, Any]]
    paging: Optional[Dict[str, Any]] = None
    failed_forms: List[str] = field(default_factory=list)


class MetaGraphClient:
    """Read-only access to the Marketing (Graph) API."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = settings.graph_api_base
        self.timeout = settings.META_HTTP_TIMEOUT
        self.max_forms = settings.LEADS_MAX_FORMS
        self.leads_per_form = settings.LEADS_PER_FORM
        self._transport = transport

    # --- LOW LEVEL ---
    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        query = {k: v for k, v in (params or {}).items() if v is not None}
        url = f"{self.base_url}{path}"

        async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
            try:
                response = await client.get(url, params=query)
            except httpx.HTTPError as e:
                # never log the URL, it carries the token
                logger.warning(f"Graph API transport error on {path}: {type(e).__name__}")
                raise UpstreamError(f"Meta API Error: {e}") from e

        if response.is_error:
            message = _error_message(response)
            logger.warning(f"Graph API {response.status_code} on {path}: {message}")
            raise UpstreamError(f"Meta API Error: {message}", upstream_status=response.status_code)

        return response.json()

    async def request(self, access_token: str, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        # Graph API takes the bearer token as a query parameter
        return await self.get(path, {"access_token": access_token, **(params or {})})

    # --- RESOURCES ---
    async def get_ad_accounts(self, access_token: str) -> Dict[str, Any]:
        return await self.request(access_token, "/me/adaccounts", {"fields": AD_ACCOUNT_FIELDS})

    async def get_campaigns(self, access_token: str, ad_account_id: str,
                            limit: Optional[int] = None, fields: Optional[str] = None) -> Dict[str, Any]:
        account = normalize_account_id(ad_account_id)
        return await self.request(access_token, f"/{account}/campaigns", {
            "fields": fields or CAMPAIGN_FIELDS,
            "limit": limit or DEFAULT_LIMIT,
        })

    async def get_ad_sets(self, access_token: str, ad_account_id: str, campaign_id: Optional[str] = None,
                          limit: Optional[int] = None, fields: Optional[str] = None) -> Dict[str, Any]:
        account = normalize_account_id(ad_account_id)
        path = f"/{campaign_id}/adsets" if campaign_id else f"/{account}/adsets"
        return await self.request(access_token, path, {
            "fields": fields or ADSET_FIELDS,
            "limit": limit or DEFAULT_LIMIT,
        })

    async def get_spend(self, access_token: str, ad_account_id: str,
                        date_preset: Optional[str] = None, level: Optional[str] = None,
                        time_range: Optional[Dict[str, str]] = None,
                        limit: Optional[int] = None) -> Dict[str, Any]:
        account = normalize_account_id(ad_account_id)
        return await self.request(access_token, f"/{account}/insights", {
            "level": level or DEFAULT_LEVEL,
            "date_preset": date_preset or DEFAULT_DATE_PRESET,
            "fields": INSIGHT_FIELDS,
            "time_range": json.dumps(time_range) if time_range else None,
            "limit": limit or DEFAULT_LIMIT,
        })

    async def get_leads(self, access_token: str, ad_account_id: str, limit: Optional[int] = None) -> LeadsResult:
        """
        Leads hang off lead-gen forms, so list the account's forms first and
        then pull a page of leads per form. Only the first max_forms forms are
        visited; a form that fails is logged and reported in failed_forms.
        """
        account = normalize_account_id(ad_account_id)
        forms = await self.request(access_token, f"/{account}/leadgen_forms", {
            "fields": LEADGEN_FORM_FIELDS,
            "limit": limit or DEFAULT_LIMIT,
        })

        result = LeadsResult(data=[], paging=forms.get("paging"))

        for form in (forms.get("data") or [])[:self.max_forms]:
            try:
                form_leads = await self.request(access_token, f"/{form['id']}/leads", {
                    "fields": LEAD_FIELDS,
                    "limit": self.leads_per_form,
                })
            except UpstreamError as e:
                logger.error(f"Error fetching leads for form {form['id']}: {e.message}")
                result.failed_forms.append(form["id"])
                continue

            for lead in form_leads.get("data") or []:
                result.data.append({**lead, "form_id": form["id"], "form_name": form.get("name")})

        return result
