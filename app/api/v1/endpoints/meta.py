import json
from typing import Optional
from fastapi import APIRouter, Depends, Query

from app.api import deps
from app.api.deps import MetaContext
from app.core.errors import ValidationError
from app.schemas.meta import DataEnvelope, LeadsEnvelope
from app.services.meta_api import MetaGraphClient

router = APIRouter()

TIME_RANGE_HINT = 'Invalid timeRange format. Expected JSON string like: {"since":"2024-01-01","until":"2024-01-31"}'


def envelope(result: dict) -> DataEnvelope:
    """Graph lists come back as {data, paging}; anything else is passed whole."""
    return DataEnvelope(data=result.get("data", result), paging=result.get("paging"))


def parse_time_range(raw: Optional[str]) -> Optional[dict]:
    if not raw:
        return None
    try:
        time_range = json.loads(raw)
    except ValueError:
        raise ValidationError(TIME_RANGE_HINT)
    if not isinstance(time_range, dict):
        raise ValidationError(TIME_RANGE_HINT)
    return time_range


@router.get("/accounts", response_model=DataEnvelope)
async def read_accounts(
    ctx: MetaContext = Depends(deps.get_meta_context),
    graph: MetaGraphClient = Depends(deps.get_graph_client),
):
    return envelope(await graph.get_ad_accounts(ctx.access_token))


@router.get("/campaigns", response_model=DataEnvelope)
async def read_campaigns(
    limit: Optional[int] = None,
    fields: Optional[str] = None,
    ctx: MetaContext = Depends(deps.get_meta_context),
    graph: MetaGraphClient = Depends(deps.get_graph_client),
):
    ad_account_id = ctx.require_ad_account()
    campaigns = await graph.get_campaigns(ctx.access_token, ad_account_id, limit=limit, fields=fields)
    return envelope(campaigns)


@router.get("/spend", response_model=DataEnvelope)
async def read_spend(
    date_preset: Optional[str] = Query(None, alias="datePreset"),
    level: Optional[str] = None,
    time_range: Optional[str] = Query(None, alias="timeRange"),
    limit: Optional[int] = None,
    ctx: MetaContext = Depends(deps.get_meta_context),
    graph: MetaGraphClient = Depends(deps.get_graph_client),
):
    """Insights (spend, reach, clicks...) - last 30 days per campaign unless told otherwise."""
    ad_account_id = ctx.require_ad_account()
    spend = await graph.get_spend(
        ctx.access_token,
        ad_account_id,
        date_preset=date_preset,
        level=level,
        time_range=parse_time_range(time_range),
        limit=limit,
    )
    return envelope(spend)


@router.get("/leads", response_model=LeadsEnvelope)
async def read_leads(
    limit: Optional[int] = None,
    ctx: MetaContext = Depends(deps.get_meta_context),
    graph: MetaGraphClient = Depends(deps.get_graph_client),
):
    ad_account_id = ctx.require_ad_account()
    leads = await graph.get_leads(ctx.access_token, ad_account_id, limit=limit)
    return LeadsEnvelope(data=leads.data, paging=leads.paging, failedForms=leads.failed_forms)


@router.get("/adsets", response_model=DataEnvelope)
async def read_ad_sets(
    campaign_id: Optional[str] = Query(None, alias="campaignId"),
    limit: Optional[int] = None,
    fields: Optional[str] = None,
    ctx: MetaContext = Depends(deps.get_meta_context),
    graph: MetaGraphClient = Depends(deps.get_graph_client),
):
    ad_account_id = ctx.require_ad_account()
    ad_sets = await graph.get_ad_sets(
        ctx.access_token, ad_account_id, campaign_id=campaign_id, limit=limit, fields=fields
    )
    return envelope(ad_sets)
