"""ADFLOW — Campaign Routes.

CRUD plus the lifecycle actions. Status only changes through the action
endpoints (submit / pause / resume / complete) and the automation callback.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from adflow.api.deps import get_dispatcher, get_scope
from adflow.automation.dispatcher import AutomationDispatcher
from adflow.core.state_machine import CampaignStatus
from adflow.realtime.sse import STREAM_HEADERS, broadcaster, campaign_event_stream
from adflow.models.campaign_models import (
    Campaign,
    CampaignDraft,
    CampaignFilters,
    CampaignObjective,
    CampaignPatch,
)
from adflow.storage.campaigns import CampaignStore
from adflow.storage.scoped import TenantScope
from adflow.core.logging import get_logger

logger = get_logger("api.campaigns")

router = APIRouter(prefix="/campaigns", tags=["Campaigns"])


def _campaign_response(campaign: Campaign, **extra) -> dict:
    return {"status": "success", "campaign": campaign.model_dump(), **extra}


# ── CRUD ──


@router.get("")
async def list_campaigns(
    status: Optional[CampaignStatus] = Query(None),
    objective: Optional[CampaignObjective] = Query(None),
    search: Optional[str] = Query(None, description="Substring match on name"),
    scope: TenantScope = Depends(get_scope),
):
    """List the tenant's campaigns, most recently updated first."""
    campaigns = CampaignStore(scope).list(
        CampaignFilters(status=status, objective=objective, search=search)
    )
    return {
        "status": "success",
        "count": len(campaigns),
        "campaigns": [c.model_dump() for c in campaigns],
    }


@router.post("", status_code=201)
async def create_campaign(body: CampaignDraft, scope: TenantScope = Depends(get_scope)):
    """Create a campaign in ``draft``."""
    return _campaign_response(CampaignStore(scope).create(body))


@router.get("/stream")
async def stream_campaign_updates(request: Request, scope: TenantScope = Depends(get_scope)):
    """Server-sent events: one ``campaign:update`` per status change of this tenant.

    Opens with a ``connected`` event and sends a keep-alive comment every 25s.
    """
    subscription = broadcaster.subscribe(scope.tenant_id)
    return StreamingResponse(
        campaign_event_stream(subscription, request.is_disconnected),
        media_type="text/event-stream",
        headers=STREAM_HEADERS,
    )


@router.get("/{campaign_id}")
async def get_campaign(campaign_id: int, scope: TenantScope = Depends(get_scope)):
    return _campaign_response(CampaignStore(scope).get(campaign_id))


@router.patch("/{campaign_id}")
async def update_campaign(
    campaign_id: int, body: CampaignPatch, scope: TenantScope = Depends(get_scope)
):
    """Edit campaign content. Writing ``status`` here is rejected."""
    return _campaign_response(CampaignStore(scope).update(campaign_id, body))


@router.delete("/{campaign_id}")
async def delete_campaign(campaign_id: int, scope: TenantScope = Depends(get_scope)):
    CampaignStore(scope).delete(campaign_id)
    return {"status": "success", "message": "Campaign deleted"}


# ── Lifecycle ──


@router.post("/{campaign_id}/submit")
async def submit_campaign(
    campaign_id: int,
    scope: TenantScope = Depends(get_scope),
    dispatcher: AutomationDispatcher = Depends(get_dispatcher),
):
    """Send the campaign to the automation workflow.

    On acknowledgement the campaign moves to ``pending`` and waits for the
    workflow callback. On delivery failure the attempt is recorded as
    ``failed``, the campaign keeps its status and the call can be retried.
    """
    record = await dispatcher.dispatch(scope.tenant_id, campaign_id)
    campaign = CampaignStore(scope).get(campaign_id)
    return _campaign_response(campaign, automation=record.model_dump())


@router.post("/{campaign_id}/pause")
async def pause_campaign(
    campaign_id: int,
    scope: TenantScope = Depends(get_scope),
    dispatcher: AutomationDispatcher = Depends(get_dispatcher),
):
    return _campaign_response(dispatcher.pause(scope.tenant_id, campaign_id))


@router.post("/{campaign_id}/resume")
async def resume_campaign(
    campaign_id: int,
    scope: TenantScope = Depends(get_scope),
    dispatcher: AutomationDispatcher = Depends(get_dispatcher),
):
    return _campaign_response(dispatcher.resume(scope.tenant_id, campaign_id))


@router.post("/{campaign_id}/complete")
async def complete_campaign(
    campaign_id: int,
    scope: TenantScope = Depends(get_scope),
    dispatcher: AutomationDispatcher = Depends(get_dispatcher),
):
    return _campaign_response(dispatcher.complete(scope.tenant_id, campaign_id))


@router.get("/{campaign_id}/automations")
async def list_automations(
    campaign_id: int,
    scope: TenantScope = Depends(get_scope),
    dispatcher: AutomationDispatcher = Depends(get_dispatcher),
):
    """Dispatch attempts for a campaign, newest first."""
    records = dispatcher.history(scope.tenant_id, campaign_id)
    return {
        "status": "success",
        "count": len(records),
        "automations": [r.model_dump() for r in records],
    }
