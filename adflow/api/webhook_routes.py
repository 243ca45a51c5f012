"""ADFLOW — Automation Callback Route.

The workflow engine reports results here, at least once per dispatch.
Duplicate and stale deliveries are answered with 200 so the sender does
not keep retrying them.
"""

import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import ValidationError
from sqlmodel import Session

from adflow.automation.dispatcher import AutomationDispatcher
from adflow.config import settings
from adflow.core.errors import StaleCallback
from adflow.database import get_session
from adflow.models.automation_models import CallbackPayload
from adflow.core.logging import get_logger

logger = get_logger("api.webhooks")

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


def _check_secret(provided: Optional[str]) -> None:
    expected = settings.automation_callback_secret
    if not expected:
        return
    if not provided or not hmac.compare_digest(provided, expected):
        raise HTTPException(status_code=401, detail="Invalid automation secret")


@router.post("/automation/status")
async def automation_status(
    request: Request,
    x_automation_secret: Optional[str] = Header(None),
    session: Session = Depends(get_session),
):
    """Resolve the active dispatch of a campaign.

    Body: ``{campaign_id, tenant_id, outcome: success|error, detail?, request_id?}``.

    The workflow must echo the ``meta.request_id`` it received in the
    dispatch payload (as ``request_id``). Without it the callback is matched
    to whatever automation is active for the campaign at arrival time, which
    can resolve a newer dispatch than the one it reports on; such callbacks
    are accepted but logged as a warning.
    """
    _check_secret(x_automation_secret)

    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Body must be JSON")
    try:
        callback = CallbackPayload.model_validate(body)
    except ValidationError as e:
        logger.warning(f"Malformed automation callback: {e.errors(include_url=False)}")
        raise HTTPException(status_code=400, detail=f"Invalid callback: {e.errors(include_url=False)}")

    try:
        resolution = AutomationDispatcher(session).resolve(callback)
    except StaleCallback as e:
        return {"status": "stale", "message": e.message}

    return {
        "status": "replayed" if resolution.replayed else "applied",
        "campaign_id": resolution.campaign.id,
        "campaign_status": resolution.campaign.status,
        "automation_id": resolution.automation.id,
        "automation_status": resolution.automation.status,
    }
