"""ADFLOW — Shared Route Dependencies."""

from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlmodel import Session

from adflow.automation.dispatcher import AutomationDispatcher
from adflow.automation.webhook_client import WebhookClient
from adflow.database import get_session
from adflow.storage.scoped import TenantScope


def get_tenant_id(x_tenant_id: Optional[str] = Header(None)) -> int:
    """Caller's tenant from the X-Tenant-ID header (set by the auth proxy)."""
    if not x_tenant_id:
        raise HTTPException(status_code=400, detail="X-Tenant-ID header is required")
    try:
        return int(x_tenant_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="X-Tenant-ID must be an integer")


def get_scope(
    tenant_id: int = Depends(get_tenant_id),
    session: Session = Depends(get_session),
) -> TenantScope:
    return TenantScope(session, tenant_id)


async def get_webhook_client():
    """Dependency — yields a webhook client closed after the request."""
    client = WebhookClient()
    try:
        yield client
    finally:
        await client.close()


def get_dispatcher(
    session: Session = Depends(get_session),
    webhook: WebhookClient = Depends(get_webhook_client),
) -> AutomationDispatcher:
    return AutomationDispatcher(session, webhook)
