"""ADFLOW — Tenant Routes."""

from fastapi import APIRouter, Depends
from sqlmodel import Session

from adflow.api.deps import get_scope
from adflow.database import get_session
from adflow.models.tenant_models import Tenant, TenantCreate
from adflow.storage.scoped import TenantScope
from adflow.core.logging import get_logger

logger = get_logger("api.tenants")

router = APIRouter(prefix="/tenants", tags=["Tenants"])


@router.post("", status_code=201)
async def create_tenant(body: TenantCreate, session: Session = Depends(get_session)):
    """Create a tenant at signup. Tenants are immutable afterwards."""
    tenant = Tenant(name=body.name.strip())
    session.add(tenant)
    session.commit()
    session.refresh(tenant)
    logger.info(f"Tenant created: {tenant.name}", extra={"tenant_id": tenant.id})
    return {"status": "success", "tenant": tenant.model_dump()}


@router.get("/me")
async def get_current_tenant(scope: TenantScope = Depends(get_scope)):
    return {"status": "success", "tenant": scope.tenant.model_dump()}
