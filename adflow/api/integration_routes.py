"""ADFLOW — Integration Routes."""

from fastapi import APIRouter, Depends, Response

from adflow.api.deps import get_scope
from adflow.models.automation_models import IntegrationProvider, IntegrationUpsert
from adflow.storage.integrations import IntegrationStore
from adflow.storage.scoped import TenantScope

router = APIRouter(prefix="/integrations", tags=["Integrations"])


@router.get("")
async def list_integrations(scope: TenantScope = Depends(get_scope)):
    integrations = IntegrationStore(scope).list()
    return {
        "status": "success",
        "count": len(integrations),
        "integrations": [i.model_dump() for i in integrations],
    }


@router.get("/{provider}")
async def get_integration(provider: IntegrationProvider, scope: TenantScope = Depends(get_scope)):
    integration = IntegrationStore(scope).get_by_provider(provider)
    return {"status": "success", "integration": integration.model_dump()}


@router.post("")
async def upsert_integration(
    body: IntegrationUpsert, response: Response, scope: TenantScope = Depends(get_scope)
):
    """Create the provider integration, or replace it if one exists."""
    integration, created = IntegrationStore(scope).upsert(body)
    response.status_code = 201 if created else 200
    return {"status": "success", "integration": integration.model_dump()}


@router.delete("/{integration_id}")
async def delete_integration(integration_id: int, scope: TenantScope = Depends(get_scope)):
    IntegrationStore(scope).delete(integration_id)
    return {"status": "success", "message": "Integration deleted"}
