"""ADFLOW — Resource Registry & Audience Catalog Routes."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from adflow.api.deps import get_scope
from adflow.models.resource_models import (
    AudienceCreate,
    AudienceUpdate,
    ResourceCreate,
    ResourceType,
    ResourceUpdate,
)
from adflow.storage.resources import AudienceCatalog, ResourceRegistry
from adflow.storage.scoped import TenantScope

router = APIRouter(tags=["Resources"])


# ── Resources ──


@router.get("/resources")
async def list_resources(
    type: Optional[ResourceType] = Query(None, description="Filter by resource type"),
    scope: TenantScope = Depends(get_scope),
):
    resources = ResourceRegistry(scope).list(type)
    return {"status": "success", "count": len(resources), "resources": [r.model_dump() for r in resources]}


@router.post("/resources", status_code=201)
async def create_resource(body: ResourceCreate, scope: TenantScope = Depends(get_scope)):
    resource = ResourceRegistry(scope).create(body)
    return {"status": "success", "resource": resource.model_dump()}


@router.get("/resources/{resource_id}")
async def get_resource(resource_id: int, scope: TenantScope = Depends(get_scope)):
    return {"status": "success", "resource": ResourceRegistry(scope).get(resource_id).model_dump()}


@router.patch("/resources/{resource_id}")
async def update_resource(
    resource_id: int, body: ResourceUpdate, scope: TenantScope = Depends(get_scope)
):
    resource = ResourceRegistry(scope).update(resource_id, body)
    return {"status": "success", "resource": resource.model_dump()}


@router.delete("/resources/{resource_id}")
async def delete_resource(resource_id: int, scope: TenantScope = Depends(get_scope)):
    """Delete a resource. Rejected while any campaign references it."""
    ResourceRegistry(scope).delete(resource_id)
    return {"status": "success", "message": "Resource deleted"}


# ── Audiences ──


@router.get("/audiences")
async def list_audiences(scope: TenantScope = Depends(get_scope)):
    audiences = AudienceCatalog(scope).list()
    return {"status": "success", "count": len(audiences), "audiences": [a.model_dump() for a in audiences]}


@router.post("/audiences", status_code=201)
async def create_audience(body: AudienceCreate, scope: TenantScope = Depends(get_scope)):
    audience = AudienceCatalog(scope).create(body)
    return {"status": "success", "audience": audience.model_dump()}


@router.get("/audiences/{audience_id}")
async def get_audience(audience_id: int, scope: TenantScope = Depends(get_scope)):
    return {"status": "success", "audience": AudienceCatalog(scope).get(audience_id).model_dump()}


@router.patch("/audiences/{audience_id}")
async def update_audience(
    audience_id: int, body: AudienceUpdate, scope: TenantScope = Depends(get_scope)
):
    audience = AudienceCatalog(scope).update(audience_id, body)
    return {"status": "success", "audience": audience.model_dump()}


@router.delete("/audiences/{audience_id}")
async def delete_audience(audience_id: int, scope: TenantScope = Depends(get_scope)):
    """Delete an audience. Rejected while any ad set targets it."""
    AudienceCatalog(scope).delete(audience_id)
    return {"status": "success", "message": "Audience deleted"}
