"""ADFLOW — Resource Registry & Audience Catalog.

Thin tenant-scoped stores. Deleting an entry that a campaign still points
at is rejected rather than leaving dangling references.
"""

from typing import List, Optional

from sqlalchemy import or_
from sqlmodel import col

from adflow.core.errors import ConflictError, PreconditionFailed
from adflow.core.logging import get_logger
from adflow.models.campaign_models import RESOURCE_REF_FIELDS, Campaign
from adflow.models.resource_models import (
    Audience,
    AudienceCreate,
    AudienceUpdate,
    Resource,
    ResourceCreate,
    ResourceType,
    ResourceUpdate,
)
from adflow.storage.scoped import TenantScope

logger = get_logger("storage.resources")


def _ids(campaigns: List[Campaign]) -> str:
    return ", ".join(str(c.id) for c in campaigns)


class ResourceRegistry:
    def __init__(self, scope: TenantScope):
        self.scope = scope
        self.session = scope.session

    def list(self, resource_type: Optional[ResourceType] = None) -> List[Resource]:
        criteria = []
        if resource_type is not None:
            criteria.append(Resource.type == resource_type.value)
        return self.scope.list(Resource, *criteria, order_by=(col(Resource.id),))

    def get(self, resource_id: int) -> Resource:
        return self.scope.get(Resource, resource_id)

    def create(self, data: ResourceCreate) -> Resource:
        resource = Resource(type=data.type.value, name=data.name, value=data.value)
        self.scope.add(resource)
        self.session.commit()
        self.session.refresh(resource)
        logger.info(
            f"Resource registered: {resource.type} '{resource.name}'",
            extra={"tenant_id": self.scope.tenant_id},
        )
        return resource

    def update(self, resource_id: int, data: ResourceUpdate) -> Resource:
        resource = self.get(resource_id)
        changes = data.model_dump(exclude_unset=True)
        if "type" in changes and changes["type"] is not None:
            new_type = changes["type"].value
            if new_type != resource.type:
                users = self.referencing_campaigns(resource.id)
                if users:
                    raise ConflictError(
                        f"Resource {resource.id} is referenced by campaigns {_ids(users)}; "
                        "its type cannot change"
                    )
            changes["type"] = new_type
        for field, value in changes.items():
            if value is not None:
                setattr(resource, field, value)
        self.session.add(resource)
        self.session.commit()
        self.session.refresh(resource)
        return resource

    def delete(self, resource_id: int) -> None:
        resource = self.get(resource_id)
        users = self.referencing_campaigns(resource.id)
        if users:
            raise ConflictError(
                f"Resource {resource.id} is referenced by campaigns {_ids(users)}"
            )
        self.scope.delete(resource)
        self.session.commit()
        logger.info(f"Resource {resource_id} deleted", extra={"tenant_id": self.scope.tenant_id})

    def referencing_campaigns(self, resource_id: int) -> List[Campaign]:
        columns = [getattr(Campaign, field) == resource_id for field in RESOURCE_REF_FIELDS]
        return self.scope.list(Campaign, or_(*columns))


class AudienceCatalog:
    def __init__(self, scope: TenantScope):
        self.scope = scope
        self.session = scope.session

    def list(self) -> List[Audience]:
        return self.scope.list(Audience, order_by=(col(Audience.id),))

    def get(self, audience_id: int) -> Audience:
        return self.scope.get(Audience, audience_id)

    def create(self, data: AudienceCreate) -> Audience:
        audience = Audience(**data.model_dump(mode="json"))
        self.scope.add(audience)
        self.session.commit()
        self.session.refresh(audience)
        logger.info(
            f"Audience created: '{audience.name}'",
            extra={"tenant_id": self.scope.tenant_id},
        )
        return audience

    def update(self, audience_id: int, data: AudienceUpdate) -> Audience:
        audience = self.get(audience_id)
        changes = data.model_dump(mode="json", exclude_unset=True)

        age_min = changes.get("age_min", audience.age_min)
        age_max = changes.get("age_max", audience.age_max)
        if age_min is not None and age_max is not None and age_min > age_max:
            raise PreconditionFailed("age_min must not exceed age_max")
        audience_type = changes.get("type") or audience.type
        custom_list_file = changes.get("custom_list_file", audience.custom_list_file)
        if audience_type == "custom_list" and not custom_list_file:
            raise PreconditionFailed("custom_list audiences require custom_list_file")

        for field, value in changes.items():
            if value is None and field in ("name", "type", "interests", "behaviors", "locations"):
                continue
            setattr(audience, field, value)
        self.session.add(audience)
        self.session.commit()
        self.session.refresh(audience)
        return audience

    def delete(self, audience_id: int) -> None:
        audience = self.get(audience_id)
        users = self.referencing_campaigns(audience.id)
        if users:
            raise ConflictError(
                f"Audience {audience.id} is used by ad sets in campaigns {_ids(users)}"
            )
        self.scope.delete(audience)
        self.session.commit()
        logger.info(f"Audience {audience_id} deleted", extra={"tenant_id": self.scope.tenant_id})

    def referencing_campaigns(self, audience_id: int) -> List[Campaign]:
        # Ad sets live in a JSON blob, so filter in Python.
        return [
            c
            for c in self.scope.list(Campaign)
            if any(a.audience_id == audience_id for a in c.parsed_ad_sets())
        ]
