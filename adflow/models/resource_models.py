"""ADFLOW — Resource Registry & Audience Catalog Models."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field as PydanticField, NaiveDatetime, field_validator, model_validator
from sqlalchemy import JSON, Column, DateTime
from sqlmodel import SQLModel, Field

from adflow.core.timeutils import utcnow


class ResourceType(str, Enum):
    """Kinds of external advertising assets a campaign can point at."""

    ACCOUNT = "account"
    PAGE = "page"
    INSTAGRAM = "instagram"
    WHATSAPP = "whatsapp"
    LEADFORM = "leadform"
    WEBSITE = "website"


class AudienceType(str, Enum):
    INTEREST = "interest"
    CUSTOM_LIST = "custom_list"


# ─────────────────────────────────────────────
# DATABASE MODELS
# ─────────────────────────────────────────────


class Resource(SQLModel, table=True):
    """Tenant-scoped named reference to an ad account, page, etc."""

    __tablename__ = "resources"

    id: Optional[int] = Field(default=None, primary_key=True)
    tenant_id: int = Field(foreign_key="tenants.id", index=True)
    type: str = Field(index=True, description="account | page | instagram | whatsapp | leadform | website")
    name: str
    value: str = Field(description="The platform ID or URL")
    created_at: NaiveDatetime = Field(default_factory=utcnow, sa_type=DateTime)


class Audience(SQLModel, table=True):
    """Tenant-scoped targeting definition referenced by campaign ad sets."""

    __tablename__ = "audiences"

    id: Optional[int] = Field(default=None, primary_key=True)
    tenant_id: int = Field(foreign_key="tenants.id", index=True)
    name: str
    type: str = Field(description="interest | custom_list")
    age_min: Optional[int] = None
    age_max: Optional[int] = None
    interests: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    behaviors: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    locations: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    custom_list_file: Optional[str] = None
    estimated_size: Optional[str] = None
    created_at: NaiveDatetime = Field(default_factory=utcnow, sa_type=DateTime)


# ─────────────────────────────────────────────
# PYDANTIC SCHEMAS — Request bodies
# ─────────────────────────────────────────────


class ResourceCreate(BaseModel):
    type: ResourceType
    name: str = PydanticField(min_length=1)
    value: str = PydanticField(min_length=1)


class ResourceUpdate(BaseModel):
    type: Optional[ResourceType] = None
    name: Optional[str] = PydanticField(default=None, min_length=1)
    value: Optional[str] = PydanticField(default=None, min_length=1)


def _clean_tags(values: Optional[List[str]]) -> Optional[List[str]]:
    if values is None:
        return None
    return [v.strip() for v in values if v and v.strip()]


class AudienceFields(BaseModel):
    """Validation shared by create and update bodies."""

    age_min: Optional[int] = PydanticField(default=None, ge=13, le=65)
    age_max: Optional[int] = PydanticField(default=None, ge=13, le=65)

    @model_validator(mode="after")
    def check_age_range(self):
        if self.age_min is not None and self.age_max is not None and self.age_min > self.age_max:
            raise ValueError("age_min must not exceed age_max")
        return self


class AudienceCreate(AudienceFields):
    name: str = PydanticField(min_length=1)
    type: AudienceType = AudienceType.INTEREST
    interests: List[str] = []
    behaviors: List[str] = []
    locations: List[str]
    custom_list_file: Optional[str] = None
    estimated_size: Optional[str] = None

    @field_validator("interests", "behaviors", "locations")
    @classmethod
    def clean_tags(cls, v):
        return _clean_tags(v)

    @model_validator(mode="after")
    def check_shape(self):
        if not self.locations:
            raise ValueError("locations must not be empty")
        if self.type is AudienceType.CUSTOM_LIST and not self.custom_list_file:
            raise ValueError("custom_list audiences require custom_list_file")
        return self


class AudienceUpdate(AudienceFields):
    name: Optional[str] = PydanticField(default=None, min_length=1)
    type: Optional[AudienceType] = None
    interests: Optional[List[str]] = None
    behaviors: Optional[List[str]] = None
    locations: Optional[List[str]] = None
    custom_list_file: Optional[str] = None
    estimated_size: Optional[str] = None

    @field_validator("interests", "behaviors", "locations")
    @classmethod
    def clean_tags(cls, v):
        return _clean_tags(v)

    @model_validator(mode="after")
    def check_locations(self):
        if self.locations is not None and not self.locations:
            raise ValueError("locations must not be empty")
        return self
