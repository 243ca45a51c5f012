"""ADFLOW — Campaign Models.

The structured ``ad_sets`` / ``creatives`` blobs are the source of truth.
The flat ``budget`` / ``audience_ids`` / ``title`` / ``message`` /
``drive_folder_id`` columns are deprecated mirrors kept for older readers;
they are recomputed on every write and never accepted as input.
"""

from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field as PydanticField, NaiveDatetime, model_validator
from sqlalchemy import JSON, Column, DateTime
from sqlmodel import SQLModel, Field

from adflow.core.state_machine import CampaignStatus
from adflow.core.timeutils import utcnow


class CampaignObjective(str, Enum):
    LEAD = "LEAD"
    TRAFFIC = "TRAFFIC"
    WHATSAPP = "WHATSAPP"
    CONVERSIONS = "CONVERSIONS"
    REACH = "REACH"


# ─────────────────────────────────────────────
# STRUCTURED BLOBS — ad sets & creatives
# ─────────────────────────────────────────────


class AdSet(BaseModel):
    """An (audience, budget, schedule) triple within a campaign."""

    audience_id: int
    budget: float = PydanticField(gt=0, description="Daily budget in account currency")
    start_date: date
    end_date: Optional[date] = None
    name: Optional[str] = None
    optimization_goal: Optional[str] = None
    genders: List[int] = []  # Meta codes: 1 = male, 2 = female

    @model_validator(mode="after")
    def check_schedule(self):
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class Creative(BaseModel):
    """One creative asset: copy plus an optional Drive folder of media."""

    title: str = ""
    text: str = ""
    asset_folder_ref: Optional[str] = None


# ─────────────────────────────────────────────
# DATABASE MODEL
# ─────────────────────────────────────────────


class Campaign(SQLModel, table=True):
    """Campaign definition plus the lifecycle status driven by automation."""

    __tablename__ = "campaigns"

    id: Optional[int] = Field(default=None, primary_key=True)
    tenant_id: int = Field(foreign_key="tenants.id", index=True)
    name: str
    objective: str = Field(description="LEAD | TRAFFIC | WHATSAPP | CONVERSIONS | REACH")
    status: str = Field(default=CampaignStatus.DRAFT.value, index=True)
    status_detail: Optional[str] = None

    account_id: Optional[int] = Field(default=None, foreign_key="resources.id")
    page_id: Optional[int] = Field(default=None, foreign_key="resources.id")
    instagram_id: Optional[int] = Field(default=None, foreign_key="resources.id")
    whatsapp_id: Optional[int] = Field(default=None, foreign_key="resources.id")
    leadform_id: Optional[int] = Field(default=None, foreign_key="resources.id")
    website_url: Optional[str] = None

    ad_sets: List[Dict[str, Any]] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )
    creatives: List[Dict[str, Any]] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )

    # Deprecated mirrors
    budget: Optional[str] = None
    audience_ids: List[int] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    title: Optional[str] = None
    message: Optional[str] = None
    drive_folder_id: Optional[str] = None

    created_at: NaiveDatetime = Field(default_factory=utcnow, sa_type=DateTime)
    updated_at: NaiveDatetime = Field(default_factory=utcnow, sa_type=DateTime)

    # ── Typed views over the JSON blobs ──

    def parsed_ad_sets(self) -> List[AdSet]:
        return [AdSet.model_validate(a) for a in self.ad_sets or []]

    def parsed_creatives(self) -> List[Creative]:
        return [Creative.model_validate(c) for c in self.creatives or []]

    def latest_end_date(self) -> Optional[date]:
        """Last scheduled day across ad sets, or None if any runs open-ended."""
        ad_sets = self.parsed_ad_sets()
        if not ad_sets or any(a.end_date is None for a in ad_sets):
            return None
        return max(a.end_date for a in ad_sets)


# Resource reference columns and the resource type each must point at.
RESOURCE_REF_FIELDS: Dict[str, str] = {
    "account_id": "account",
    "page_id": "page",
    "instagram_id": "instagram",
    "whatsapp_id": "whatsapp",
    "leadform_id": "leadform",
}


# ─────────────────────────────────────────────
# PYDANTIC SCHEMAS — Request bodies
# ─────────────────────────────────────────────


class CampaignDraft(BaseModel):
    """Request body for POST /campaigns."""

    model_config = ConfigDict(extra="forbid")

    name: str = PydanticField(min_length=1)
    objective: CampaignObjective
    account_id: Optional[int] = None
    page_id: Optional[int] = None
    instagram_id: Optional[int] = None
    whatsapp_id: Optional[int] = None
    leadform_id: Optional[int] = None
    website_url: Optional[str] = None
    ad_sets: List[AdSet] = []
    creatives: List[Creative] = []


class CampaignPatch(BaseModel):
    """Request body for PATCH /campaigns/{id}. Only set fields are applied.

    ``status`` is accepted by the schema so that attempts to write it can be
    rejected with a clear error instead of being silently dropped.
    """

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = PydanticField(default=None, min_length=1)
    objective: Optional[CampaignObjective] = None
    account_id: Optional[int] = None
    page_id: Optional[int] = None
    instagram_id: Optional[int] = None
    whatsapp_id: Optional[int] = None
    leadform_id: Optional[int] = None
    website_url: Optional[str] = None
    ad_sets: Optional[List[AdSet]] = None
    creatives: Optional[List[Creative]] = None
    status: Optional[str] = None
    status_detail: Optional[str] = None


class CampaignFilters(BaseModel):
    status: Optional[CampaignStatus] = None
    objective: Optional[CampaignObjective] = None
    search: Optional[str] = None
