"""ADFLOW — Automation & Integration Models."""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field as PydanticField,
    NaiveDatetime,
    field_validator,
    model_validator,
)
from sqlalchemy import JSON, Column, DateTime, Index, UniqueConstraint, text
from sqlmodel import SQLModel, Field

from adflow.core.timeutils import utcnow


class AutomationStatus(str, Enum):
    PENDING = "pending"  # Row claimed, webhook not yet acknowledged
    SENT = "sent"  # Webhook accepted (2xx), awaiting callback
    SUCCESS = "success"
    FAILED = "failed"


ACTIVE_AUTOMATION_STATUSES = (AutomationStatus.PENDING.value, AutomationStatus.SENT.value)


class IntegrationProvider(str, Enum):
    META_ADS = "meta_ads"
    GOOGLE_DRIVE = "google_drive"


class IntegrationStatus(str, Enum):
    PENDING = "pending"
    CONNECTED = "connected"
    ERROR = "error"


class CallbackOutcome(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


# ─────────────────────────────────────────────
# DATABASE MODELS
# ─────────────────────────────────────────────


class Integration(SQLModel, table=True):
    """Provider connection a tenant must have before campaigns can dispatch."""

    __tablename__ = "integrations"
    __table_args__ = (
        UniqueConstraint("tenant_id", "provider", name="uq_integration_tenant_provider"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tenant_id: int = Field(foreign_key="tenants.id", index=True)
    provider: str = Field(description="meta_ads | google_drive")
    config: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    status: str = Field(default=IntegrationStatus.PENDING.value)
    last_checked: Optional[NaiveDatetime] = Field(default=None, sa_type=DateTime)
    created_at: NaiveDatetime = Field(default_factory=utcnow, sa_type=DateTime)
    updated_at: NaiveDatetime = Field(default_factory=utcnow, sa_type=DateTime)


class AutomationRecord(SQLModel, table=True):
    """One dispatch attempt of a campaign to the external workflow.

    The partial unique index allows any number of resolved attempts per
    campaign but at most one in ``pending``/``sent``.
    """

    __tablename__ = "automation_records"
    __table_args__ = (
        Index(
            "uq_automation_active_per_campaign",
            "campaign_id",
            unique=True,
            sqlite_where=text("status IN ('pending', 'sent')"),
            postgresql_where=text("status IN ('pending', 'sent')"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tenant_id: int = Field(foreign_key="tenants.id", index=True)
    campaign_id: int = Field(foreign_key="campaigns.id", index=True)
    request_id: str = Field(unique=True, description="Token echoed back by callbacks")
    webhook_url: str
    status: str = Field(default=AutomationStatus.PENDING.value, index=True)
    payload: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    response: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    created_at: NaiveDatetime = Field(default_factory=utcnow, sa_type=DateTime)
    sent_at: Optional[NaiveDatetime] = Field(default=None, sa_type=DateTime)
    completed_at: Optional[NaiveDatetime] = Field(default=None, sa_type=DateTime)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_AUTOMATION_STATUSES

    @property
    def resolved_by_callback(self) -> bool:
        return not self.is_active and bool(self.response) and "outcome" in self.response


# ─────────────────────────────────────────────
# PYDANTIC SCHEMAS
# ─────────────────────────────────────────────


class IntegrationUpsert(BaseModel):
    """Request body for POST /integrations (create or replace by provider)."""

    provider: IntegrationProvider
    config: Dict[str, Any] = {}
    status: IntegrationStatus = IntegrationStatus.PENDING


_SUCCESS_WORDS = {"success", "succeeded", "ok", "active", "created"}
_ERROR_WORDS = {"error", "failed", "failure", "rejected"}


class CallbackPayload(BaseModel):
    """Inbound automation result.

    Accepts camelCase and snake_case keys, ``external_id`` for the campaign
    id, and ``status`` (active / error) in place of ``outcome``.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    campaign_id: int = PydanticField(
        validation_alias=AliasChoices("campaign_id", "campaignId", "external_id", "externalId")
    )
    tenant_id: int = PydanticField(validation_alias=AliasChoices("tenant_id", "tenantId"))
    outcome: CallbackOutcome = PydanticField(validation_alias=AliasChoices("outcome", "status"))
    detail: Optional[str] = PydanticField(
        default=None,
        validation_alias=AliasChoices("detail", "status_detail", "statusDetail", "message"),
    )
    request_id: Optional[str] = PydanticField(
        default=None, validation_alias=AliasChoices("request_id", "requestId")
    )

    @model_validator(mode="before")
    @classmethod
    def unwrap(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        campaign_id = data.get("campaign_id", data.get("campaignId"))
        external_id = data.get("external_id", data.get("externalId"))
        if campaign_id is not None and external_id is not None and str(campaign_id) != str(external_id):
            raise ValueError("campaign_id and external_id refer to different campaigns")
        meta = data.get("meta")
        if isinstance(meta, dict) and "request_id" in meta and "request_id" not in data:
            data = {**data, "request_id": meta["request_id"]}
        return data

    @field_validator("outcome", mode="before")
    @classmethod
    def normalize_outcome(cls, v: Any) -> Any:
        word = str(v).strip().lower()
        if word in _SUCCESS_WORDS:
            return CallbackOutcome.SUCCESS
        if word in _ERROR_WORDS:
            return CallbackOutcome.ERROR
        raise ValueError(f"Unknown outcome '{v}'")

    def as_response(self) -> Dict[str, Any]:
        """Snapshot stored on the resolved AutomationRecord."""
        return {
            "outcome": self.outcome.value,
            "detail": self.detail,
            "request_id": self.request_id,
        }
