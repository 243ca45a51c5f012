"""ADFLOW — Tenant Model."""

from typing import Optional

from pydantic import BaseModel, Field as PydanticField, NaiveDatetime
from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field

from adflow.core.timeutils import utcnow


class Tenant(SQLModel, table=True):
    """Isolated customer account. Every other row hangs off one of these.

    Created at signup and never modified afterwards.
    """

    __tablename__ = "tenants"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(description="Client name sent to the workflow")
    created_at: NaiveDatetime = Field(default_factory=utcnow, sa_type=DateTime)


class TenantCreate(BaseModel):
    """Request body for POST /tenants."""

    name: str = PydanticField(min_length=1, max_length=200)
