"""
Test configuration and fixtures.

Provides:
- In-memory SQLite engine / session per test
- Two tenants with resources, an audience and a connected meta_ads integration
- Webhook clients backed by httpx.MockTransport
"""

import os
from datetime import date
from typing import Callable, List, Optional

os.environ.setdefault("SCHEDULER_ENABLED", "false")

import httpx
import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from adflow.automation.webhook_client import WebhookClient
from adflow.models import automation_models, campaign_models, resource_models, tenant_models  # noqa: F401
from adflow.models.automation_models import (
    IntegrationProvider,
    IntegrationStatus,
    IntegrationUpsert,
)
from adflow.models.campaign_models import AdSet, CampaignDraft, CampaignObjective, Creative
from adflow.models.resource_models import AudienceCreate, ResourceCreate, ResourceType
from adflow.models.tenant_models import Tenant
from adflow.storage.campaigns import CampaignStore
from adflow.storage.integrations import IntegrationStore
from adflow.storage.resources import AudienceCatalog, ResourceRegistry
from adflow.storage.scoped import TenantScope

WEBHOOK_URL = "https://hooks.example.test/webhook/campaigns"


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


# =============================================================================
# Tenants & catalog
# =============================================================================


def _make_tenant(session: Session, name: str) -> Tenant:
    tenant = Tenant(name=name)
    session.add(tenant)
    session.commit()
    session.refresh(tenant)
    return tenant


@pytest.fixture
def tenant(session):
    return _make_tenant(session, "Acme Imóveis")


@pytest.fixture
def other_tenant(session):
    return _make_tenant(session, "Globex")


@pytest.fixture
def scope(session, tenant):
    return TenantScope(session, tenant.id)


@pytest.fixture
def other_scope(session, other_tenant):
    return TenantScope(session, other_tenant.id)


@pytest.fixture
def resources(scope):
    registry = ResourceRegistry(scope)
    return {
        "account": registry.create(ResourceCreate(type=ResourceType.ACCOUNT, name="Main account", value="act_123456")),
        "page": registry.create(ResourceCreate(type=ResourceType.PAGE, name="Acme Page", value="998877")),
        "leadform": registry.create(ResourceCreate(type=ResourceType.LEADFORM, name="Contact form", value="55501")),
        "whatsapp": registry.create(ResourceCreate(type=ResourceType.WHATSAPP, name="Sales line", value="5511999990000")),
    }


@pytest.fixture
def audience(scope):
    return AudienceCatalog(scope).create(
        AudienceCreate(
            name="Homebuyers 25-45",
            age_min=25,
            age_max=45,
            interests=["Real estate", "Mortgage"],
            behaviors=["Likely to move"],
            locations=["BR", "São Paulo"],
        )
    )


@pytest.fixture
def connected_meta(scope):
    integration, _ = IntegrationStore(scope).upsert(
        IntegrationUpsert(
            provider=IntegrationProvider.META_ADS,
            status=IntegrationStatus.CONNECTED,
            config={"webhookUrl": WEBHOOK_URL},
        )
    )
    return integration


def make_draft(resources, audience, **overrides) -> CampaignDraft:
    fields = dict(
        name="Spring launch",
        objective=CampaignObjective.LEAD,
        account_id=resources["account"].id,
        page_id=resources["page"].id,
        leadform_id=resources["leadform"].id,
        ad_sets=[
            AdSet(
                audience_id=audience.id,
                budget=50.0,
                start_date=date(2026, 1, 1),
                end_date=date(2026, 12, 31),
            )
        ],
        creatives=[Creative(title="Your new home", text="Book a visit today", asset_folder_ref=None)],
    )
    fields.update(overrides)
    return CampaignDraft(**fields)


@pytest.fixture
def draft_campaign(scope, resources, audience, connected_meta):
    return CampaignStore(scope).create(make_draft(resources, audience))


# =============================================================================
# Webhook
# =============================================================================


class WebhookRecorder:
    """MockTransport handler that records requests and replies per config."""

    def __init__(self, status_code: int = 200, error: Optional[Exception] = None):
        self.status_code = status_code
        self.error = error
        self.requests: List[httpx.Request] = []
        self.on_request: Optional[Callable[[httpx.Request], None]] = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.on_request is not None:
            self.on_request(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, json={"message": "Workflow was started"})

    def client(self) -> WebhookClient:
        return WebhookClient(
            transport=httpx.MockTransport(self),
            max_retries=0,
            retry_base_delay=0,
        )


@pytest.fixture
def webhook():
    return WebhookRecorder()
