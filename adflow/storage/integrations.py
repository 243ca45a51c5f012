"""ADFLOW — Integration Store."""

from typing import List, Optional

from sqlmodel import col

from adflow.core.errors import NotFound
from adflow.core.logging import get_logger
from adflow.core.timeutils import advance, utcnow
from adflow.models.automation_models import (
    Integration,
    IntegrationProvider,
    IntegrationStatus,
    IntegrationUpsert,
)
from adflow.storage.scoped import TenantScope

logger = get_logger("storage.integrations")


class IntegrationStore:
    """One integration per (tenant, provider); POSTing again replaces it."""

    def __init__(self, scope: TenantScope):
        self.scope = scope
        self.session = scope.session

    def list(self) -> List[Integration]:
        return self.scope.list(Integration, order_by=(col(Integration.id),))

    def find_by_provider(self, provider: IntegrationProvider) -> Optional[Integration]:
        return self.scope.first(Integration, Integration.provider == provider.value)

    def get_by_provider(self, provider: IntegrationProvider) -> Integration:
        integration = self.find_by_provider(provider)
        if integration is None:
            raise NotFound("integration", provider.value)
        return integration

    def is_connected(self, provider: IntegrationProvider) -> bool:
        integration = self.find_by_provider(provider)
        return integration is not None and integration.status == IntegrationStatus.CONNECTED

    def upsert(self, data: IntegrationUpsert) -> tuple[Integration, bool]:
        """Create or replace. Returns (integration, created)."""
        integration = self.find_by_provider(data.provider)
        created = integration is None
        if created:
            integration = Integration(provider=data.provider.value)
            self.scope.add(integration)
        else:
            integration.updated_at = advance(integration.updated_at)

        integration.config = dict(data.config)
        integration.status = data.status.value
        integration.last_checked = utcnow()
        self.session.add(integration)
        self.session.commit()
        self.session.refresh(integration)

        logger.info(
            f"Integration {integration.provider} {'created' if created else 'updated'}: {integration.status}",
            extra={"tenant_id": self.scope.tenant_id},
        )
        return integration, created

    def delete(self, integration_id: int) -> None:
        integration = self.scope.get(Integration, integration_id)
        self.scope.delete(integration)
        self.session.commit()
