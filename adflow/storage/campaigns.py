"""ADFLOW — Campaign Store.

CRUD over campaign definitions. Status is read-only here: the automation
dispatcher is the only writer of ``Campaign.status``.
"""

from typing import Any, Dict, List, Optional

from sqlmodel import col

from adflow.core.errors import ConflictError, PreconditionFailed
from adflow.core.logging import get_logger
from adflow.core.state_machine import EDITABLE_STATES, CampaignStatus
from adflow.core.timeutils import advance
from adflow.models.automation_models import ACTIVE_AUTOMATION_STATUSES, AutomationRecord
from adflow.models.campaign_models import (
    RESOURCE_REF_FIELDS,
    AdSet,
    Campaign,
    CampaignDraft,
    CampaignFilters,
    CampaignPatch,
    Creative,
)
from adflow.models.resource_models import Audience, Resource
from adflow.storage.scoped import TenantScope

logger = get_logger("storage.campaigns")

STATUS_FIELDS = ("status", "status_detail")
STRUCTURED_FIELDS = {"ad_sets": AdSet, "creatives": Creative}


def mirror_legacy_fields(campaign: Campaign) -> None:
    """Recompute the deprecated flat columns from ad sets and creatives."""
    ad_sets = campaign.parsed_ad_sets()
    creatives = campaign.parsed_creatives()

    campaign.budget = f"{ad_sets[0].budget:.2f}" if ad_sets else None
    campaign.audience_ids = list(dict.fromkeys(a.audience_id for a in ad_sets))

    primary = next((c for c in creatives if c.title or c.text), None)
    campaign.title = primary.title or None if primary else None
    campaign.message = primary.text or None if primary else None
    campaign.drive_folder_id = next(
        (c.asset_folder_ref for c in creatives if c.asset_folder_ref), None
    )


def touch(campaign: Campaign) -> None:
    campaign.updated_at = advance(campaign.updated_at)


class CampaignStore:
    """Tenant-scoped campaign persistence."""

    def __init__(self, scope: TenantScope):
        self.scope = scope
        self.session = scope.session

    # ── Reads ──

    def get(self, campaign_id: int) -> Campaign:
        return self.scope.get(Campaign, campaign_id)

    def list(self, filters: Optional[CampaignFilters] = None) -> List[Campaign]:
        filters = filters or CampaignFilters()
        criteria = []
        if filters.status is not None:
            criteria.append(Campaign.status == filters.status.value)
        if filters.objective is not None:
            criteria.append(Campaign.objective == filters.objective.value)
        if filters.search:
            criteria.append(col(Campaign.name).ilike(f"%{filters.search.strip()}%"))
        return self.scope.list(
            Campaign, *criteria, order_by=(col(Campaign.updated_at).desc(), col(Campaign.id).desc())
        )

    # ── Writes ──

    def create(self, draft: CampaignDraft) -> Campaign:
        fields = self._dump(draft.model_dump(mode="json"))
        self._check_references(fields)

        campaign = Campaign(**fields, status=CampaignStatus.DRAFT.value)
        mirror_legacy_fields(campaign)
        self.scope.add(campaign)
        self.session.commit()
        self.session.refresh(campaign)

        logger.info(
            f"Campaign created: {campaign.name}",
            extra={"tenant_id": self.scope.tenant_id, "campaign_id": campaign.id},
        )
        return campaign

    def update(self, campaign_id: int, patch: CampaignPatch) -> Campaign:
        changes = patch.model_dump(mode="json", exclude_unset=True)
        if any(field in changes for field in STATUS_FIELDS):
            raise PreconditionFailed(
                "Campaign status is managed by the automation lifecycle; "
                "use submit, pause, resume or complete"
            )

        campaign = self.get(campaign_id)
        self._check_editable(campaign)

        changes = self._dump(changes)
        merged = {**campaign.model_dump(), **changes}
        self._check_references(merged)

        for field, value in changes.items():
            setattr(campaign, field, value)
        mirror_legacy_fields(campaign)
        touch(campaign)
        self.session.add(campaign)
        self.session.commit()
        self.session.refresh(campaign)

        logger.info(
            f"Campaign updated: {sorted(changes)}",
            extra={"tenant_id": self.scope.tenant_id, "campaign_id": campaign.id},
        )
        return campaign

    def delete(self, campaign_id: int) -> None:
        campaign = self.get(campaign_id)
        if campaign.status == CampaignStatus.PENDING or self._active_automation(campaign):
            raise ConflictError("Automation already pending; wait for it to resolve")

        for record in self.scope.list(AutomationRecord, AutomationRecord.campaign_id == campaign.id):
            self.scope.delete(record)
        self.scope.delete(campaign)
        self.session.commit()

        logger.info(
            "Campaign deleted",
            extra={"tenant_id": self.scope.tenant_id, "campaign_id": campaign_id},
        )

    # ── Helpers ──

    @staticmethod
    def _dump(fields: Dict[str, Any]) -> Dict[str, Any]:
        """Normalize ad sets / creatives to the JSON shape stored in the row.

        ``fields`` comes from ``model_dump(mode="json")``; each item is
        re-validated so dates are ISO strings and defaults are filled in.
        """
        out = dict(fields)
        for key, item_model in STRUCTURED_FIELDS.items():
            if out.get(key) is not None:
                out[key] = [
                    item_model.model_validate(item).model_dump(mode="json") for item in out[key]
                ]
        return out

    def _active_automation(self, campaign: Campaign) -> Optional[AutomationRecord]:
        return self.scope.first(
            AutomationRecord,
            AutomationRecord.campaign_id == campaign.id,
            col(AutomationRecord.status).in_(ACTIVE_AUTOMATION_STATUSES),
        )

    def _check_editable(self, campaign: Campaign) -> None:
        # A claimed record marks a dispatch in flight while the campaign is
        # still draft or error, before the webhook acknowledges.
        if campaign.status == CampaignStatus.PENDING or self._active_automation(campaign):
            raise ConflictError("Automation already pending; campaign cannot be edited")
        if campaign.status not in EDITABLE_STATES:
            raise PreconditionFailed(
                f"Campaign in status '{campaign.status}' cannot be edited"
            )

    def _check_references(self, fields: Dict[str, Any]) -> None:
        """Referenced resources and audiences must exist under this tenant."""
        problems: List[str] = []

        for field, expected_type in RESOURCE_REF_FIELDS.items():
            resource_id = fields.get(field)
            if resource_id is None:
                continue
            resource = self.scope.find(Resource, resource_id)
            if resource is None:
                problems.append(f"{field}: resource {resource_id} not found")
            elif resource.type != expected_type:
                problems.append(f"{field}: resource {resource_id} is a {resource.type}, not a {expected_type}")

        for position, ad_set in enumerate(fields.get("ad_sets") or [], start=1):
            audience_id = ad_set.get("audience_id")
            if self.scope.find(Audience, audience_id) is None:
                problems.append(f"ad set {position}: audience {audience_id} not found")

        if problems:
            raise PreconditionFailed("; ".join(problems), problems)
