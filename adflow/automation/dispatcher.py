"""ADFLOW — Automation Dispatcher.

Owns every campaign status change:

  dispatch   draft/error → pending      (webhook acknowledged)
  resolve    pending → active/error     (inbound callback)
  pause / resume / complete             (caller-initiated)
  reconcile  pending → error, active/paused → completed   (background)

At most one AutomationRecord per campaign is active (pending/sent). The
partial unique index on automation_records enforces it at the database;
every status write below is a compare-and-swap on the expected prior value.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col

from adflow.automation.payload import build_payload
from adflow.automation.webhook_client import WebhookClient
from adflow.config import settings
from adflow.core.errors import (
    AdflowError,
    ConflictError,
    NotFound,
    PreconditionFailed,
    StaleCallback,
    TransportFailure,
)
from adflow.core.logging import get_logger
from adflow.core.state_machine import (
    SUBMITTABLE_STATES,
    CampaignEvent,
    CampaignStatus,
    next_status,
)
from adflow.core.timeutils import advance, utcnow
from adflow.models.automation_models import (
    ACTIVE_AUTOMATION_STATUSES,
    AutomationRecord,
    AutomationStatus,
    CallbackOutcome,
    CallbackPayload,
    IntegrationProvider,
)
from adflow.models.campaign_models import Campaign
from adflow.realtime.sse import CampaignBroadcaster, broadcaster as campaign_broadcaster
from adflow.storage.integrations import IntegrationStore
from adflow.storage.scoped import TenantScope, all_tenant_ids

logger = get_logger("automation.dispatcher")

# Resource references each objective needs before it can be submitted.
REQUIRED_REFERENCES: Dict[str, tuple] = {
    "LEAD": ("account_id", "page_id", "leadform_id"),
    "TRAFFIC": ("account_id", "page_id", "website_url"),
    "WHATSAPP": ("account_id", "page_id", "whatsapp_id"),
    "CONVERSIONS": ("account_id", "page_id", "website_url"),
    "REACH": ("account_id", "page_id"),
}

REFERENCE_LABELS: Dict[str, str] = {
    "account_id": "ad account",
    "page_id": "page",
    "instagram_id": "instagram account",
    "whatsapp_id": "whatsapp number",
    "leadform_id": "lead form",
    "website_url": "website url",
}

PENDING_DETAIL = "Awaiting automation confirmation"


@dataclass
class Resolution:
    """Outcome of applying a callback. ``replayed`` marks a duplicate delivery."""

    automation: AutomationRecord
    campaign: Campaign
    replayed: bool = False


class AutomationDispatcher:
    """Campaign ↔ external workflow hand-off."""

    def __init__(
        self,
        session: Session,
        webhook: Optional[WebhookClient] = None,
        broadcaster: Optional[CampaignBroadcaster] = None,
    ):
        self.session = session
        self.webhook = webhook or WebhookClient()
        self.broadcaster = broadcaster or campaign_broadcaster

    def _publish(self, campaign: Campaign) -> None:
        """Announce a committed status change to live listeners."""
        self.broadcaster.publish(campaign.tenant_id, campaign)

    # ─────────────────────────────────────────────
    # GUARDS
    # ─────────────────────────────────────────────

    def submission_problems(self, scope: TenantScope, campaign: Campaign) -> List[str]:
        """Everything that keeps ``campaign`` from being submitted."""
        problems: List[str] = []
        ad_sets = campaign.parsed_ad_sets()
        creatives = campaign.parsed_creatives()

        if not ad_sets:
            problems.append("missing ad set")
        if not creatives:
            problems.append("missing creative")
        for position, creative in enumerate(creatives, start=1):
            if not (creative.title.strip() or creative.text.strip()):
                problems.append(f"creative {position} has no title or text")

        for field in REQUIRED_REFERENCES.get(campaign.objective, ("account_id", "page_id")):
            if not getattr(campaign, field):
                problems.append(f"missing {REFERENCE_LABELS[field]}")

        integrations = IntegrationStore(scope)
        if not integrations.is_connected(IntegrationProvider.META_ADS):
            problems.append("meta_ads integration not connected")
        if any(c.asset_folder_ref for c in creatives) and not integrations.is_connected(
            IntegrationProvider.GOOGLE_DRIVE
        ):
            problems.append("google_drive integration not connected")
        return problems

    @staticmethod
    def webhook_url(scope: TenantScope) -> Optional[str]:
        """Tenant's meta_ads integration URL, else the app-level default."""
        integration = IntegrationStore(scope).find_by_provider(IntegrationProvider.META_ADS)
        config = integration.config if integration else {}
        return config.get("webhookUrl") or config.get("webhook_url") or settings.automation_webhook_url

    # ─────────────────────────────────────────────
    # TRANSITIONS
    # ─────────────────────────────────────────────

    def _transition(
        self,
        scope: TenantScope,
        campaign: Campaign,
        event: CampaignEvent,
        detail: Optional[str] = None,
    ) -> CampaignStatus:
        """Apply ``event`` with a CAS on the status just read."""
        self.session.refresh(campaign)
        current = campaign.status
        target = next_status(current, event)
        changed = scope.update_where(
            Campaign,
            campaign.id,
            Campaign.status == current,
            status=target.value,
            status_detail=detail,
            updated_at=advance(campaign.updated_at),
        )
        if not changed:
            raise ConflictError("Campaign status changed concurrently; retry")
        logger.info(
            f"Campaign {current} → {target.value} ({event.value})",
            extra={"tenant_id": scope.tenant_id, "campaign_id": campaign.id},
        )
        return target

    def _caller_event(
        self, tenant_id: int, campaign_id: int, event: CampaignEvent, detail: Optional[str] = None
    ) -> Campaign:
        scope = TenantScope(self.session, tenant_id)
        campaign = scope.get(Campaign, campaign_id)
        try:
            self._transition(scope, campaign, event, detail)
            self.session.commit()
        except AdflowError:
            self.session.rollback()
            raise
        self.session.refresh(campaign)
        self._publish(campaign)
        return campaign

    def pause(self, tenant_id: int, campaign_id: int) -> Campaign:
        return self._caller_event(tenant_id, campaign_id, CampaignEvent.PAUSE)

    def resume(self, tenant_id: int, campaign_id: int) -> Campaign:
        return self._caller_event(tenant_id, campaign_id, CampaignEvent.RESUME)

    def complete(self, tenant_id: int, campaign_id: int) -> Campaign:
        return self._caller_event(
            tenant_id, campaign_id, CampaignEvent.COMPLETE, "Completed by user"
        )

    # ─────────────────────────────────────────────
    # DISPATCH
    # ─────────────────────────────────────────────

    async def dispatch(self, tenant_id: int, campaign_id: int) -> AutomationRecord:
        """Send a campaign to the workflow.

        Raises ConflictError if an automation is already in flight,
        PreconditionFailed if guards fail, TransportFailure if the webhook
        does not accept the payload. Only an acknowledged send moves the
        campaign to ``pending``.
        """
        scope = TenantScope(self.session, tenant_id)
        campaign = scope.get(Campaign, campaign_id)
        next_status(campaign.status, CampaignEvent.SUBMIT)

        problems = self.submission_problems(scope, campaign)
        url = self.webhook_url(scope)
        if not url:
            problems.append("automation webhook url not configured")
        if problems:
            raise PreconditionFailed(
                "Campaign cannot be submitted: " + "; ".join(problems), problems
            )

        record = self._claim(scope, campaign, url)

        try:
            ack = await self.webhook.post(url, record.payload)
        except TransportFailure as e:
            scope.update_where(
                AutomationRecord,
                record.id,
                AutomationRecord.status == AutomationStatus.PENDING.value,
                status=AutomationStatus.FAILED.value,
                response={"error": e.message, "status_code": e.status_code or None},
                completed_at=utcnow(),
            )
            self.session.commit()
            e.automation_id = record.id
            logger.warning(
                f"Dispatch failed: {e.message}",
                extra={"tenant_id": tenant_id, "campaign_id": campaign_id, "automation_id": record.id},
            )
            raise

        self._acknowledge(scope, campaign, record, ack)
        self.session.refresh(record)
        return record

    def _claim(self, scope: TenantScope, campaign: Campaign, url: str) -> AutomationRecord:
        """Insert the pending record. The unique index rejects a second claimant."""
        request_id = f"req-{uuid.uuid4().hex}"
        record = AutomationRecord(
            campaign_id=campaign.id,
            request_id=request_id,
            webhook_url=url,
            status=AutomationStatus.PENDING.value,
            payload=build_payload(scope, campaign, request_id),
        )
        scope.add(record)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise ConflictError("Automation already pending for this campaign")
        self.session.refresh(record)
        logger.info(
            "Automation record claimed",
            extra={
                "tenant_id": scope.tenant_id,
                "campaign_id": campaign.id,
                "automation_id": record.id,
                "request_id": request_id,
            },
        )
        return record

    def _acknowledge(self, scope: TenantScope, campaign: Campaign, record: AutomationRecord, ack: dict) -> None:
        acknowledged = scope.update_where(
            AutomationRecord,
            record.id,
            AutomationRecord.status == AutomationStatus.PENDING.value,
            status=AutomationStatus.SENT.value,
            sent_at=utcnow(),
            response={"acknowledgement": ack},
        )
        if not acknowledged:
            # A callback resolved the record while the POST was in flight.
            self.session.commit()
            return
        try:
            self._transition(scope, campaign, CampaignEvent.SUBMIT, PENDING_DETAIL)
            self.session.commit()
            self._publish(campaign)
        except AdflowError:
            self.session.rollback()
            scope.update_where(
                AutomationRecord,
                record.id,
                col(AutomationRecord.status).in_(ACTIVE_AUTOMATION_STATUSES),
                status=AutomationStatus.FAILED.value,
                response={"error": "campaign changed during dispatch"},
                completed_at=utcnow(),
            )
            self.session.commit()
            raise

    # ─────────────────────────────────────────────
    # RESOLVE
    # ─────────────────────────────────────────────

    def _stale(self, callback: CallbackPayload, reason: str) -> StaleCallback:
        logger.warning(
            f"Stale automation callback: {reason}",
            extra={
                "tenant_id": callback.tenant_id,
                "campaign_id": callback.campaign_id,
                "request_id": callback.request_id,
            },
        )
        return StaleCallback(reason)

    def resolve(self, callback: CallbackPayload) -> Resolution:
        """Apply an inbound callback. Safe to call any number of times."""
        try:
            scope = TenantScope(self.session, callback.tenant_id)
        except NotFound:
            raise self._stale(callback, "unknown tenant")
        campaign = scope.find(Campaign, callback.campaign_id)
        if campaign is None:
            raise self._stale(callback, "unknown campaign")

        of_campaign = AutomationRecord.campaign_id == campaign.id
        if not callback.request_id:
            logger.warning(
                "Automation callback without request_id; matching the campaign's active automation",
                extra={"tenant_id": scope.tenant_id, "campaign_id": campaign.id},
            )
        if callback.request_id:
            record = scope.first(AutomationRecord, of_campaign, AutomationRecord.request_id == callback.request_id)
            if record is None:
                raise self._stale(callback, "unknown request id")
        else:
            record = scope.first(
                AutomationRecord, of_campaign, col(AutomationRecord.status).in_(ACTIVE_AUTOMATION_STATUSES)
            )
            if record is None:
                record = scope.first(
                    AutomationRecord,
                    of_campaign,
                    order_by=(col(AutomationRecord.created_at).desc(), col(AutomationRecord.id).desc()),
                )
                if record is None:
                    raise self._stale(callback, "no automation for campaign")

        if not record.is_active:
            if record.resolved_by_callback:
                return self._replayed(record, campaign)
            raise self._stale(callback, f"automation {record.id} already {record.status}")

        success = callback.outcome is CallbackOutcome.SUCCESS
        now = utcnow()
        claimed = scope.update_where(
            AutomationRecord,
            record.id,
            col(AutomationRecord.status).in_(ACTIVE_AUTOMATION_STATUSES),
            status=(AutomationStatus.SUCCESS if success else AutomationStatus.FAILED).value,
            response=callback.as_response(),
            completed_at=now,
        )
        if not claimed:
            # Another delivery of the same callback won the race.
            self.session.rollback()
            self.session.refresh(record)
            return self._replayed(record, campaign)

        try:
            self.session.refresh(campaign)
            if campaign.status in SUBMITTABLE_STATES:
                # Callback overtook the webhook acknowledgement.
                self._transition(scope, campaign, CampaignEvent.SUBMIT, PENDING_DETAIL)
            if success:
                self._transition(scope, campaign, CampaignEvent.CONFIRM, callback.detail)
            else:
                self._transition(
                    scope, campaign, CampaignEvent.REJECT, callback.detail or "Automation failed"
                )
            self.session.commit()
        except PreconditionFailed as e:
            self.session.rollback()
            raise self._unappliable(scope, record, callback, e.message)
        except AdflowError:
            self.session.rollback()
            raise

        self.session.refresh(record)
        self.session.refresh(campaign)
        self._publish(campaign)
        logger.info(
            f"Automation resolved: {record.status}",
            extra={"tenant_id": scope.tenant_id, "campaign_id": campaign.id, "automation_id": record.id},
        )
        return Resolution(automation=record, campaign=campaign)

    def _unappliable(
        self, scope: TenantScope, record: AutomationRecord, callback: CallbackPayload, reason: str
    ) -> StaleCallback:
        """Close ``record`` when the campaign cannot take the reported outcome.

        The campaign keeps its status. The stored response carries no
        ``outcome`` key, so redeliveries are answered as stale, not replayed.
        """
        scope.update_where(
            AutomationRecord,
            record.id,
            col(AutomationRecord.status).in_(ACTIVE_AUTOMATION_STATUSES),
            status=AutomationStatus.FAILED.value,
            response={"error": reason, "callback": callback.as_response()},
            completed_at=utcnow(),
        )
        self.session.commit()
        return self._stale(callback, f"outcome not applicable: {reason}")

    def _replayed(self, record: AutomationRecord, campaign: Campaign) -> Resolution:
        logger.info(
            "Duplicate automation callback ignored",
            extra={"tenant_id": record.tenant_id, "campaign_id": campaign.id, "automation_id": record.id},
        )
        return Resolution(automation=record, campaign=campaign, replayed=True)

    # ─────────────────────────────────────────────
    # HISTORY & RECONCILIATION
    # ─────────────────────────────────────────────

    def history(self, tenant_id: int, campaign_id: int) -> List[AutomationRecord]:
        scope = TenantScope(self.session, tenant_id)
        campaign = scope.get(Campaign, campaign_id)
        return scope.list(
            AutomationRecord,
            AutomationRecord.campaign_id == campaign.id,
            order_by=(col(AutomationRecord.created_at).desc(), col(AutomationRecord.id).desc()),
        )

    def reconcile(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Expire orphaned dispatches and complete campaigns past their end date."""
        now = now or utcnow()
        counts = {"unacknowledged": 0, "timed_out": 0, "completed": 0}

        for tenant_id in all_tenant_ids(self.session):
            scope = TenantScope(self.session, tenant_id)
            try:
                changed = self._reconcile_tenant(scope, now, counts)
                self.session.commit()
                for campaign in changed:
                    self._publish(campaign)
            except AdflowError as e:
                self.session.rollback()
                logger.warning(
                    f"Reconciliation skipped tenant: {e.message}", extra={"tenant_id": tenant_id}
                )

        if any(counts.values()):
            logger.info(f"Reconciliation pass: {counts}")
        return counts

    def _reconcile_tenant(
        self, scope: TenantScope, now: datetime, counts: Dict[str, int]
    ) -> List[Campaign]:
        changed: List[Campaign] = []
        ack_cutoff = now - timedelta(seconds=settings.automation_ack_timeout_seconds)
        for record in scope.list(
            AutomationRecord,
            AutomationRecord.status == AutomationStatus.PENDING.value,
            col(AutomationRecord.created_at) < ack_cutoff,
        ):
            if scope.update_where(
                AutomationRecord,
                record.id,
                AutomationRecord.status == AutomationStatus.PENDING.value,
                status=AutomationStatus.FAILED.value,
                response={"error": "no acknowledgement"},
                completed_at=now,
            ):
                counts["unacknowledged"] += 1

        callback_cutoff = now - timedelta(minutes=settings.automation_callback_timeout_minutes)
        for record in scope.list(
            AutomationRecord,
            AutomationRecord.status == AutomationStatus.SENT.value,
            col(AutomationRecord.sent_at) < callback_cutoff,
        ):
            if not scope.update_where(
                AutomationRecord,
                record.id,
                AutomationRecord.status == AutomationStatus.SENT.value,
                status=AutomationStatus.FAILED.value,
                response={"error": "timeout"},
                completed_at=now,
            ):
                continue
            campaign = scope.find(Campaign, record.campaign_id)
            if campaign is not None and campaign.status == CampaignStatus.PENDING:
                self._transition(scope, campaign, CampaignEvent.TIMEOUT, "timeout")
                changed.append(campaign)
                counts["timed_out"] += 1

        today = now.date()
        for campaign in scope.list(
            Campaign,
            col(Campaign.status).in_([CampaignStatus.ACTIVE.value, CampaignStatus.PAUSED.value]),
        ):
            end = campaign.latest_end_date()
            if end is not None and end < today:
                self._transition(scope, campaign, CampaignEvent.COMPLETE, "End date reached")
                changed.append(campaign)
                counts["completed"] += 1
        return changed
