"""
Tests for the campaign store and the resource / audience stores it depends on.
"""

from datetime import date

import pytest
from sqlalchemy import DateTime

from conftest import make_draft

from adflow.core.errors import ConflictError, PreconditionFailed
from adflow.models.automation_models import AutomationRecord
from adflow.models.campaign_models import (
    AdSet,
    Campaign,
    CampaignFilters,
    CampaignObjective,
    CampaignPatch,
    Creative,
)
from adflow.models.resource_models import (
    AudienceCreate,
    AudienceType,
    AudienceUpdate,
    ResourceType,
    ResourceUpdate,
)
from adflow.storage.campaigns import CampaignStore
from adflow.storage.resources import AudienceCatalog, ResourceRegistry


def test_create_starts_in_draft_with_legacy_mirrors(scope, resources, audience, connected_meta):
    campaign = CampaignStore(scope).create(make_draft(resources, audience))

    assert campaign.status == "draft"
    assert campaign.tenant_id == scope.tenant_id
    assert campaign.ad_sets[0]["audience_id"] == audience.id
    assert campaign.ad_sets[0]["start_date"] == "2026-01-01"
    # Deprecated flat fields mirror the structured form
    assert campaign.budget == "50.00"
    assert campaign.audience_ids == [audience.id]
    assert campaign.title == "Your new home"
    assert campaign.message == "Book a visit today"
    assert campaign.drive_folder_id is None


def test_structured_fields_read_back_as_json(scope, session, draft_campaign, audience):
    store = CampaignStore(scope)
    store.update(
        draft_campaign.id,
        CampaignPatch(ad_sets=[AdSet(audience_id=audience.id, budget=20, start_date=date(2026, 5, 1), end_date=date(2026, 6, 30))]),
    )
    session.expire_all()

    campaign = store.get(draft_campaign.id)
    stored = campaign.ad_sets[0]
    assert stored["audience_id"] == audience.id
    assert stored["start_date"] == "2026-05-01"
    assert stored["end_date"] == "2026-06-30"
    assert stored["genders"] == []
    assert campaign.parsed_ad_sets()[0].end_date == date(2026, 6, 30)
    assert campaign.latest_end_date() == date(2026, 6, 30)


def test_timestamps_are_stored_naive_utc(scope, session, draft_campaign):
    assert isinstance(Campaign.__table__.c.created_at.type, DateTime)
    assert Campaign.__table__.c.created_at.type.timezone is False
    session.expire_all()
    campaign = CampaignStore(scope).get(draft_campaign.id)
    assert campaign.created_at.tzinfo is None
    assert campaign.updated_at >= campaign.created_at


def test_update_bumps_updated_at_monotonically(scope, draft_campaign):
    store = CampaignStore(scope)
    seen = [draft_campaign.updated_at]
    for name in ("One", "Two", "Three"):
        seen.append(store.update(draft_campaign.id, CampaignPatch(name=name)).updated_at)
    assert seen == sorted(seen)
    assert len(set(seen)) == len(seen)


def test_update_refreshes_mirrors(scope, draft_campaign, audience):
    campaign = CampaignStore(scope).update(
        draft_campaign.id,
        CampaignPatch(
            ad_sets=[AdSet(audience_id=audience.id, budget=12.5, start_date=date(2026, 3, 1))],
            creatives=[Creative(title="", text=""), Creative(title="B", text="Body", asset_folder_ref="drive-1")],
        ),
    )
    assert campaign.budget == "12.50"
    assert campaign.title == "B"
    assert campaign.drive_folder_id == "drive-1"


@pytest.mark.parametrize("field", ["status", "status_detail"])
def test_status_cannot_be_patched(scope, draft_campaign, field):
    with pytest.raises(PreconditionFailed):
        CampaignStore(scope).update(draft_campaign.id, CampaignPatch(**{field: "active"}))
    assert CampaignStore(scope).get(draft_campaign.id).status == "draft"


def test_references_must_exist_and_match_type(scope, resources, audience):
    store = CampaignStore(scope)
    draft = make_draft(
        resources,
        audience,
        page_id=resources["account"].id,
        leadform_id=424242,
    )
    with pytest.raises(PreconditionFailed) as exc:
        store.create(draft)
    assert len(exc.value.problems) == 2
    assert "page_id" in exc.value.message
    assert "leadform_id" in exc.value.message


def test_audience_of_other_tenant_is_rejected(scope, resources, audience, other_scope):
    foreign = AudienceCatalog(other_scope).create(AudienceCreate(name="Theirs", locations=["US"]))
    draft = make_draft(
        resources,
        audience,
        ad_sets=[AdSet(audience_id=foreign.id, budget=10, start_date=date(2026, 1, 1))],
    )
    with pytest.raises(PreconditionFailed) as exc:
        CampaignStore(scope).create(draft)
    assert f"audience {foreign.id} not found" in exc.value.message


def test_pending_campaign_cannot_be_edited_or_deleted(scope, session, draft_campaign):
    scope.update_where(Campaign, draft_campaign.id, status="pending")
    session.commit()
    store = CampaignStore(scope)
    with pytest.raises(ConflictError):
        store.update(draft_campaign.id, CampaignPatch(name="Edited"))
    with pytest.raises(ConflictError):
        store.delete(draft_campaign.id)


def test_draft_with_active_automation_cannot_be_edited_or_deleted(scope, session, draft_campaign):
    scope.add(
        AutomationRecord(
            campaign_id=draft_campaign.id,
            request_id="req-inflight",
            webhook_url="https://hooks.example.test",
            status="pending",
        )
    )
    session.commit()
    store = CampaignStore(scope)
    with pytest.raises(ConflictError):
        store.update(draft_campaign.id, CampaignPatch(name="Edited"))
    with pytest.raises(ConflictError):
        store.delete(draft_campaign.id)
    assert store.get(draft_campaign.id).name == "Spring launch"


def test_active_campaign_cannot_be_edited(scope, session, draft_campaign):
    scope.update_where(Campaign, draft_campaign.id, status="active")
    session.commit()
    with pytest.raises(PreconditionFailed):
        CampaignStore(scope).update(draft_campaign.id, CampaignPatch(name="Edited"))


def test_list_filters(scope, resources, audience, connected_meta):
    store = CampaignStore(scope)
    store.create(make_draft(resources, audience, name="Winter sale"))
    reach = store.create(make_draft(resources, audience, name="Brand reach", objective=CampaignObjective.REACH))

    assert [c.id for c in store.list(CampaignFilters(objective=CampaignObjective.REACH))] == [reach.id]
    assert [c.name for c in store.list(CampaignFilters(search="winter"))] == ["Winter sale"]
    assert len(store.list(CampaignFilters(status="draft"))) == 2
    assert store.list(CampaignFilters(status="active")) == []


def test_delete_removes_automation_history(scope, session, draft_campaign):
    scope.add(
        AutomationRecord(
            campaign_id=draft_campaign.id,
            request_id="req-old",
            webhook_url="https://hooks.example.test",
            status="failed",
        )
    )
    session.commit()
    CampaignStore(scope).delete(draft_campaign.id)
    assert scope.list(AutomationRecord) == []
    assert scope.list(Campaign) == []


# ── Resource Registry & Audience Catalog ──


def test_referenced_resource_cannot_be_deleted(scope, draft_campaign, resources):
    registry = ResourceRegistry(scope)
    with pytest.raises(ConflictError) as exc:
        registry.delete(resources["page"].id)
    assert str(draft_campaign.id) in exc.value.message
    # Unreferenced resources go away normally
    registry.delete(resources["whatsapp"].id)
    assert [r.type for r in registry.list(ResourceType.WHATSAPP)] == []


def test_referenced_resource_type_cannot_change(scope, draft_campaign, resources):
    registry = ResourceRegistry(scope)
    with pytest.raises(ConflictError):
        registry.update(resources["page"].id, ResourceUpdate(type=ResourceType.INSTAGRAM))
    renamed = registry.update(resources["page"].id, ResourceUpdate(name="Renamed page"))
    assert renamed.name == "Renamed page"
    assert renamed.type == "page"


def test_referenced_audience_cannot_be_deleted(scope, draft_campaign, audience):
    with pytest.raises(ConflictError):
        AudienceCatalog(scope).delete(audience.id)


def test_audience_validation():
    with pytest.raises(ValueError):
        AudienceCreate(name="Nowhere", locations=[])
    with pytest.raises(ValueError):
        AudienceCreate(name="Upside down", locations=["BR"], age_min=50, age_max=30)
    with pytest.raises(ValueError):
        AudienceCreate(name="List", type=AudienceType.CUSTOM_LIST, locations=["BR"])


def test_audience_update_checks_merged_age_range(scope, audience):
    catalog = AudienceCatalog(scope)
    with pytest.raises(PreconditionFailed):
        catalog.update(audience.id, AudienceUpdate(age_min=60))
    updated = catalog.update(audience.id, AudienceUpdate(age_min=30, interests=[" Pets ", ""]))
    assert updated.age_min == 30
    assert updated.interests == ["Pets"]
    assert updated.locations == ["BR", "São Paulo"]
