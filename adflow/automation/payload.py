"""ADFLOW — Campaign → Workflow Payload Builder.

Turns a campaign plus the tenant's resources and audiences into the JSON
snapshot the external workflow consumes. The result is a detached deep copy:
later edits to the campaign never reach a payload already stored on an
AutomationRecord.
"""

import copy
import re
from typing import Any, Dict, List, Optional

from adflow.config import settings
from adflow.models.campaign_models import AdSet, Campaign, Creative
from adflow.models.resource_models import Audience, Resource
from adflow.storage.scoped import TenantScope

# Campaign objective → Meta outcome objective
OBJECTIVE_OUTCOME_MAP: Dict[str, str] = {
    "LEAD": "OUTCOME_LEADS",
    "TRAFFIC": "OUTCOME_TRAFFIC",
    "WHATSAPP": "OUTCOME_ENGAGEMENT",
    "CONVERSIONS": "OUTCOME_SALES",
    "REACH": "OUTCOME_AWARENESS",
}

# Outcome objective → default ad set optimization goal
OUTCOME_OPTIMIZATION_MAP: Dict[str, str] = {
    "OUTCOME_LEADS": "LEAD_GENERATION",
    "OUTCOME_ENGAGEMENT": "CONVERSATIONS",
    "OUTCOME_TRAFFIC": "LINK_CLICKS",
    "OUTCOME_SALES": "OFFSITE_CONVERSIONS",
    "OUTCOME_AWARENESS": "IMPRESSIONS",
}

DEFAULT_PUBLISHER_PLATFORMS = ["facebook", "instagram", "messenger", "audience_network"]


def map_objective(objective: str) -> str:
    normalized = (objective or "").strip().upper()
    if normalized.startswith("OUTCOME_"):
        return normalized
    return OBJECTIVE_OUTCOME_MAP.get(normalized, "OUTCOME_LEADS")


def _digits(value: str) -> str:
    """Ad account IDs go out as bare digits ('act_123' → '123')."""
    return re.sub(r"\D+", "", value or "")


def _budget_cents(budget: float) -> int:
    return max(0, round(budget * 100))


def _geo_locations(locations: List[str]) -> Dict[str, Any]:
    """Two-letter codes are countries; anything else is passed as a region name."""
    countries = [loc.upper() for loc in locations if len(loc) == 2 and loc.isalpha()]
    regions = [{"name": loc} for loc in locations if not (len(loc) == 2 and loc.isalpha())]
    geo: Dict[str, Any] = {}
    if countries:
        geo["countries"] = countries
    if regions:
        geo["regions"] = regions
    return geo


def _targeting(ad_set: AdSet, audience: Optional[Audience]) -> Dict[str, Any]:
    targeting: Dict[str, Any] = {
        "genders": list(ad_set.genders),
        "publisher_platforms": list(DEFAULT_PUBLISHER_PLATFORMS),
        "targeting_automation": {"advantage_audience": 1},
    }
    if audience is None:
        return targeting

    if audience.age_min is not None:
        targeting["age_min"] = audience.age_min
    if audience.age_max is not None:
        targeting["age_max"] = audience.age_max
    geo = _geo_locations(audience.locations or [])
    if geo:
        targeting["geo_locations"] = geo
    flexible: Dict[str, Any] = {}
    if audience.interests:
        flexible["interests"] = [{"name": name} for name in audience.interests]
    if audience.behaviors:
        flexible["behaviors"] = [{"name": name} for name in audience.behaviors]
    if flexible:
        targeting["flexible_spec"] = [flexible]
    if audience.custom_list_file:
        targeting["custom_audience_file"] = audience.custom_list_file
    return targeting


def _ad_set_payload(
    index: int, ad_set: AdSet, audience: Optional[Audience], outcome: str
) -> Dict[str, Any]:
    name = (ad_set.name or "").strip() or (audience.name if audience else "") or f"Ad set {index + 1}"
    return {
        "name": name,
        "audience_id": ad_set.audience_id,
        "billing_event": "IMPRESSIONS",
        "optimization_goal": ad_set.optimization_goal
        or OUTCOME_OPTIMIZATION_MAP.get(outcome, "LEAD_GENERATION"),
        "bid_strategy": "LOWEST_COST_WITHOUT_CAP",
        "daily_budget": _budget_cents(ad_set.budget),
        "targeting": _targeting(ad_set, audience),
        "status": "PAUSED",
        "start_time": ad_set.start_date.isoformat(),
        "end_time": ad_set.end_date.isoformat() if ad_set.end_date else None,
    }


def _creative_payload(creative: Creative) -> Dict[str, Any]:
    return {
        "title": creative.title,
        "text": creative.text,
        "drive_folder_id": creative.asset_folder_ref or "",
    }


def build_payload(scope: TenantScope, campaign: Campaign, request_id: str) -> Dict[str, Any]:
    """Build the webhook body for one dispatch attempt."""
    resources: Dict[str, Optional[Resource]] = {
        field: scope.find(Resource, getattr(campaign, field)) if getattr(campaign, field) else None
        for field in ("account_id", "page_id", "instagram_id", "whatsapp_id", "leadform_id")
    }

    def value(field: str) -> str:
        res = resources[field]
        return res.value if res else ""

    def name(field: str) -> str:
        res = resources[field]
        return res.name if res else ""

    outcome = map_objective(campaign.objective)
    ad_sets = campaign.parsed_ad_sets()
    creatives = campaign.parsed_creatives()
    audiences = {a.audience_id: scope.find(Audience, a.audience_id) for a in ad_sets}

    primary = next((c for c in creatives if c.title.strip() or c.text.strip()), None)
    if primary is None and creatives:
        primary = creatives[0]
    drive_folder_id = next((c.asset_folder_ref for c in creatives if c.asset_folder_ref), "")

    data = {
        "action": "create_campaign",
        "tenant_id": scope.tenant_id,
        "client": scope.tenant.name or f"Tenant-{scope.tenant_id}",
        "external_id": str(campaign.id),
        "ad_account_id": _digits(value("account_id")) or value("account_id"),
        "campaign": {
            "name": campaign.name,
            "objective": outcome,
            "buying_type": "AUCTION",
            "status": "PAUSED",
            "special_ad_categories": ["NONE"],
        },
        "adsets": [
            _ad_set_payload(i, a, audiences.get(a.audience_id), outcome)
            for i, a in enumerate(ad_sets)
        ],
        "creatives": [_creative_payload(c) for c in creatives],
        "page_id": value("page_id"),
        "page_name": name("page_id"),
        "instagram_user_id": value("instagram_id"),
        "instagram_name": name("instagram_id"),
        "whatsapp_number_id": value("whatsapp_id"),
        "whatsapp_name": name("whatsapp_id"),
        "lead_form_id": value("leadform_id"),
        "leadgen_form_id": value("leadform_id"),
        "lead_form_name": name("leadform_id"),
        "website_url": (campaign.website_url or "").strip(),
        "drive_folder_id": drive_folder_id,
        "title_text": primary.title.strip() if primary else "",
        "message_text": primary.text.strip() if primary else "",
    }

    return copy.deepcopy(
        {
            "body": {
                "data": data,
                "meta": {
                    "request_id": request_id,
                    "callback_url": settings.callback_url,
                },
            }
        }
    )
