"""
Village merge engine and support-status calculator.

GIS features are joined to community plans through the "new-uid"
property that both datasets carry. The plan's own storage key plays no
part in the join.
"""

from typing import Iterable, List, Optional

UID_PROPERTY = "new-uid"
UNNAMED_VILLAGE = "ไม่ระบุชื่อ"

MIN_VOLUNTEERS = 5
MIN_FUNDING = 10000

VILLAGE_FILTERS = {
    "with-plan": lambda status: status["hasPlan"],
    "without-plan": lambda status: not status["hasPlan"],
    "need-volunteers": lambda status: status["needsVolunteers"],
    "need-funding": lambda status: status["needsFunding"],
}

BATCH_VILLAGE_LIMIT = 100
BURN_AREA_LIMIT = 10000


# ---------- Status ----------

def _volunteer_count(plan: dict) -> int:
    volunteers = plan.get("volunteers")
    if isinstance(volunteers, (list, tuple)):
        return len(volunteers)
    return 0


def _total_budget(plan: dict) -> float:
    budget_info = plan.get("budget_info")
    if not isinstance(budget_info, dict):
        return 0
    try:
        return float(budget_info.get("total_budget") or 0)
    except (TypeError, ValueError):
        return 0


def derive_status(plan: Optional[dict]) -> dict:
    """Support flags for one village.

    Villages without a plan are assumed to need both volunteers and
    funding. Plans are read through "volunteers" and
    "budget_info.total_budget"; see DESIGN.md for why those fields are
    usually absent.
    """
    if plan is None:
        return {"hasPlan": False, "needsVolunteers": True, "needsFunding": True}

    if not isinstance(plan, dict):
        plan = {}

    return {
        "hasPlan": True,
        "needsVolunteers": _volunteer_count(plan) < MIN_VOLUNTEERS,
        "needsFunding": _total_budget(plan) < MIN_FUNDING,
    }


def compute_statistics(villages: Iterable[dict]) -> dict:
    stats = {
        "totalVillages": 0,
        "withPlan": 0,
        "withoutPlan": 0,
        "needVolunteers": 0,
        "needFunding": 0,
        "needHelp": 0,
    }

    for village in villages:
        status = village["status"]
        stats["totalVillages"] += 1
        if status["hasPlan"]:
            stats["withPlan"] += 1
        else:
            stats["withoutPlan"] += 1
        if status["needsVolunteers"]:
            stats["needVolunteers"] += 1
        if status["needsFunding"]:
            stats["needFunding"] += 1
        if status["needsVolunteers"] or status["needsFunding"]:
            stats["needHelp"] += 1

    return stats


def filter_villages(villages: Iterable[dict], filter_type: str) -> List[dict]:
    """Raises KeyError for an unknown filter type."""
    predicate = VILLAGE_FILTERS[filter_type]
    return [v for v in villages if predicate(v["status"])]


# ---------- Merge ----------

def _usable_uid(uid) -> bool:
    return isinstance(uid, (str, int, float)) and uid != ""


def index_plans(plans: dict) -> dict:
    """Map each plan's village uid to the first plan that carries it."""
    index = {}
    for plan in plans.values():
        if not isinstance(plan, dict):
            continue
        village_info = plan.get("village_info")
        if not isinstance(village_info, dict):
            continue
        uid = village_info.get(UID_PROPERTY)
        if not _usable_uid(uid):
            continue
        index.setdefault(uid, plan)
    return index


def outer_ring(geometry: Optional[dict]) -> list:
    """Outer ring of the first polygon as [lat, lng] pairs.

    Works for Polygon and MultiPolygon. Anything unusable gives [].
    """
    if not isinstance(geometry, dict):
        return []
    coords = geometry.get("coordinates")
    try:
        if geometry.get("type") == "MultiPolygon":
            ring = coords[0][0]
        else:
            ring = coords[0]
        return [[point[1], point[0]] for point in ring]
    except (TypeError, IndexError, KeyError):
        return []


def merge_village(position: int, feature: dict, plan_index: dict) -> dict:
    if not isinstance(feature, dict):
        feature = {}
    properties = feature.get("properties")
    if not isinstance(properties, dict):
        properties = {}
    geometry = feature.get("geometry")
    uid = properties.get(UID_PROPERTY)

    plan = plan_index.get(uid) if _usable_uid(uid) else None

    return {
        "id": position,
        "uid": uid,
        "name": properties.get("Vill_Th") or UNNAMED_VILLAGE,
        "code": properties.get("Vill_Code"),
        "district": properties.get("Amp_Th"),
        "subdistrict": properties.get("Tam_Th"),
        "province": properties.get("Prov_Th"),
        "coordinates": outer_ring(geometry),
        "status": derive_status(plan),
        "communityPlan": plan,
        "gisData": {"geometry": geometry, **properties},
    }


def merge_villages(features: List[dict], plans: dict) -> List[dict]:
    """One merged view per feature, in feature order, ids starting at 1."""
    plan_index = index_plans(plans)
    return [
        merge_village(position, feature, plan_index)
        for position, feature in enumerate(features, start=1)
    ]


# ---------- Payload-reduced projections ----------

def batch_village(village: dict) -> dict:
    return {
        "id": village["id"],
        "name": village["name"],
        "code": village["code"],
        "district": village["district"],
        "subdistrict": village["subdistrict"],
        "province": village["province"],
        "status": village["status"],
    }


def light_village(village: dict) -> dict:
    return {
        "id": village["id"],
        "name": village["name"],
        "district": village["district"],
        "subdistrict": village["subdistrict"],
        "status": village["status"],
    }


def simplify_burn_areas(burn_areas: Optional[dict], limit: int = BURN_AREA_LIMIT) -> Optional[dict]:
    if not burn_areas:
        return None
    features = burn_areas.get("features") or []
    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "properties": {"OBJECTID": (feature.get("properties") or {}).get("OBJECTID")},
                "geometry": feature.get("geometry"),
            }
            for feature in features[:limit]
        ],
    }
