"""
Community plan records in MongoDB.

Functions take the pymongo Database explicitly so routes can receive it
through FastAPI dependencies. Missing documents come back as None;
driver errors propagate to the caller.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import DESCENDING, ReturnDocument

from database import create_document
from schemas import CommunityPlan, CommunityPlanSubmission, SupportPledge

logger = logging.getLogger(__name__)

PLANS = "communityplan"
SUPPORT = "supportpledge"

SUMMARY_FIELDS = {
    "village_info.name": 1,
    "village_info.district": 1,
    "village_info.subdistrict": 1,
    "status": 1,
    "submitted_at": 1,
    "budget.allocated": 1,
    "budget.shortage": 1,
}

EMPTY_STATISTICS = {
    "total_plans": 0,
    "pending_plans": 0,
    "approved_plans": 0,
    "total_budget_requested": 0,
    "total_budget_allocated": 0,
    "total_budget_shortage": 0,
}


class InvalidPlanId(ValueError):
    pass


def to_object_id(plan_id: str) -> ObjectId:
    try:
        return ObjectId(plan_id)
    except (InvalidId, TypeError) as e:
        raise InvalidPlanId(plan_id) from e


def serialize(doc: dict) -> dict:
    out = dict(doc)
    out["id"] = str(out.pop("_id"))
    return out


def create_plan(db, submission: CommunityPlanSubmission) -> dict:
    plan = CommunityPlan(**submission.model_dump())
    plan_id = create_document(PLANS, plan.model_dump(by_alias=True), database=db)
    logger.info(f"New community plan submitted for: {plan.village_info.name}")
    return {
        "id": plan_id,
        "village_name": plan.village_info.name,
        "status": plan.status,
        "submitted_at": plan.submitted_at,
    }


def build_plan_query(status: Optional[str] = None, district: Optional[str] = None,
                     subdistrict: Optional[str] = None) -> dict:
    query = {}
    if status:
        query["status"] = status
    if district:
        query["village_info.district"] = district
    if subdistrict:
        query["village_info.subdistrict"] = subdistrict
    return query


def list_plans(db, page: int = 1, limit: int = 10, **filters):
    """One page of plan summaries, newest first, plus pagination info."""
    query = build_plan_query(**filters)
    cursor = (
        db[PLANS]
        .find(query, SUMMARY_FIELDS)
        .sort("submitted_at", DESCENDING)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    items = [serialize(doc) for doc in cursor]
    total = db[PLANS].count_documents(query)

    pagination = {
        "current_page": page,
        "total_pages": math.ceil(total / limit),
        "total_items": total,
        "items_per_page": limit,
    }
    return items, pagination


def get_plan(db, plan_id: str) -> Optional[dict]:
    doc = db[PLANS].find_one({"_id": to_object_id(plan_id)})
    if doc is None:
        return None

    out = serialize(doc)
    plan = CommunityPlan.model_validate(doc)
    out["total_budget"] = plan.total_budget
    out["equipment_shortage"] = plan.equipment_shortage
    return out


def update_plan_status(db, plan_id: str, status: str, notes: Optional[str] = None,
                       reviewed_by: Optional[str] = None) -> Optional[dict]:
    now = datetime.now(timezone.utc)
    changes = {"status": status, "reviewed_at": now, "updated_at": now}
    if notes is not None:
        changes["notes"] = notes
    if reviewed_by is not None:
        changes["reviewed_by"] = reviewed_by

    doc = db[PLANS].find_one_and_update(
        {"_id": to_object_id(plan_id)},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        return None

    logger.info(f"Plan status updated: {doc['village_info']['name']} -> {status}")
    return {
        "id": str(doc["_id"]),
        "village_name": doc["village_info"]["name"],
        "status": doc["status"],
        "reviewed_at": doc["reviewed_at"],
    }


def delete_plan(db, plan_id: str) -> bool:
    doc = db[PLANS].find_one_and_delete({"_id": to_object_id(plan_id)})
    if doc is None:
        return False
    logger.info(f"Plan deleted: {doc['village_info']['name']}")
    return True


def plan_statistics(db) -> dict:
    pipeline = [
        {
            "$group": {
                "_id": None,
                "total_plans": {"$sum": 1},
                "pending_plans": {"$sum": {"$cond": [{"$eq": ["$status", "pending"]}, 1, 0]}},
                "approved_plans": {"$sum": {"$cond": [{"$eq": ["$status", "approved"]}, 1, 0]}},
                "total_budget_requested": {"$sum": {"$add": ["$budget.allocated", "$budget.shortage"]}},
                "total_budget_allocated": {"$sum": "$budget.allocated"},
                "total_budget_shortage": {"$sum": "$budget.shortage"},
            }
        }
    ]
    results = list(db[PLANS].aggregate(pipeline))
    if not results:
        return dict(EMPTY_STATISTICS)

    stats = results[0]
    stats.pop("_id", None)
    return stats


def create_support_pledge(db, pledge: SupportPledge) -> dict:
    data = pledge.model_dump()
    data["submittedAt"] = datetime.now(timezone.utc)
    data["status"] = "pending"
    pledge_id = create_document(SUPPORT, data, database=db)

    details = (
        f"฿{pledge.support.amount}" if pledge.supportType == "money"
        else f"{pledge.support.equipment} x{pledge.support.quantity}"
    )
    logger.info(
        f"New support submission: village={pledge.villageName} type={pledge.supportType} "
        f"donor={pledge.donorInfo.name} details={details}"
    )
    return {
        "id": pledge_id,
        "village": pledge.villageName,
        "type": pledge.supportType,
        "submittedAt": data["submittedAt"],
    }
