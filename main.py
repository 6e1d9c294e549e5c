import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

import database
from batch import BATCH_DATASETS, collect_batch
from database import get_db
from datasets import DatasetLoadError, InvalidVillageUid, load_buildings, load_snapshot
from plans import (
    InvalidPlanId,
    create_plan,
    create_support_pledge,
    delete_plan,
    get_plan,
    list_plans,
    plan_statistics,
    update_plan_status,
)
from schemas import (
    BatchRequest,
    CommunityPlanSubmission,
    PlanStatus,
    PlanStatusUpdate,
    SupportPledge,
)
from villages import VILLAGE_FILTERS, compute_statistics, filter_villages, simplify_burn_areas

APP_NAME = "Fire Management API"
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        app.state.snapshot = load_snapshot()
    except DatasetLoadError as e:
        logger.critical(f"Error loading data files: {e}")
        raise SystemExit(1)

    if database.db is not None:
        try:
            database.ensure_indexes(database.db)
        except PyMongoError as e:
            logger.error(f"Could not create indexes: {e}")

    logger.info(f"{APP_NAME} serving data for {len(app.state.snapshot.villages)} villages")
    yield
    logger.info(f"{APP_NAME} shutting down")


app = FastAPI(title=APP_NAME, lifespan=lifespan)

app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------- Error envelope ----------

def _error_body(detail) -> dict:
    if isinstance(detail, dict):
        return {"success": False, **detail}
    return {"success": False, "error": str(detail)}


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.detail), headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        details.append({"field": ".".join(loc) or "body", "message": err.get("msg", "")})
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": "Validation error",
            "message": "; ".join(f"{d['field']}: {d['message']}" for d in details),
            "details": details,
        },
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error", "message": str(exc)},
    )


# ---------- Dependencies ----------

def get_snapshot(request: Request):
    return request.app.state.snapshot


def require_db(db=Depends(get_db)):
    if db is None:
        raise HTTPException(status_code=500, detail={"error": "Database not configured",
                                                     "message": "DATABASE_URL and DATABASE_NAME must be set"})
    return db


def _store_error(error: str, e: Exception):
    logger.error(f"{error}: {e}")
    return HTTPException(status_code=500, detail={"error": error, "message": str(e)})


def _invalid_plan_id(plan_id: str):
    return HTTPException(status_code=400, detail={"error": "Invalid plan id",
                                                  "message": f"'{plan_id}' is not a valid plan id"})


PLAN_NOT_FOUND = {"error": "Community plan not found"}


# ---------- Villages ----------

@app.get("/api/villages")
def get_villages(snapshot=Depends(get_snapshot)):
    return {"success": True, "data": snapshot.villages, "total": len(snapshot.villages)}


@app.get("/api/villages/filter/{filter_type}")
def get_filtered_villages(filter_type: str, snapshot=Depends(get_snapshot)):
    if filter_type not in VILLAGE_FILTERS:
        raise HTTPException(status_code=400, detail={
            "error": "Invalid filter type",
            "message": f"filter must be one of: {', '.join(VILLAGE_FILTERS)}",
        })
    villages = filter_villages(snapshot.villages, filter_type)
    return {"success": True, "data": villages, "total": len(villages), "filter": filter_type}


@app.get("/api/villages/{village_id}")
def get_village(village_id: int, snapshot=Depends(get_snapshot)):
    village = snapshot.village_by_id(village_id)
    if village is None:
        raise HTTPException(status_code=404, detail="Village not found")
    return {"success": True, "data": village}


@app.get("/api/stats")
def get_stats(snapshot=Depends(get_snapshot)):
    return {"success": True, "data": compute_statistics(snapshot.villages)}


@app.post("/api/batch-data")
def get_batch_data(body: BatchRequest, snapshot=Depends(get_snapshot)):
    data, errors = collect_batch(snapshot, body.datasets)
    response = {
        "success": True,
        "data": data,
        "requested": body.datasets,
        "available": list(BATCH_DATASETS),
    }
    if errors:
        response["errors"] = errors
    return response


# ---------- Static overlays ----------

def _overlay_response(snapshot, key: str):
    return {"success": True, "data": snapshot.overlay(key)}


@app.get("/api/forest-types")
def get_forest_types(snapshot=Depends(get_snapshot)):
    return _overlay_response(snapshot, "forestTypes")


@app.get("/api/firebreaks")
def get_firebreaks(snapshot=Depends(get_snapshot)):
    return _overlay_response(snapshot, "firebreaks")


@app.get("/api/fuel-management")
def get_fuel_management(snapshot=Depends(get_snapshot)):
    return _overlay_response(snapshot, "fuelManagement")


@app.get("/api/fire-sentry-stations")
def get_fire_sentry_stations(snapshot=Depends(get_snapshot)):
    return _overlay_response(snapshot, "fireSentry")


@app.get("/api/village-weirs")
def get_village_weirs(snapshot=Depends(get_snapshot)):
    return _overlay_response(snapshot, "villageWeirs")


@app.get("/api/wildfire-check-points")
def get_wildfire_check_points(snapshot=Depends(get_snapshot)):
    return _overlay_response(snapshot, "wildfireCheck")


@app.get("/api/burn-areas-2024")
def get_burn_areas(snapshot=Depends(get_snapshot)):
    return _overlay_response(snapshot, "burnAreas")


@app.get("/api/burn-areas-2024-simplified")
def get_burn_areas_simplified(snapshot=Depends(get_snapshot)):
    burn_areas = snapshot.overlay("burnAreas")
    if not burn_areas:
        raise HTTPException(status_code=404, detail="Burn areas data not available")

    simplified = simplify_burn_areas(burn_areas)
    total = len(burn_areas.get("features") or [])
    return {
        "success": True,
        "data": simplified,
        "message": f"Simplified dataset with {len(simplified['features'])} features out of {total} total",
    }


@app.get("/api/buildings/{uid}")
def get_buildings(uid: str, snapshot=Depends(get_snapshot)):
    try:
        buildings = load_buildings(snapshot.data_dir, uid)
    except InvalidVillageUid as e:
        raise HTTPException(status_code=400, detail={"error": "Invalid village uid", "message": str(e)})
    except (OSError, ValueError) as e:
        raise HTTPException(status_code=500, detail={"error": "Failed to fetch building data", "message": str(e)})

    if buildings is None:
        return {"success": True, "data": None, "message": "No building data available for this village"}
    return {"success": True, "data": buildings}


# ---------- Community plans ----------

@app.post("/api/community-plans", status_code=201)
def submit_community_plan(submission: CommunityPlanSubmission, db=Depends(require_db)):
    try:
        created = create_plan(db, submission)
    except PyMongoError as e:
        raise _store_error("Failed to submit community plan", e)
    return {"success": True, "message": "Community plan submitted successfully", "data": created}


@app.get("/api/community-plans")
def get_community_plans(
    status: Optional[PlanStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    district: Optional[str] = None,
    subdistrict: Optional[str] = None,
    db=Depends(require_db),
):
    try:
        items, pagination = list_plans(db, page=page, limit=limit, status=status,
                                       district=district, subdistrict=subdistrict)
    except PyMongoError as e:
        raise _store_error("Failed to fetch community plans", e)
    return {"success": True, "data": items, "pagination": pagination}


@app.get("/api/community-plans/stats/overview")
def get_community_plan_statistics(db=Depends(require_db)):
    try:
        stats = plan_statistics(db)
    except PyMongoError as e:
        raise _store_error("Failed to fetch statistics", e)
    return {"success": True, "data": stats}


@app.get("/api/community-plans/{plan_id}")
def get_community_plan(plan_id: str, db=Depends(require_db)):
    try:
        plan = get_plan(db, plan_id)
    except InvalidPlanId:
        raise _invalid_plan_id(plan_id)
    except PyMongoError as e:
        raise _store_error("Failed to fetch community plan", e)

    if plan is None:
        raise HTTPException(status_code=404, detail=PLAN_NOT_FOUND)
    return {"success": True, "data": plan}


@app.patch("/api/community-plans/{plan_id}/status")
def patch_community_plan_status(plan_id: str, body: PlanStatusUpdate, db=Depends(require_db)):
    try:
        updated = update_plan_status(db, plan_id, body.status, notes=body.notes, reviewed_by=body.reviewed_by)
    except InvalidPlanId:
        raise _invalid_plan_id(plan_id)
    except PyMongoError as e:
        raise _store_error("Failed to update plan status", e)

    if updated is None:
        raise HTTPException(status_code=404, detail=PLAN_NOT_FOUND)
    return {"success": True, "message": "Plan status updated successfully", "data": updated}


@app.delete("/api/community-plans/{plan_id}")
def remove_community_plan(plan_id: str, db=Depends(require_db)):
    try:
        deleted = delete_plan(db, plan_id)
    except InvalidPlanId:
        raise _invalid_plan_id(plan_id)
    except PyMongoError as e:
        raise _store_error("Failed to delete community plan", e)

    if not deleted:
        raise HTTPException(status_code=404, detail=PLAN_NOT_FOUND)
    return {"success": True, "message": "Community plan deleted successfully"}


# ---------- Support ----------

@app.post("/api/support", status_code=201)
def submit_support(pledge: SupportPledge, db=Depends(require_db)):
    try:
        created = create_support_pledge(db, pledge)
    except PyMongoError as e:
        raise _store_error("Failed to submit support request", e)
    return {"success": True, "message": "Support request submitted successfully", "data": created}


# ---------- Health ----------

@app.get("/api/health")
def health(request: Request, db=Depends(get_db)):
    snapshot = getattr(request.app.state, "snapshot", None)
    return {
        "success": True,
        "message": f"{APP_NAME} is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "villages": len(snapshot.villages) if snapshot else 0,
        "store_connected": database.ping(db),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "3001")))
