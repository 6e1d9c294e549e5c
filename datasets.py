"""
Static GIS and community-plan datasets.

Everything here is read once when the application starts and kept in a
DatasetSnapshot for the lifetime of the process. Changed files on disk
are only picked up by a restart.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple

from villages import merge_villages

logger = logging.getLogger(__name__)

# key -> file name inside DATA_DIR
OVERLAY_FILES = {
    "forestTypes": "forrest-type-cnx.json",
    "firebreaks": "wildfire_protect_all-20vills.geojson",
    "fuelManagement": "Fuel_Manage_20vills.geojson",
    "fireSentry": "FireSentry_Station_All.geojson",
    "villageWeirs": "Village_Weir_All.geojson",
    "wildfireCheck": "WildFire_Check_All_1.geojson",
    "burnAreas": "burn_area_2024.geojson",
}

BUILDINGS_DIR = "builing-in-village"


class DatasetLoadError(Exception):
    """A mandatory dataset could not be read or parsed."""


class InvalidVillageUid(ValueError):
    pass


@dataclass(frozen=True)
class DatasetSnapshot:
    villages: Tuple[dict, ...]
    overlays: Mapping[str, Any]
    plan_count: int = 0
    data_dir: Path = field(default_factory=lambda: Path("data"))

    def overlay(self, key: str):
        return self.overlays.get(key)

    def village_by_id(self, village_id: int) -> Optional[dict]:
        # ids are 1-based positions
        if 1 <= village_id <= len(self.villages):
            return self.villages[village_id - 1]
        return None


def resolve_data_dir(data_dir=None) -> Path:
    return Path(data_dir or os.getenv("DATA_DIR", "data"))


def _read_json(path: Path):
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def load_mandatory(path: Path, label: str):
    try:
        return _read_json(path)
    except (OSError, ValueError) as e:
        raise DatasetLoadError(f"Cannot load {label} from {path}: {e}") from e


def load_overlays(data_dir: Path) -> dict:
    overlays = {}
    for key, file_name in OVERLAY_FILES.items():
        path = data_dir / file_name
        if not path.exists():
            logger.warning(f"File not found: {file_name}")
            overlays[key] = None
            continue
        try:
            overlays[key] = _read_json(path)
            logger.info(f"Cached {key} data")
        except (OSError, ValueError) as e:
            logger.error(f"Error loading {file_name}: {e}")
            overlays[key] = None
    return overlays


def load_snapshot(data_dir=None) -> DatasetSnapshot:
    """Read every static dataset and merge villages with their plans.

    Raises DatasetLoadError when the GIS feature collection or the keyed
    plan dataset is missing or malformed. Overlay files are optional and
    come back as None when they cannot be read.
    """
    data_dir = resolve_data_dir(data_dir)
    logger.info(f"Loading data files from {data_dir}")

    gis_data = load_mandatory(data_dir / os.getenv("VILLAGES_FILE", "allfvill_newuid.geojson"), "village GIS data")
    plan_data = load_mandatory(data_dir / os.getenv("PLANS_FILE", "comunity-plan.json"), "community plans")

    features = gis_data.get("features") if isinstance(gis_data, dict) else None
    if not isinstance(features, list):
        raise DatasetLoadError("Village GIS data is not a feature collection")
    plans = plan_data.get("villages") if isinstance(plan_data, dict) else None
    if not isinstance(plans, dict):
        raise DatasetLoadError("Community plan data has no 'villages' mapping")

    overlays = load_overlays(data_dir)

    logger.info(f"Loaded {len(features)} villages from GIS data")
    logger.info(f"Loaded {len(plans)} community plans")

    villages = merge_villages(features, plans)
    logger.info(f"Processed {len(villages)} villages with combined data")

    return DatasetSnapshot(
        villages=tuple(villages),
        overlays=MappingProxyType(overlays),
        plan_count=len(plans),
        data_dir=data_dir,
    )


def building_path(data_dir: Path, uid: str) -> Path:
    if not uid or uid != Path(uid).name or uid in (".", ".."):
        raise InvalidVillageUid(f"Invalid village uid: {uid!r}")
    return data_dir / BUILDINGS_DIR / f"new-uid_{uid}.geojson"


def load_buildings(data_dir: Path, uid: str):
    """Building footprints for one village, or None if there is no file."""
    path = building_path(data_dir, uid)
    if not path.exists():
        return None
    return _read_json(path)
