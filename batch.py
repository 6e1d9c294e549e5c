"""
Batch retrieval of several named datasets in one call.

A key that fails is reported under "errors" and never stops the other
keys from being returned.
"""

import logging

from villages import (
    BATCH_VILLAGE_LIMIT,
    batch_village,
    compute_statistics,
    light_village,
    simplify_burn_areas,
)

logger = logging.getLogger(__name__)


def _villages(snapshot):
    return [batch_village(v) for v in snapshot.villages[:BATCH_VILLAGE_LIMIT]]


def _villages_light(snapshot):
    return [light_village(v) for v in snapshot.villages]


def _overlay(key):
    return lambda snapshot: snapshot.overlay(key)


def _burn_areas(snapshot):
    return simplify_burn_areas(snapshot.overlay("burnAreas"))


BATCH_DATASETS = {
    "villages": _villages,
    "villagesLight": _villages_light,
    "stats": lambda snapshot: compute_statistics(snapshot.villages),
    "forestTypes": _overlay("forestTypes"),
    "firebreaks": _overlay("firebreaks"),
    "fuelManagement": _overlay("fuelManagement"),
    "fireSentry": _overlay("fireSentry"),
    "villageWeirs": _overlay("villageWeirs"),
    "wildfireCheck": _overlay("wildfireCheck"),
    "burnAreas": _burn_areas,
    "burnAreasSimplified": _burn_areas,
}


def collect_batch(snapshot, keys):
    """Return (data, errors) for the requested dataset keys."""
    data = {}
    errors = {}
    available = ", ".join(BATCH_DATASETS)

    for key in keys:
        builder = BATCH_DATASETS.get(key)
        if builder is None:
            errors[key] = f"Unknown dataset: {key}. Available: {available}"
            continue
        try:
            data[key] = builder(snapshot)
        except Exception as e:
            logger.warning(f"Batch: failed to build dataset {key}: {e}")
            errors[key] = str(e)

    return data, errors
