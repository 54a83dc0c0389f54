from __future__ import annotations

import logging
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from tourguide.models import PointOfInterest

logger = logging.getLogger(__name__)

_CATALOG_ADAPTER = TypeAdapter(list[PointOfInterest])


def load_catalog(path: str) -> list[PointOfInterest]:
    """Load locally known POIs from a JSON file. Missing or empty path yields no POIs."""
    if not path:
        return []
    catalog_file = Path(path)
    if not catalog_file.exists():
        logger.warning("POI catalog %s not found, continuing without it", path)
        return []
    try:
        pois = _CATALOG_ADAPTER.validate_json(catalog_file.read_bytes())
    except ValidationError as e:
        logger.error("POI catalog %s is invalid: %s", path, e)
        raise
    logger.info("Loaded %d POIs from %s", len(pois), path)
    return pois
