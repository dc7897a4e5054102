"""
Build request API routes.

Provides:
- GET /api/build-requests/{triggerable} - Pending work of a triggerable
"""

import logging
from pathlib import Path
from typing import Any

from fastapi import APIRouter, Query

from perfsync.core.api.models import ApiStatus, build_requests_response
from perfsync.core.config import load_config
from perfsync.core.exceptions import TriggerableNotFound
from perfsync.core.models import ModelRegistry, fetch_for_triggerable
from perfsync.core.store import Store

router = APIRouter()
logger = logging.getLogger(__name__)


def get_db_path() -> Path:
    """
    Get the store database path.

    Read from the loaded configuration (``database.path`` or
    ``PERFSYNC_DB_PATH``).
    """
    return Path(load_config().database.path)


@router.get("/build-requests/{triggerable}")
async def get_build_requests(
    triggerable: str,
    use_legacy_id_resolution: bool = Query(False, alias="useLegacyIdResolution"),
) -> dict[str, Any]:
    """
    Get the build requests of a triggerable that still have work pending.

    Requests of test groups whose requests have all finished are left out;
    every request of any other group is included.

    Returns:
        ``{"status": "TriggerableNotFound"}`` for an unknown triggerable,
        otherwise the build requests with their root sets and roots

    Example response:
        {
          "status": "OK",
          "buildRequests": [
            {"id": 700, "order": 0, "platform": "65", "rootSet": 401,
             "status": "pending", "test": "200"}
          ],
          "rootSets": [{"id": 401, "roots": ["87832", "93116"]}],
          "roots": [{"id": 87832, "repository": "9", "revision": "10.11 15A284"}]
        }
    """
    db_path = get_db_path()
    if not db_path.exists():
        # Nothing has been recorded yet, so no triggerable can exist
        return {"status": ApiStatus.TRIGGERABLE_NOT_FOUND.value}

    store = Store(db_path)
    registry = ModelRegistry()
    try:
        requests = await fetch_for_triggerable(store, registry, triggerable)
    except TriggerableNotFound:
        logger.info("Build requests asked for unknown triggerable %s", triggerable)
        return {"status": ApiStatus.TRIGGERABLE_NOT_FOUND.value}

    return build_requests_response(requests, use_legacy_id_resolution).to_json()
