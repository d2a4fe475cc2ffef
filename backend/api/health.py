"""
Health API Endpoints

Liveness information: database reachability, in-memory registry sizes and
external API reachability.
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends

from backend.dependencies import (
    get_config_dependency,
    get_database_dependency,
    get_external_api_dependency,
    get_registry_stats,
)
from src.generation.external_api import ExternalGameAPI
from src.storage.database import Database
from src.utilities.config import ClawConfig

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/health",
    summary="Health check",
    description="Service status, database and registry state, and whether the external game API answers",
    tags=["Health"],
)
async def health(
    config: ClawConfig = Depends(get_config_dependency),
    database: Database = Depends(get_database_dependency),
    external_api: ExternalGameAPI = Depends(get_external_api_dependency),
):
    """
    Report service health.

    The status is ``degraded`` when the database does not answer. An
    unreachable external API does not change it; generations will then end
    with an error event.
    """
    database_ok = database.ping()
    if not database_ok:
        logger.warning("Health check: database unreachable")

    external_healthy = await external_api.health_check()
    return {
        "status": "ok" if database_ok else "degraded",
        "timestamp": datetime.now().isoformat(),
        "version": config.version,
        "database": "connected" if database_ok else "disconnected",
        "externalApi": {
            "url": config.external_api.base_url,
            "healthy": external_healthy,
        },
        "registries": get_registry_stats(),
    }
