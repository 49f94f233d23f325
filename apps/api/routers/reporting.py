"""
Reporting API job management for a single connection.
"""

import logging
from typing import Any, Awaitable, Callable, Dict

from fastapi import APIRouter, Depends, HTTPException
from googleapiclient.errors import HttpError

from ingestion.types import SourceUnavailableError
from routers.auth_scope import require_cron_secret
from services.credentials import TokenRefreshError
from services.crypto import TokenDecryptionError
from services.reporting import ConnectionNotFoundError, ReportingJobMissingError, ReportingService

router = APIRouter(dependencies=[Depends(require_cron_secret)])
logger = logging.getLogger(__name__)


def get_reporting_service() -> ReportingService:
    return ReportingService()


async def _run(action: str, fn: Callable[[], Awaitable[Dict[str, Any]]]) -> Dict[str, Any]:
    try:
        return await fn()
    except ConnectionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ReportingJobMissingError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except (TokenRefreshError, TokenDecryptionError) as exc:
        raise HTTPException(status_code=401, detail=f"Token error: {exc}") from exc
    except (HttpError, SourceUnavailableError) as exc:
        logger.warning("Reporting %s failed: %s", action, exc)
        raise HTTPException(status_code=502, detail=f"Reporting API error: {exc}") from exc


@router.post("/{connection_id}/setup")
async def setup_reporting_job(
    connection_id: str,
    service: ReportingService = Depends(get_reporting_service),
):
    return await _run("setup", lambda: service.setup(connection_id))


@router.post("/{connection_id}/fetch")
async def fetch_latest_report(
    connection_id: str,
    service: ReportingService = Depends(get_reporting_service),
):
    return await _run("fetch", lambda: service.fetch(connection_id))


@router.post("/{connection_id}/backfill")
async def backfill_reports(
    connection_id: str,
    service: ReportingService = Depends(get_reporting_service),
):
    return await _run("backfill", lambda: service.backfill(connection_id))
