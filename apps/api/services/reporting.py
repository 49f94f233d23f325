"""Reporting API operations for one connection: job setup, latest fetch, backfill."""

import logging
from typing import Any, Callable, Dict, Optional

from ingestion.adapters import SourceAdapters, build_source_adapters
from services.credentials import CredentialVault, utc_now
from services.snapshot_store import SnapshotStore
from services.sync import REPORTING_JOB_NAME

logger = logging.getLogger(__name__)


class ConnectionNotFoundError(LookupError):
    pass


class ReportingJobMissingError(RuntimeError):
    pass


class ReportingService:
    def __init__(
        self,
        store: Optional[SnapshotStore] = None,
        vault: Optional[CredentialVault] = None,
        adapter_factory: Callable[[str], SourceAdapters] = build_source_adapters,
    ):
        self.store = store or SnapshotStore()
        self.vault = vault or CredentialVault(self.store)
        self.adapter_factory = adapter_factory

    async def _prepare(self, connection_id: str):
        connection = await self.store.get_connection(connection_id)
        if connection is None:
            raise ConnectionNotFoundError(f"Connection {connection_id} not found")
        access_token = await self.vault.ensure_valid_access_token(connection)
        return connection, self.adapter_factory(access_token)

    async def _require_channel_id(self, connection: Any) -> str:
        channel = await self.store.get_client_channel(connection.youtube_channel_id)
        if channel is None:
            raise ConnectionNotFoundError("No matching client channel in database")
        return channel.id

    async def setup(self, connection_id: str) -> Dict[str, Any]:
        """Ensure the connection has a standing reporting job."""
        connection, adapters = await self._prepare(connection_id)
        if connection.reporting_job_id:
            return {
                "success": True,
                "jobId": connection.reporting_job_id,
                "reportTypeId": connection.reporting_job_type,
                "created": False,
            }

        job = await adapters.reporting.ensure_job(REPORTING_JOB_NAME)
        if job is None:
            return {
                "success": False,
                "error": "No channel report types available. Reconnect with the reporting scope.",
            }

        await self.store.set_reporting_job(connection.id, job.job_id, job.report_type_id)
        logger.info("Reporting job %s ready for connection %s", job.job_id, connection.id)
        return {
            "success": True,
            "jobId": job.job_id,
            "reportTypeId": job.report_type_id,
            "created": job.created,
        }

    async def fetch(self, connection_id: str) -> Dict[str, Any]:
        """Download the newest report and write impressions/CTR onto videos."""
        connection, adapters = await self._prepare(connection_id)
        if not connection.reporting_job_id:
            raise ReportingJobMissingError("No reporting job. Run setup first.")

        report = await adapters.reporting.fetch_latest(connection.reporting_job_id)
        if report is None:
            return {"success": True, "reportAvailable": False, "videosUpdated": 0}

        channel_id = await self._require_channel_id(connection)
        updated = await self.store.update_video_reach(channel_id, report.video_metrics)
        await self.store.mark_report_downloaded(connection.id, utc_now())
        return {
            "success": True,
            "reportAvailable": True,
            "reportId": report.report_id,
            "reportCreatedAt": report.report_created_at,
            "videosInReport": len(report.video_metrics),
            "videosUpdated": updated,
        }

    async def backfill(self, connection_id: str) -> Dict[str, Any]:
        """Turn every available report into daily snapshots."""
        connection, adapters = await self._prepare(connection_id)
        if not connection.reporting_job_id:
            raise ReportingJobMissingError("No reporting job. Run setup first.")

        channel_id = await self._require_channel_id(connection)
        backfill = await adapters.reporting.fetch_backfill(connection.reporting_job_id)
        written = await self.store.upsert_backfill_snapshots(channel_id, backfill.daily_metrics)
        if backfill.reports_processed:
            await self.store.mark_report_downloaded(connection.id, utc_now())

        return {
            "success": True,
            "reportsAvailable": backfill.reports_available,
            "reportsProcessed": backfill.reports_processed,
            "snapshotsUpserted": written,
            "errors": backfill.errors,
        }
