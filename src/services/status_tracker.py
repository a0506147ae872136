"""
StatusTracker - durable lifecycle record of analysis requests.
Rows live in SQLite; the report is stored as JSON alongside the status.
"""
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from core.errors import RequestNotFound
from core.schemas import TERMINAL_STATES, AnalysisReport, RequestState, RequestStatus
from services.database import Database

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class StatusTracker:
    """
    Creates, advances and reads request status records.
    Records are never deleted here; retention is handled outside the pipeline.
    """

    def __init__(self, database: Database):
        self.db = database

    async def initialize(self) -> None:
        await self.db.init_tables()

    async def create_request(self, targets: List[str], keywords: List[str]) -> RequestStatus:
        await self.initialize()

        request_id = uuid.uuid4().hex
        await self.db.insert_request(
            request_id=request_id,
            status="pending",
            message="Request created",
            targets=list(targets),
            keywords=list(keywords),
            now=_now(),
        )

        logger.info(f"Created request {request_id} for targets: [{', '.join(targets)}]")
        return await self._require(request_id)

    async def update_status(
        self,
        request_id: str,
        status: RequestState,
        message: str,
        progress: int,
    ) -> RequestStatus:
        progress = max(0, min(100, int(progress)))
        if not await self._update(request_id, {
            "status": status,
            "message": message,
            "progress": progress,
        }):
            return await self._require(request_id)

        logger.info(f"Updated request {request_id} status: {status} ({progress}%) - {message}")
        return await self._require(request_id)

    async def mark_completed(self, request_id: str, report: AnalysisReport) -> RequestStatus:
        if not await self._update(request_id, {
            "status": "completed",
            "message": "Analysis completed successfully",
            "progress": 100,
            "report": report.model_dump_json(),
        }):
            return await self._require(request_id)

        logger.info(f"Completed request {request_id}")
        return await self._require(request_id)

    async def mark_failed(self, request_id: str, error: str) -> RequestStatus:
        if not await self._update(request_id, {
            "status": "failed",
            "message": "Analysis failed",
            "progress": 0,
            "error": error,
        }):
            return await self._require(request_id)

        logger.error(f"Failed request {request_id}: {error}")
        return await self._require(request_id)

    async def get_request_status(self, request_id: str) -> Optional[RequestStatus]:
        await self.initialize()
        row = await self.db.get_request(request_id)
        if row is None:
            return None
        return _to_status(row)

    async def list_recent(self, limit: int = 20) -> List[RequestStatus]:
        await self.initialize()
        rows = await self.db.list_requests(limit)
        return [_to_status(row) for row in rows]

    async def _update(self, request_id: str, fields: dict) -> bool:
        """
        Apply fields to a non-terminal record. Returns False, leaving the
        record untouched, when it is already completed or failed.
        """
        await self.initialize()
        fields["updated_at"] = _now().isoformat()
        changed = await self.db.update_request(request_id, fields, exclude_states=TERMINAL_STATES)
        if changed:
            return True

        current = await self._require(request_id)
        logger.warning(
            f"Ignoring {fields.get('status')} update of request {request_id}: already {current.status}"
        )
        return False

    async def _require(self, request_id: str) -> RequestStatus:
        status = await self.get_request_status(request_id)
        if status is None:
            raise RequestNotFound(f"Request {request_id} not found")
        return status


def _to_status(row) -> RequestStatus:
    report = row["report"]
    return RequestStatus(
        id=row["id"],
        status=row["status"],
        message=row["message"],
        progress=row["progress"],
        targets=json.loads(row["targets"]),
        keywords=json.loads(row["keywords"]),
        report=AnalysisReport.model_validate_json(report) if report else None,
        error=row["error"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )
