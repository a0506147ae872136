"""
Unit tests for the SQLite-backed request status tracker
"""
from datetime import datetime, timezone

import pytest

from core.errors import RequestNotFound
from core.schemas import AnalysisReport


def sample_report() -> AnalysisReport:
    return AnalysisReport(
        targets=["startups"],
        keywords=["SaaS"],
        total_posts=3,
        filtered_posts=1,
        completed_at=datetime.now(timezone.utc),
    )


class TestStatusTracker:
    """Test the request lifecycle"""

    @pytest.mark.asyncio
    async def test_create_request_starts_pending(self, tracker):
        status = await tracker.create_request(["startups"], ["SaaS"])

        assert status.status == "pending"
        assert status.progress == 0
        assert status.message == "Request created"
        assert status.targets == ["startups"]
        assert status.keywords == ["SaaS"]
        assert status.report is None
        assert status.error is None

    @pytest.mark.asyncio
    async def test_request_ids_are_unique(self, tracker):
        first = await tracker.create_request(["a"], ["b"])
        second = await tracker.create_request(["a"], ["b"])

        assert first.id != second.id

    @pytest.mark.asyncio
    async def test_update_status_clamps_progress(self, tracker):
        status = await tracker.create_request(["startups"], ["SaaS"])

        updated = await tracker.update_status(status.id, "in_progress", "Fetching", 140)

        assert updated.status == "in_progress"
        assert updated.progress == 100
        assert updated.updated_at >= status.updated_at

    @pytest.mark.asyncio
    async def test_mark_completed_stores_report(self, tracker):
        status = await tracker.create_request(["startups"], ["SaaS"])

        await tracker.mark_completed(status.id, sample_report())
        final = await tracker.get_request_status(status.id)

        assert final.status == "completed"
        assert final.progress == 100
        assert final.is_terminal
        assert final.report.total_posts == 3
        assert final.report.filtered_posts == 1

    @pytest.mark.asyncio
    async def test_mark_failed_records_error(self, tracker):
        status = await tracker.create_request(["startups"], ["SaaS"])
        await tracker.update_status(status.id, "in_progress", "Fetching", 40)

        final = await tracker.mark_failed(status.id, "classifier unreachable")

        assert final.status == "failed"
        assert final.error == "classifier unreachable"
        assert final.progress == 0
        assert final.report is None

    @pytest.mark.asyncio
    async def test_unknown_request(self, tracker):
        assert await tracker.get_request_status("missing") is None

        with pytest.raises(RequestNotFound):
            await tracker.update_status("missing", "in_progress", "x", 10)

    @pytest.mark.asyncio
    async def test_list_recent_limits_results(self, tracker):
        for i in range(3):
            await tracker.create_request([f"t{i}"], ["k"])

        recent = await tracker.list_recent(limit=2)

        assert len(recent) == 2

    @pytest.mark.asyncio
    async def test_completed_request_is_final(self, tracker):
        status = await tracker.create_request(["startups"], ["SaaS"])
        await tracker.mark_completed(status.id, sample_report())

        after_update = await tracker.update_status(status.id, "in_progress", "again", 10)
        after_fail = await tracker.mark_failed(status.id, "late error")

        assert after_update.status == "completed"
        assert after_fail.status == "completed"
        final = await tracker.get_request_status(status.id)
        assert final.status == "completed"
        assert final.progress == 100
        assert final.error is None
        assert final.report.total_posts == 3

    @pytest.mark.asyncio
    async def test_failed_request_is_final(self, tracker):
        status = await tracker.create_request(["startups"], ["SaaS"])
        await tracker.mark_failed(status.id, "classifier unreachable")

        await tracker.mark_completed(status.id, sample_report())

        final = await tracker.get_request_status(status.id)
        assert final.status == "failed"
        assert final.error == "classifier unreachable"
        assert final.report is None
