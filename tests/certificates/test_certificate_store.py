"""Tests for Cassandra certificate persistence."""

from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest
from cassandra.cluster import Session

from src.certificates.models import Certificate
from src.certificates.store import CassandraCertificateStore


NOW = datetime(2026, 4, 1, 8, 0, tzinfo=UTC)


@pytest.fixture
def mock_session():
    """Mock Cassandra session with one prepared statement per query."""
    session = Mock(spec=Session)
    session.prepare = Mock(side_effect=lambda query: Mock(query=query))
    session.aexecute = AsyncMock(return_value=Mock())
    return session


@pytest.fixture
def store(mock_session) -> CassandraCertificateStore:
    return CassandraCertificateStore(mock_session, "test_keyspace")


def one(row) -> Mock:
    result = Mock()
    result.one.return_value = row
    return result


def certificate_row(**overrides) -> SimpleNamespace:
    certificate = Certificate(
        certificate_id="CERT-2026-ABCD1234",
        student_id=uuid4(),
        course_id=uuid4(),
        student_name="Ana Souza",
        course_name="Pharmacology",
        verification_code="ABCD1234EFGH",
        final_score=88,
        issued_at=NOW,
    )
    fields = certificate.to_dict()
    del fields["download_count"]
    fields.update(overrides)
    return SimpleNamespace(**fields)


class TestDownloads:
    async def test_record_download_increments_counter(
        self, store, mock_session
    ) -> None:
        mock_session.aexecute.side_effect = [Mock(), Mock(), one(Mock(download_count=3))]

        total = await store.record_download("CERT-2026-ABCD1234", NOW)

        assert total == 3
        queries = [c.args[0].query for c in mock_session.aexecute.call_args_list]
        assert "download_count = download_count + 1" in queries[0]
        assert "test_keyspace.certificate_downloads" in queries[0]
        assert "SET last_downloaded_at = ?" in queries[1]

    async def test_get_merges_download_count(self, store, mock_session) -> None:
        mock_session.aexecute.side_effect = [
            one(certificate_row(last_downloaded_at=datetime(2026, 4, 2, 9, 0))),
            one(Mock(download_count=4)),
        ]

        certificate = await store.get("CERT-2026-ABCD1234")

        assert certificate.download_count == 4
        assert certificate.last_downloaded_at.tzinfo is UTC

    async def test_get_without_downloads(self, store, mock_session) -> None:
        mock_session.aexecute.side_effect = [one(certificate_row()), one(None)]

        certificate = await store.get("CERT-2026-ABCD1234")

        assert certificate.download_count == 0
        assert certificate.grade == "B+"

    async def test_get_missing_certificate(self, store, mock_session) -> None:
        mock_session.aexecute.return_value = one(None)
        assert await store.get("CERT-2026-ABCD1234") is None
        assert mock_session.aexecute.await_count == 1
