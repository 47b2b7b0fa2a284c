"""Tests for stale-version conflict detection and last-write-wins resolution."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from docvault.exceptions import ValidationError
from docvault.models import Document, User
from docvault.services import conflicts, versions


@pytest.fixture
async def three_versions(db_session: AsyncSession, test_document: Document, test_user: User) -> None:
    for text in ("one", "two", "three"):
        await versions.save_version(db_session, test_document.id, test_user.id, text)


class TestDetectConflict:
    @pytest.mark.asyncio
    async def test__detect_conflict__no_versions_means_no_conflict(
        self, db_session: AsyncSession, test_document: Document
    ) -> None:
        info = await conflicts.detect_conflict(db_session, test_document.id, 0)

        assert info.has_conflict is False
        assert info.latest_version is None
        assert info.your_version == 0
        assert info.message == "No conflict"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("client_version", "expected"), [(0, True), (2, True), (3, False), (7, False)])
    async def test__detect_conflict__only_newer_server_version_conflicts(
        self,
        db_session: AsyncSession,
        test_document: Document,
        three_versions,
        client_version: int,
        expected: bool,
    ) -> None:
        info = await conflicts.detect_conflict(db_session, test_document.id, client_version)

        assert info.has_conflict is expected
        assert info.latest_version is not None
        assert info.latest_version.version_number == 3

    @pytest.mark.asyncio
    async def test__detect_conflict__message_names_both_versions(
        self, db_session: AsyncSession, test_document: Document, three_versions
    ) -> None:
        info = await conflicts.detect_conflict(db_session, test_document.id, 1)
        assert info.message == "Conflict: server version v3 is newer than client version v1"

    @pytest.mark.asyncio
    async def test__detect_conflict__negative_client_version_raises_validation(
        self, db_session: AsyncSession, test_document: Document
    ) -> None:
        with pytest.raises(ValidationError):
            await conflicts.detect_conflict(db_session, test_document.id, -1)


class TestAutoMerge:
    @pytest.mark.asyncio
    async def test__auto_merge__client_content_wins_on_conflict(
        self, db_session: AsyncSession, test_document: Document, three_versions
    ) -> None:
        result = await conflicts.auto_merge_conflict(db_session, test_document.id, "mine", 1)

        assert result.winner == "client"
        assert result.conflict_detected is True
        assert result.merged is True
        assert result.content == "mine"
        assert result.new_version == 4

    @pytest.mark.asyncio
    async def test__auto_merge__without_conflict_is_not_merged(
        self, db_session: AsyncSession, test_document: Document, three_versions
    ) -> None:
        result = await conflicts.auto_merge_conflict(db_session, test_document.id, "mine", 3)

        assert result.conflict_detected is False
        assert result.merged is False
        assert result.content == "mine"
        assert result.new_version == 4

    @pytest.mark.asyncio
    async def test__auto_merge__does_not_write_a_version(
        self, db_session: AsyncSession, test_document: Document, three_versions
    ) -> None:
        await conflicts.auto_merge_conflict(db_session, test_document.id, "mine", 0)
        assert await versions.get_latest_version_number(db_session, test_document.id) == 3


class TestConflictDetails:
    @pytest.mark.asyncio
    async def test__get_conflict_details__reports_content_field(
        self, db_session: AsyncSession, test_document: Document, three_versions
    ) -> None:
        details = await conflicts.get_conflict_details(db_session, test_document.id, 1)

        assert details is not None
        assert details.server_version.version_number == 3
        assert details.client_version == 1
        assert details.conflicted_fields == ["content"]

    @pytest.mark.asyncio
    async def test__get_conflict_details__none_without_versions(
        self, db_session: AsyncSession, test_document: Document
    ) -> None:
        assert await conflicts.get_conflict_details(db_session, test_document.id, 0) is None
