"""Tests for version comparison and its HTML rendering."""

from datetime import datetime

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from docvault.exceptions import NotFoundError
from docvault.models import Document, User
from docvault.schemas.version import CompareResult, DiffItem, DiffStats, VersionRef
from docvault.services import version_compare, versions


class TestCompareVersions:
    @pytest.mark.asyncio
    async def test__compare_versions__word_substitution(
        self, db_session: AsyncSession, test_document: Document, test_user: User
    ) -> None:
        source = await versions.save_version(db_session, test_document.id, test_user.id, "The cat sat.")
        target = await versions.save_version(db_session, test_document.id, test_user.id, "The dog sat.")

        result = await version_compare.compare_versions(db_session, test_document.id, source.id, target.id)

        assert result.source_version.version_number == 1
        assert result.target_version.version_number == 2
        assert [(d.type, d.text) for d in result.diffs] == [
            ("equal", "The "),
            ("delete", "cat"),
            ("insert", "dog"),
            ("equal", " sat."),
        ]
        assert result.stats == DiffStats(additions=3, deletions=3, unchanged=9)

    @pytest.mark.asyncio
    async def test__compare_versions__same_version_is_all_equal(
        self, db_session: AsyncSession, test_document: Document, test_user: User
    ) -> None:
        version = await versions.save_version(db_session, test_document.id, test_user.id, "steady")

        result = await version_compare.compare_versions(db_session, test_document.id, version.id, version.id)

        assert result.stats == DiffStats(additions=0, deletions=0, unchanged=6)

    @pytest.mark.asyncio
    async def test__compare_versions__unknown_version_raises_not_found(
        self, db_session: AsyncSession, test_document: Document, test_user: User
    ) -> None:
        version = await versions.save_version(db_session, test_document.id, test_user.id, "alone")

        with pytest.raises(NotFoundError):
            await version_compare.compare_versions(db_session, test_document.id, version.id, 9999)


class TestGenerateCompareHtml:
    def _result(self, diffs: list[DiffItem]) -> CompareResult:
        ref = VersionRef(id=1, version_number=1, created_at=datetime(2026, 1, 1))
        return CompareResult(source_version=ref, target_version=ref, diffs=diffs, stats=DiffStats())

    def test__generate_compare_html__wraps_each_diff_kind(self) -> None:
        html = version_compare.generate_compare_html(
            self._result([
                DiffItem(type="equal", text="The "),
                DiffItem(type="delete", text="cat"),
                DiffItem(type="insert", text="dog"),
            ])
        )

        assert html == (
            '<div class="version-compare"><span>The </span><del>cat</del><ins>dog</ins></div>'
        )

    def test__generate_compare_html__escapes_markup(self) -> None:
        html = version_compare.generate_compare_html(
            self._result([DiffItem(type="insert", text="<b>\"Tom\" & 'Jerry'</b>\nnext")])
        )

        assert html == (
            '<div class="version-compare"><ins>&lt;b&gt;&quot;Tom&quot; &amp; '
            "&#039;Jerry&#039;&lt;/b&gt;<br>next</ins></div>"
        )

    def test__generate_compare_html__empty_comparison(self) -> None:
        assert version_compare.generate_compare_html(self._result([])) == '<div class="version-compare"></div>'
