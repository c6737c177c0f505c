"""SQLiteRepository tests.

Most tests use an in-memory database so each fixture is fresh and isolated;
one test uses `tmp_path` to check data survives reopening the file.
"""

from __future__ import annotations

import sqlite3
from typing import Iterator

import pytest

from urlinsight.crawler.errors import TargetNotFoundError
from urlinsight.crawler.repository import SQLiteRepository
from urlinsight.crawler.types import AnalysisResult, Link, TargetStatus


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def repo() -> Iterator[SQLiteRepository]:
    repository = SQLiteRepository(":memory:")
    yield repository
    repository.close()


def sample_links() -> list[Link]:
    return [
        Link("https://site.test/a", False, 200),
        Link("https://other.test/b", True, 404),
    ]


# ---------------------------------------------------------------------------
# targets
# ---------------------------------------------------------------------------

class TestTargets:
    def test_create_and_find(self, repo: SQLiteRepository) -> None:
        target = repo.create_target("https://site.test/")
        assert target.id > 0
        assert target.status == TargetStatus.QUEUED
        assert repo.find_by_id(target.id) == target

    def test_create_is_idempotent_per_url(self, repo: SQLiteRepository) -> None:
        first = repo.create_target("https://site.test/")
        repo.update_status(first.id, TargetStatus.DONE)

        again = repo.create_target("https://site.test/")
        assert again.id == first.id
        assert again.status == TargetStatus.QUEUED

    def test_find_missing(self, repo: SQLiteRepository) -> None:
        with pytest.raises(TargetNotFoundError):
            repo.find_by_id(404)

    def test_update_status(self, repo: SQLiteRepository) -> None:
        target = repo.create_target("https://site.test/")
        repo.update_status(target.id, TargetStatus.RUNNING)
        assert repo.find_by_id(target.id).status == TargetStatus.RUNNING

        repo.update_status(target.id, "error")
        assert repo.find_by_id(target.id).status == TargetStatus.ERROR

    def test_update_missing(self, repo: SQLiteRepository) -> None:
        with pytest.raises(TargetNotFoundError):
            repo.update_status(404, TargetStatus.DONE)


# ---------------------------------------------------------------------------
# analysis snapshots
# ---------------------------------------------------------------------------

class TestResults:
    def test_save_and_read_back(self, repo: SQLiteRepository) -> None:
        target = repo.create_target("https://site.test/")
        analysis = AnalysisResult(html_version="HTML 5", title="Home", h1_count=2, has_login_form=True)
        analysis.recount(sample_links())

        repo.save_results(target.id, analysis, sample_links())

        stored, links = repo.latest_result(target.id)
        assert stored.target_id == target.id
        assert stored.title == "Home"
        assert stored.h1_count == 2
        assert stored.has_login_form is True
        assert (stored.internal_link_count, stored.external_link_count, stored.broken_link_count) == (1, 1, 1)
        assert links == sample_links()

    def test_snapshots_are_appended_newest_first(self, repo: SQLiteRepository) -> None:
        target = repo.create_target("https://site.test/")
        repo.save_results(target.id, AnalysisResult(title="first"), [])
        repo.save_results(target.id, AnalysisResult(title="second"), sample_links())

        history = repo.list_results(target.id)
        assert [analysis.title for _, analysis in history] == ["second", "first"]
        assert repo.list_links(history[1][0]) == []

    def test_latest_result_when_never_analyzed(self, repo: SQLiteRepository) -> None:
        target = repo.create_target("https://site.test/")
        assert repo.latest_result(target.id) is None

    def test_save_for_missing_target_writes_nothing(self, repo: SQLiteRepository) -> None:
        with pytest.raises(TargetNotFoundError):
            repo.save_results(77, AnalysisResult(), sample_links())
        assert repo.list_results(77) == []

    def test_save_marks_target_done(self, repo: SQLiteRepository) -> None:
        target = repo.create_target("https://site.test/")
        repo.update_status(target.id, TargetStatus.RUNNING)

        repo.save_results(target.id, AnalysisResult(title="Home"), sample_links())

        assert repo.find_by_id(target.id).status == TargetStatus.DONE

    def test_failed_link_insert_rolls_back_snapshot_and_status(self, repo: SQLiteRepository) -> None:
        target = repo.create_target("https://site.test/")
        repo.update_status(target.id, TargetStatus.RUNNING)
        bad_links = [Link("https://site.test/ok", False, 200), Link(None, False, 0)]

        with pytest.raises(sqlite3.IntegrityError):
            repo.save_results(target.id, AnalysisResult(title="partial"), bad_links)

        assert repo.find_by_id(target.id).status == TargetStatus.RUNNING
        assert repo.latest_result(target.id) is None


class TestFileDatabase:
    def test_data_survives_reopen(self, tmp_path) -> None:
        db_path = tmp_path / "nested" / "crawl.db"

        with SQLiteRepository(db_path) as repo:
            target = repo.create_target("https://site.test/")
            repo.save_results(target.id, AnalysisResult(title="kept"), sample_links())

        with SQLiteRepository(db_path) as repo:
            stored, links = repo.latest_result(target.id)
            assert stored.title == "kept"
            assert len(links) == 2
