"""Tests for the identity-preserving item loader."""

import threading

import pytest

from content_migrator.loaders.item_loader import ItemLoader
from content_migrator.models.migration import MigrationSession, MigrationStatus
from content_migrator.models.record import ImportAction, ImportStatus, SourceRecord, UpsertOutcome


@pytest.fixture
def loader(target) -> ItemLoader:
    return ItemLoader(target)


def items(count: int):
    return [{"id": i, "title": f"Item {i}"} for i in range(1, count + 1)]


class TestUpsert:
    """Test suite for single item upserts."""

    def test_create_then_update_keeps_id(self, loader, target):
        """Importing id 7 twice creates it, then updates it in place."""
        first = loader.upsert("articles", 7, {"id": 7, "title": "Hello"})
        second = loader.upsert("articles", 7, {"id": 7, "title": "Hello again"})

        assert (first.outcome, first.item_id) == (UpsertOutcome.CREATED, 7)
        assert (second.outcome, second.item_id) == (UpsertOutcome.UPDATED, 7)
        assert target.row("items/articles", 7)["title"] == "Hello again"
        assert len(target.rows("items/articles")) == 1

    def test_create_sends_explicit_id(self, loader, target):
        loader.upsert("articles", "a-1", {"id": "a-1", "title": "x"})

        _, endpoint, body = target.calls_to("POST")[0]
        assert endpoint == "/items/articles"
        assert body == {"id": "a-1", "title": "x"}

    def test_audit_fields_stripped(self, loader, target):
        loader.upsert("articles", 1, {
            "id": 1,
            "title": "x",
            "user_created": "u1",
            "date_created": "2024-01-01",
            "user_updated": None,
            "date_updated": None,
        })

        assert target.row("items/articles", 1) == {"id": 1, "title": "x"}

    def test_field_subset(self, loader, target):
        loader.upsert("articles", 1, {"id": 1, "title": "x", "body": "long"}, fields=["title", "missing"])

        assert target.row("items/articles", 1) == {"id": 1, "title": "x"}

    def test_404_lookup_also_means_absent(self, target):
        target.missing_status = 404
        result = ItemLoader(target).upsert("articles", 1, {"title": "x"})

        assert result.outcome == UpsertOutcome.CREATED

    def test_unexpected_lookup_status_fails_item(self, target):
        target.fail_when.append(lambda method, endpoint, body: method == "GET")
        result = ItemLoader(target).upsert("articles", 1, {"title": "x"})

        assert result.outcome == UpsertOutcome.FAILED
        assert result.error.status == 400
        assert target.calls_to("POST") == []

    def test_rejected_create_is_failed_without_retry(self, loader, target):
        target.fail_when.append(lambda method, endpoint, body: method == "POST")

        result = loader.upsert("articles", 1, {"title": "x"})

        assert result.outcome == UpsertOutcome.FAILED
        assert result.error.message == "Invalid payload"
        assert len(target.calls_to("POST")) == 1

    def test_singleton_patched_without_id(self, loader, target):
        target.singletons.add("items/settings")

        first = loader.upsert("settings", 1, {"id": 1, "site_name": "Blog"}, singleton=True)
        second = loader.upsert("settings", 1, {"id": 1, "site_name": "Blog 2"}, singleton=True)

        assert first.outcome == UpsertOutcome.CREATED
        assert second.outcome == UpsertOutcome.UPDATED
        assert all(endpoint == "/items/settings" for _, endpoint, _ in target.calls_to("PATCH"))
        assert target.rows("items/settings")[0]["site_name"] == "Blog 2"


class TestLoadCollection:
    """Test suite for collection transfer."""

    def test_partial_failure(self, loader, target):
        """One invalid payload out of ten leaves nine successes and one error."""
        data = items(10)
        data[4]["title"] = None
        target.fail_when.append(
            lambda method, endpoint, body: method == "POST" and body.get("title") is None
        )

        result = loader.load_collection("articles", data)

        assert len(result.records) == 10
        assert result.total_succeeded == 9
        assert result.total_failed == 1
        failed = [r for r in result.records if not r.success]
        assert failed[0].original_id == 5
        assert failed[0].status == ImportStatus.ERROR
        assert result.errors[0]["record_id"] == 5

    def test_rerun_updates(self, loader):
        loader.load_collection("articles", items(3))
        result = loader.load_collection("articles", items(3))

        assert result.updated == 3
        assert result.created == 0
        assert all(r.action == ImportAction.UPDATED and r.new_id == r.original_id for r in result.records)

    def test_limit(self, loader, target):
        result = loader.load_collection("articles", items(10), limit=3)

        assert result.total_attempted == 3
        assert sorted(r["id"] for r in target.rows("items/articles")) == [1, 2, 3]

    def test_accepts_source_records(self, loader, target):
        records = [SourceRecord(id=i, collection="articles", data=d) for i, d in enumerate(items(2), start=1)]

        result = loader.load_collection("articles", records)

        assert result.total_succeeded == 2

    def test_progress_callback_and_session(self, loader):
        calls = []
        session = MigrationSession(["articles"])

        loader.load_collection("articles", items(4), progress_callback=lambda p, t: calls.append((p, t)), session=session)

        assert calls == [(1, 4), (2, 4), (3, 4), (4, 4)]
        progress = session.get_progress("articles")
        assert (progress.processed, progress.total, progress.succeeded) == (4, 4, 4)
        assert progress.status == MigrationStatus.COMPLETED

    def test_session_status_with_errors(self, loader, target):
        target.fail_when.append(lambda method, endpoint, body: method == "POST" and body["id"] == 2)
        session = MigrationSession(["articles"])

        loader.load_collection("articles", items(3), session=session)

        assert session.get_progress("articles").status == MigrationStatus.COMPLETED_WITH_ERRORS

    def test_concurrency_keeps_input_order(self, target):
        loader = ItemLoader(target, concurrency=4)

        result = loader.load_collection("articles", items(25))

        assert [r.original_id for r in result.records] == list(range(1, 26))
        assert result.total_succeeded == 25
        assert len(target.rows("items/articles")) == 25

    def test_cancel_skips_remaining(self, loader):
        cancel = threading.Event()

        def stop_after_two(processed, total):
            if processed == 2:
                cancel.set()

        session = MigrationSession(["articles"])
        result = loader.load_collection(
            "articles", items(5), progress_callback=stop_after_two, session=session, cancel_event=cancel
        )

        assert result.total_attempted == 2
        assert result.total_skipped == 3
        assert result.cancelled
        assert session.get_progress("articles").status == MigrationStatus.CANCELLED

    def test_unexpected_exception_becomes_error_record(self):
        class BrokenClient:
            base_url = "http://broken.test"

            def get(self, endpoint, params=None):
                raise RuntimeError("socket closed")

        result = ItemLoader(BrokenClient()).load_collection("articles", items(2))

        assert result.total_failed == 2
        assert result.records[0].error.message == "socket closed"


class TestCleanPayload:
    """Test suite for payload cleaning."""

    def test_keeps_regular_fields(self):
        assert ItemLoader.clean_payload({"id": 1, "a": 1, "b": None}) == {"a": 1, "b": None}

    def test_subset_ignores_unknown(self):
        assert ItemLoader.clean_payload({"id": 1, "a": 1, "b": 2}, ["b", "zzz"]) == {"b": 2}
