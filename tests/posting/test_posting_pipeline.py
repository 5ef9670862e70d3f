"""Tests for the grouping and posting pipeline."""

from decimal import Decimal

import pytest

from voucher_staging.config import PostingDefaults
from voucher_staging.domain.staging import POSTED_MARKER, POSTING_FAILED_MARKER, RowStatus
from voucher_staging.services.posting_pipeline import (
    PostingOutcome,
    PostingPipeline,
    build_payload,
)
from voucher_staging.services.row_store import StagingRowStore


@pytest.fixture
def pipeline(ledger, status_writer, deterministic_clock):
    return PostingPipeline(ledger, status_writer, clock=deterministic_clock)


class TestNothingToPost:
    def test_empty_snapshot(self, pipeline, ledger):
        summary = pipeline.post([])

        assert summary.outcome is PostingOutcome.NOTHING_PENDING
        assert ledger.payloads == []

    def test_all_rows_already_posted(self, pipeline, ledger, make_row):
        rows = [
            make_row(status=RowStatus.POSTED),
            make_row(status=RowStatus.PENDING, status_note=POSTED_MARKER),
        ]

        summary = pipeline.post(rows)

        assert summary.outcome is PostingOutcome.NOTHING_PENDING
        assert summary.skipped_posted_rows == 2
        assert ledger.payloads == []

    def test_only_invalid_rows(self, pipeline, ledger, status_writer, make_row):
        row = make_row(doc_no="", amount=500)

        summary = pipeline.post([row])

        assert summary.outcome is PostingOutcome.NO_VALID_ROWS
        assert summary.invalid_row_ids == (row.id,)
        assert ledger.payloads == []
        assert status_writer.latest(row.id) == {
            "status": RowStatus.INVALID,
            "is_valid": False,
            "status_note": "Missing: document number",
        }


class TestSuccessfulPosting:
    def test_two_rows_one_voucher(self, pipeline, ledger, status_writer, make_row):
        rows = [
            make_row(doc_no="A1", debit_account="111", credit_account="511", amount=1000),
            make_row(doc_no="A1", debit_account="632", credit_account="156", amount=1000),
        ]

        summary = pipeline.post(rows)

        assert summary.outcome is PostingOutcome.COMPLETED
        assert summary.posted_doc_count == 1
        assert summary.voucher_ids == {"A1": "V-1"}
        assert len(ledger.payloads) == 1
        assert ledger.payloads[0]["total_amount"] == Decimal(2000)
        for row in rows:
            assert status_writer.latest(row.id) == {
                "status": RowStatus.POSTED,
                "is_valid": True,
                "status_note": POSTED_MARKER,
            }

    def test_groups_submitted_in_first_appearance_order(self, pipeline, ledger, make_row):
        rows = [make_row(doc_no="C3"), make_row(doc_no="A1"), make_row(doc_no="C3")]

        pipeline.post(rows)

        assert ledger.submitted_doc_numbers == ["C3", "A1"]

    def test_invalid_row_excluded_other_documents_post(self, pipeline, ledger, status_writer, make_row):
        orphan = make_row(doc_no="", debit_account="111", credit_account="511", amount=500)
        good = make_row(doc_no="B2")

        summary = pipeline.post([orphan, good])

        assert ledger.submitted_doc_numbers == ["B2"]
        assert summary.invalid_row_ids == (orphan.id,)
        assert status_writer.latest(orphan.id)["status"] is RowStatus.INVALID
        assert "1 row(s) need correction" in summary.message

    def test_already_posted_rows_are_skipped(self, pipeline, ledger, make_row):
        posted = make_row(doc_no="A1", status=RowStatus.POSTED, status_note=POSTED_MARKER)
        fresh = make_row(doc_no="A1", amount=700)

        summary = pipeline.post([posted, fresh])

        assert summary.skipped_posted_rows == 1
        assert ledger.payloads[0]["total_amount"] == Decimal(700)
        assert len(ledger.payloads[0]["lines"]) == 1


class TestDocumentHoldBack:
    def test_document_with_incomplete_row_posts_nothing(self, pipeline, ledger, status_writer, make_row):
        complete = make_row(doc_no="A1")
        incomplete = make_row(doc_no="A1", credit_account="")
        other = make_row(doc_no="B2")

        summary = pipeline.post([complete, incomplete, other])

        assert ledger.submitted_doc_numbers == ["B2"]
        assert summary.held_doc_numbers == ("A1",)
        assert status_writer.latest(incomplete.id)["status_note"] == "Missing: credit account"
        held = status_writer.latest(complete.id)
        assert held["status"] is RowStatus.PENDING
        assert held["is_valid"] is False
        assert held["status_note"] == "Held: document A1 has incomplete rows"
        assert "held: A1" in summary.message

    def test_only_held_documents(self, pipeline, ledger, make_row):
        summary = pipeline.post([make_row(doc_no="A1"), make_row(doc_no="A1", amount=0)])

        assert summary.outcome is PostingOutcome.NO_VALID_ROWS
        assert ledger.payloads == []


class TestFailureIsolation:
    def test_rejected_group_does_not_block_others(self, pipeline, ledger, status_writer, make_row):
        ledger.reject.add("A1")
        a1 = [make_row(doc_no="A1"), make_row(doc_no="A1")]
        b2 = make_row(doc_no="B2")

        summary = pipeline.post([*a1, b2])

        assert summary.outcome is PostingOutcome.COMPLETED_WITH_FAILURES
        assert summary.failed_doc_numbers == ("A1",)
        assert summary.posted_doc_count == 1
        assert summary.has_failures
        for row in a1:
            assert status_writer.latest(row.id) == {
                "status": RowStatus.FAILED,
                "is_valid": False,
                "status_note": POSTING_FAILED_MARKER,
            }
        assert status_writer.latest(b2.id)["status"] is RowStatus.POSTED
        assert summary.message == "Posted 1 voucher(s); failed: A1"

    def test_unexpected_exception_is_contained(self, status_writer, deterministic_clock, make_row):
        class BrokenGateway:
            def create_voucher(self, payload):
                raise ConnectionError("ledger unreachable")

        pipeline = PostingPipeline(BrokenGateway(), status_writer, clock=deterministic_clock)

        summary = pipeline.post([make_row(doc_no="A1"), make_row(doc_no="B2")])

        assert summary.failed_doc_numbers == ("A1", "B2")
        assert summary.posted_doc_count == 0

    def test_failure_logged_with_code(self, pipeline, ledger, make_row, captured_logs):
        ledger.reject.add("A1")

        pipeline.post([make_row(doc_no="A1")])

        failures = [r for r in captured_logs() if r["message"] == "voucher_posting_failed"]
        assert failures[0]["error_code"] == "VOUCHER_REJECTED"
        assert failures[0]["doc_no"] == "A1"
        assert "run_id" in failures[0]

    def test_failed_rows_return_next_run(self, ledger, persistence, timers):
        store = StagingRowStore(persistence, timer_factory=timers)
        row = store.create_row(doc_no="A1", debit_account="111", credit_account="511", amount=100)
        retry = PostingPipeline(ledger, store)
        ledger.reject.add("A1")

        retry.post(store.rows)
        ledger.reject.clear()
        summary = retry.post(store.rows)

        assert summary.voucher_ids == {"A1": "V-1"}
        assert ledger.submitted_doc_numbers == ["A1", "A1"]
        assert store.get(row.id).status is RowStatus.POSTED

    def test_status_write_for_deleted_row_does_not_abort_run(
        self, ledger, persistence, timers, deterministic_clock, captured_logs
    ):
        store = StagingRowStore(persistence, clock=deterministic_clock, timer_factory=timers)
        kept = store.create_row(doc_no="A1", debit_account="111", credit_account="511", amount=100)
        removed = store.create_row(doc_no="A1", debit_account="632", credit_account="156", amount=100)
        other = store.create_row(doc_no="B1", debit_account="642", credit_account="111", amount=300)
        snapshot = store.rows
        store.delete_row(removed.id)

        summary = PostingPipeline(ledger, store, clock=deterministic_clock).post(snapshot)

        assert summary.outcome is PostingOutcome.COMPLETED
        assert summary.voucher_ids == {"A1": "V-1", "B1": "V-2"}
        assert store.get(kept.id).status is RowStatus.POSTED
        assert store.get(other.id).status is RowStatus.POSTED
        failures = [r for r in captured_logs() if r["message"] == "staging_status_write_failed"]
        assert [r["row_id"] for r in failures] == [removed.id]
        assert failures[0]["error_code"] == "STAGING_ROW_NOT_FOUND"


class TestIdempotency:
    def test_second_run_posts_nothing(self, ledger, persistence, timers, deterministic_clock):
        store = StagingRowStore(persistence, clock=deterministic_clock, timer_factory=timers)
        pipeline = PostingPipeline(ledger, store, clock=deterministic_clock)
        store.create_row(doc_no="A1", debit_account="111", credit_account="511", amount=100)
        store.create_row(doc_no="B2", debit_account="642", credit_account="334", amount=200)

        first = pipeline.post(store.rows)
        second = pipeline.post(store.rows)

        assert first.posted_doc_count == 2
        assert second.outcome is PostingOutcome.NOTHING_PENDING
        assert second.posted_doc_count == 0
        assert len(ledger.payloads) == 2

    def test_posted_status_survives_reload(self, ledger, persistence, timers):
        store = StagingRowStore(persistence, timer_factory=timers)
        pipeline = PostingPipeline(ledger, store)
        store.create_row(doc_no="A1", debit_account="111", credit_account="511", amount=100)
        pipeline.post(store.rows)

        store.load()

        assert pipeline.post(store.rows).outcome is PostingOutcome.NOTHING_PENDING

    def test_reused_doc_no_on_new_rows_posts_again(self, pipeline, ledger, make_row):
        """Only the posted rows are protected, not the document number."""
        pipeline.post([make_row(doc_no="A1")])
        pipeline.post([make_row(doc_no="A1", status=RowStatus.POSTED), make_row(doc_no="A1")])

        assert ledger.submitted_doc_numbers == ["A1", "A1"]


class TestPayload:
    def test_payload_shape(self, pipeline, ledger, make_row):
        rows = [
            make_row(doc_no="PKT004", trx_date="23/03/2024", description="",
                     debit_account="421", credit_account="331", amount=10_000_000, partner_code="NCC_A"),
            make_row(doc_no="PKT004", trx_date="2024-03-24", description="Điều chỉnh",
                     debit_account="421", credit_account="331", amount=5, item_code="IT"),
        ]

        pipeline.post(rows)
        payload = ledger.payloads[0]

        assert payload["doc_no"] == "PKT004"
        assert payload["doc_date"] == "2024-03-23"
        assert payload["post_date"] == "2024-03-23"
        assert payload["description"] == "Điều chỉnh"
        assert payload["type"] == "GENERAL"
        assert payload["currency"] == "VND"
        assert payload["fx_rate"] == Decimal(1)
        assert payload["status"] == "POSTED"
        assert payload["total_amount"] == Decimal(10_000_005)
        assert payload["lines"][0] == {
            "description": "",
            "debit_account": "421",
            "credit_account": "331",
            "amount": Decimal(10_000_000),
            "partner_code": "NCC_A",
            "item_code": "",
            "sub_item_code": "",
        }
        assert payload["lines"][1]["item_code"] == "IT"

    def test_configured_defaults(self, make_row, deterministic_clock):
        from voucher_staging.domain.grouping import materialize_group

        defaults = PostingDefaults(voucher_type="ADJUST", currency="USD", fx_rate=Decimal("24000"))
        group = materialize_group("A1", [make_row()], deterministic_clock)

        payload = build_payload(group, defaults)

        assert (payload["type"], payload["currency"], payload["fx_rate"]) == (
            "ADJUST", "USD", Decimal("24000"),
        )

    def test_custom_markers_written_back(self, ledger, status_writer, make_row):
        defaults = PostingDefaults(posted_marker="POSTED", failure_marker="FAILED")
        pipeline = PostingPipeline(ledger, status_writer, defaults=defaults)
        ledger.reject.add("B2")
        a1, b2 = make_row(doc_no="A1"), make_row(doc_no="B2")

        pipeline.post([a1, b2, make_row(doc_no="C3", status_note="POSTED")])

        assert status_writer.latest(a1.id)["status_note"] == "POSTED"
        assert status_writer.latest(b2.id)["status_note"] == "FAILED"
        assert ledger.submitted_doc_numbers == ["A1", "B2"]


class TestAdvisoryBalance:
    def test_balance_checked_per_group(self, pipeline, make_row, captured_logs):
        rows = [
            make_row(doc_no="A1", debit_account="001", credit_account="111", amount=50),
            make_row(doc_no="A1"),
        ]

        summary = pipeline.post(rows)

        assert summary.posted_doc_count == 1
        (check,) = [r for r in captured_logs() if r["message"] == "voucher_balance_checked"]
        assert check["balance_status"] == "balanced"
        assert check["off_balance_sheet_lines"] == 1
        assert check["total_debit"] == "1000"
        assert check["doc_no"] == "A1"
