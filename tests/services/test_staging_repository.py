"""Tests for the SQLAlchemy staging repository."""

from decimal import Decimal
from uuid import UUID

import pytest

from voucher_staging.domain.staging import NEW_ROW_NOTE, RowStatus
from voucher_staging.exceptions import StagingRowNotFoundError, UnknownFieldError
from voucher_staging.services.staging_repository import SAMPLE_ROWS, SqlStagingRepository


@pytest.fixture
def repository(session_factory):
    return SqlStagingRepository(session_factory)


class TestCreateAndList:
    def test_created_row_defaults(self, repository):
        row = repository.create_row({"trx_date": "2024-03-31"})

        UUID(row.id)
        assert row.row_index == 1
        assert row.status is RowStatus.NEW
        assert row.status_note == NEW_ROW_NOTE
        assert row.is_valid is False
        assert row.amount == Decimal(0)

    def test_row_index_increments(self, repository):
        first = repository.create_row({})
        second = repository.create_row({"doc_no": "A1", "amount": "1.000"})

        assert (first.row_index, second.row_index) == (1, 2)
        assert second.amount == Decimal(1000)
        assert [r.id for r in repository.list_rows()] == [first.id, second.id]

    def test_list_orders_by_row_index(self, repository):
        late = repository.create_row({"row_index": 9})
        early = repository.create_row({"row_index": 2})

        assert [r.id for r in repository.list_rows()] == [early.id, late.id]

    def test_unknown_field_rejected(self, repository):
        with pytest.raises(UnknownFieldError):
            repository.create_row({"error_log": "x"})


class TestUpdate:
    def test_update_fields(self, repository):
        row = repository.create_row({})

        repository.update_fields(
            row.id,
            {"doc_no": "PKT010", "amount": "2.500.000", "status": "posted", "is_valid": 1,
             "status_note": "Đã ghi sổ"},
        )

        (stored,) = repository.list_rows()
        assert stored.doc_no == "PKT010"
        assert stored.amount == Decimal(2_500_000)
        assert stored.status is RowStatus.POSTED
        assert stored.is_valid is True
        assert stored.is_posted()

    def test_status_enum_accepted(self, repository):
        row = repository.create_row({})

        repository.update_fields(row.id, {"status": RowStatus.FAILED})

        assert repository.list_rows()[0].status is RowStatus.FAILED

    def test_missing_row(self, repository):
        with pytest.raises(StagingRowNotFoundError):
            repository.update_fields("00000000-0000-0000-0000-000000000000", {"doc_no": "A1"})

    def test_malformed_id(self, repository):
        with pytest.raises(StagingRowNotFoundError):
            repository.update_fields("row-1", {"doc_no": "A1"})

    def test_failed_update_changes_nothing(self, repository):
        row = repository.create_row({"doc_no": "A1"})

        with pytest.raises(UnknownFieldError):
            repository.update_fields(row.id, {"doc_no": "B2", "bogus": 1})

        assert repository.list_rows()[0].doc_no == "A1"


class TestDelete:
    def test_delete_row(self, repository):
        keep = repository.create_row({})
        drop = repository.create_row({})

        repository.delete_row(drop.id)

        assert [r.id for r in repository.list_rows()] == [keep.id]

    def test_delete_missing_row(self, repository):
        with pytest.raises(StagingRowNotFoundError):
            repository.delete_row("00000000-0000-0000-0000-000000000000")

    def test_delete_all(self, repository):
        repository.create_row({})
        repository.create_row({})

        repository.delete_all()

        assert repository.list_rows() == []


class TestResetToSamples:
    def test_sample_set_replaces_rows(self, repository):
        repository.create_row({"doc_no": "OLD"})

        repository.reset_to_samples()
        rows = repository.list_rows()

        assert [r.doc_no for r in rows] == ["PKT001", "PKT002", "PKT003", "PKT004", "PKT005"]
        assert len(rows) == len(SAMPLE_ROWS)

    def test_sample_contents(self, repository):
        repository.reset_to_samples()
        rows = {r.doc_no: r for r in repository.list_rows()}

        first = rows["PKT001"]
        assert (first.trx_date, first.debit_account, first.credit_account) == ("2024-03-20", "3331", "1331")
        assert first.amount == Decimal(15_000_000)
        assert first.description == "Kết chuyển thuế GTGT đầu kỳ"
        assert rows["PKT004"].partner_code == "NCC_A"
        assert rows["PKT005"].amount == Decimal(3_500_000)
        assert all(r.is_valid and not r.is_posted() for r in rows.values())

    def test_reset_twice_is_stable(self, repository):
        repository.reset_to_samples()
        repository.reset_to_samples()

        assert len(repository.list_rows()) == 5
