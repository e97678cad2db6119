"""Tests for row deduplication and re-expansion."""

import pytest

from payeebatch.domain.classification.exceptions import RowCountMismatchError
from payeebatch.domain.classification.value_objects import ProcessingTier
from payeebatch.domain.payees import (
    OUTPUT_COLUMNS,
    PayeeRowData,
    build_mapping,
    chunk_size_for,
    expand,
    expand_chunked,
)
from payeebatch.domain.shared.exceptions import ErrorCode, ValidationError
from tests.shared.fixtures.factories import TestRecordFactory, TestUploadFactory


class TestBuildMapping:
    """Deduplication of uploaded rows."""

    def test_duplicate_payees_share_one_unique_entry(self):
        data = build_mapping(TestUploadFactory.vendor_rows(), "Payee")

        assert data.unique_payee_names == ("Acme Inc", "Jane Doe")
        assert data.row_count == 3
        assert [m.unique_payee_index for m in data.row_mappings] == [0, 1, 0]

    def test_first_seen_spelling_is_kept(self):
        data = build_mapping(
            [{"Payee": "ACME INC."}, {"Payee": "Acme Inc"}],
            "Payee",
        )

        assert data.unique_payee_names == ("ACME INC.",)
        assert data.row_mappings[1].payee_name == "Acme Inc"
        assert data.row_mappings[1].normalized_payee_name == "ACME"

    def test_empty_cells_are_unique_per_row(self):
        data = build_mapping(
            [{"Payee": ""}, {"Payee": None}, {"Payee": "Jane Doe"}],
            "Payee",
        )

        assert data.unique_payee_names == ("Unknown_Row_1", "Unknown_Row_2", "Jane Doe")

    def test_headers_collected_in_first_seen_order(self):
        data = build_mapping(
            [{"Payee": "A", "Amount": 1}, {"Memo": "x", "Payee": "B"}],
            "Payee",
        )

        assert data.file_headers == ("Payee", "Amount", "Memo")

    def test_missing_column_raises(self):
        with pytest.raises(ValidationError) as exc_info:
            build_mapping([{"Vendor": "Acme"}], "Payee")

        assert exc_info.value.code == ErrorCode.MISSING_PAYEE_COLUMN

    def test_no_rows_gives_empty_mapping(self):
        data = build_mapping([], "Payee")

        assert data.row_count == 0
        assert data.unique_payee_names == ()

    def test_round_trips_through_dict_without_file_data(self):
        data = TestUploadFactory.mapping()

        restored = PayeeRowData.from_dict(
            data.to_dict(include_file_data=False),
            original_file_data=[dict(r) for r in data.original_file_data],
        )

        assert restored == data

    def test_inconsistent_mapping_is_rejected(self):
        data = TestUploadFactory.mapping()

        with pytest.raises(ValueError, match="row mappings"):
            PayeeRowData(
                unique_payee_names=data.unique_payee_names,
                row_mappings=data.row_mappings,
                original_file_data=data.original_file_data[:2],
            )


class TestExpand:
    """Re-expansion of unique results to every original row."""

    def test_every_row_gets_its_unique_record(self):
        data = TestUploadFactory.mapping()
        acme = TestRecordFactory.business()
        jane = TestRecordFactory.individual()

        rows = expand([acme, jane], data)

        assert len(rows) == data.row_count
        assert [r.record for r in rows] == [acme, jane, acme]
        assert [r.original_data["Amount"] for r in rows] == ["10.00", "5.00", "7.50"]
        assert not any(r.is_placeholder for r in rows)

    def test_missing_result_gets_placeholder(self):
        data = TestUploadFactory.mapping()

        rows = expand({0: TestRecordFactory.business()}, data)

        assert len(rows) == 3
        assert rows[1].is_placeholder
        assert rows[1].record.processing_tier == ProcessingTier.FAILED
        assert rows[1].record.payee_name == "Jane Doe"

    def test_flat_row_has_original_then_output_columns(self):
        rows = expand(
            [TestRecordFactory.business(), TestRecordFactory.individual()],
            TestUploadFactory.mapping(),
        )

        flat = rows[0].flat()

        assert list(flat)[:2] == ["Payee", "Amount"]
        assert list(flat)[2:] == list(OUTPUT_COLUMNS)
        assert flat["ai_classification"] == "Business"
        assert flat["sic_code"] == "7372"
        assert flat["requires_review"] == "No"
        assert flat["processing_quality_score"] == "High"

    def test_empty_input_expands_to_nothing(self):
        assert expand([], build_mapping([], "Payee")) == []


class TestExpandChunked:
    @pytest.mark.asyncio
    async def test_reports_progress_per_chunk(self):
        rows = [{"Payee": f"Payee {i % 7}"} for i in range(10)]
        data = build_mapping(rows, "Payee")
        progress = []

        expanded = await expand_chunked(
            {},
            data,
            chunk_size=4,
            on_progress=lambda done, total, pct: progress.append((done, total, pct)),
        )

        assert len(expanded) == 10
        assert progress == [(4, 10, 40.0), (8, 10, 80.0), (10, 10, 100.0)]

    @pytest.mark.asyncio
    async def test_async_progress_callback_is_awaited(self):
        data = TestUploadFactory.mapping()
        seen = []

        async def on_progress(done, total, pct):
            seen.append(done)

        await expand_chunked({}, data, chunk_size=2, on_progress=on_progress)

        assert seen == [2, 3]

    @pytest.mark.asyncio
    async def test_matches_unchunked_expansion(self):
        data = TestUploadFactory.mapping()
        records = [TestRecordFactory.business(), TestRecordFactory.individual()]

        assert await expand_chunked(records, data, chunk_size=1) == expand(records, data)

    @pytest.mark.asyncio
    async def test_invalid_chunk_size(self):
        with pytest.raises(ValueError, match="chunk_size"):
            await expand_chunked({}, TestUploadFactory.mapping(), chunk_size=-1)

    def test_chunk_size_grows_for_large_inputs(self):
        assert chunk_size_for(100) < chunk_size_for(50_000)


def test_row_count_mismatch_error_carries_counts():
    error = RowCountMismatchError(expected=3, actual=2)

    assert error.code == ErrorCode.ROW_COUNT_MISMATCH
    assert error.details == {"expected": 3, "actual": 2, "stage": "expansion"}
