import asyncio
import re

import pytest

from tests.fakes import FakeStore, make_workbook
from tradebook.exceptions import NotFoundError
from tradebook.ingest import ImportService, map_rows, new_import_id
from tradebook.progress import ImportProgressTracker
from tradebook.schemas import ImportStage

HEADERS = ["WS client id", "Security Name", "Quantity", "Net Amount", "Tran Type"]


def sample_rows(count):
    return [[f"C{i}", f"STOCK{i}", i + 1, 100.0 * (i + 1), "Buy"] for i in range(count)]


def run_import(service, content, filename="trades.xlsx"):
    async def scenario():
        import_id = service.submit(content, filename)
        return await service.wait(import_id)

    return asyncio.run(scenario())


@pytest.mark.parametrize("batch_size", [1, 7, 500])
def test_every_row_is_processed_whatever_the_batch_size(batch_size):
    store = FakeStore()
    service = ImportService(store, batch_size=batch_size)

    state = run_import(service, make_workbook(HEADERS, sample_rows(23)))

    assert state.stage == ImportStage.COMPLETED
    assert state.progress == 100
    assert state.total_rows == 23
    assert state.processed_rows == 23
    assert state.imported == 23
    assert state.errors == 0
    assert len(store.rows) == 23
    assert store.bulk_calls == -(-23 // batch_size)
    assert state.message == "Imported 23 of 23 rows"


def test_rejected_batch_falls_back_to_single_rows():
    store = FakeStore(fails=lambda row: row.get("Security_Name") == "STOCK2")
    service = ImportService(store, batch_size=500)

    state = run_import(service, make_workbook(HEADERS, sample_rows(5)))

    assert state.stage == ImportStage.COMPLETED
    assert state.imported == 4
    assert state.errors == 1
    assert state.error_details == ["Row 3: invalid value for STOCK2"]
    assert state.message == "Imported 4 of 5 rows (1 errors)"
    assert store.single_calls == 5
    assert [r["Security_Name"] for r in store.rows] == ["STOCK0", "STOCK1", "STOCK3", "STOCK4"]


def test_error_details_are_capped():
    store = FakeStore(fails=lambda row: True)
    service = ImportService(store, batch_size=4)

    state = run_import(service, make_workbook(HEADERS, sample_rows(15)))

    assert state.stage == ImportStage.COMPLETED
    assert state.imported == 0
    assert state.errors == 15
    assert len(state.error_details) == 10
    assert state.error_details[0].startswith("Row 1: ")


def test_header_only_file_is_an_error():
    store = FakeStore()
    state = run_import(ImportService(store), make_workbook(HEADERS, []))

    assert state.stage == ImportStage.ERROR
    assert state.message == "Excel file is empty or has no data rows"
    assert store.rows == []


def test_file_with_only_unknown_columns_is_an_error():
    store = FakeStore()
    state = run_import(ImportService(store), make_workbook(["Foo", "Bar"], [["x", "y"]]))

    assert state.stage == ImportStage.ERROR
    assert state.message.startswith("No valid rows found after mapping")
    assert state.error_details[0].startswith("MappingError: ")
    assert store.bulk_calls == 0


def test_undecodable_upload_writes_nothing():
    store = FakeStore()
    state = run_import(ImportService(store), b"this is not a spreadsheet")

    assert state.stage == ImportStage.ERROR
    assert "Failed to parse Excel file" in state.message
    assert store.bulk_calls == 0


def test_store_outage_aborts_but_keeps_written_batches():
    store = FakeStore(unavailable_on_bulk_call=2)
    service = ImportService(store, batch_size=3)

    state = run_import(service, make_workbook(HEADERS, sample_rows(8)))

    assert state.stage == ImportStage.ERROR
    assert "connection refused" in state.message
    assert state.imported == 3
    assert len(store.rows) == 3
    assert store.single_calls == 0


def test_unknown_columns_are_reported_on_completion():
    store = FakeStore()
    content = make_workbook(HEADERS + ["Remarks"], [row + ["ok"] for row in sample_rows(2)])

    state = run_import(ImportService(store), content)

    assert state.stage == ImportStage.COMPLETED
    assert state.unknown_columns == ["Remarks"]
    assert "Remarks" not in store.rows[0]


def test_progress_never_decreases():
    tracker = ImportProgressTracker()
    current = {}
    seen = []
    store = FakeStore(on_write=lambda: seen.append(tracker.get(current["id"]).progress))
    service = ImportService(store, tracker, batch_size=2)

    async def scenario():
        current["id"] = service.submit(make_workbook(HEADERS, sample_rows(9)), "trades.xlsx")
        return await service.wait(current["id"])

    state = asyncio.run(scenario())

    seen.append(state.progress)
    assert seen == sorted(seen)
    assert seen[0] == 25
    assert seen[-1] == 100
    assert all(p <= 95 for p in seen[:-1])


def test_submit_returns_before_the_import_runs():
    service = ImportService(FakeStore())

    async def scenario():
        import_id = service.submit(make_workbook(HEADERS, sample_rows(1)), "trades.xlsx")
        initial = service.get_progress(import_id).model_copy()
        final = await service.wait(import_id)
        return initial, final

    initial, final = asyncio.run(scenario())

    assert initial.stage == ImportStage.PARSING
    assert initial.progress == 5
    assert initial.message == "Parsing Excel..."
    assert final.stage == ImportStage.COMPLETED


def test_unknown_import_id_is_not_found():
    with pytest.raises(NotFoundError):
        ImportService(FakeStore()).get_progress("nope")


def test_map_rows_drops_empty_rows():
    records, unknown = map_rows([
        {"Quantity": 1, "Junk": "a"},
        {"Quantity": None, "Junk": "only unknown"},
        {"Security Name": "ACME"},
    ])
    assert records == [{"QTY": 1.0}, {"Security_Name": "ACME"}]
    assert unknown == ["Junk"]


def test_import_ids_are_unique_base36():
    ids = {new_import_id() for _ in range(200)}
    assert len(ids) == 200
    assert all(re.fullmatch(r"[0-9a-z]{10,}", i) for i in ids)
