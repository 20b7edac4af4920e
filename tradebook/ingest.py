"""
Spreadsheet import pipeline.

An upload is decoded, every row is mapped onto the canonical columns, and
the surviving rows are written in fixed-size batches. A batch rejected by
the store is retried row by row so one bad row only costs itself. Progress
is published through an ``ImportProgressTracker`` that clients poll.

Stages: parsing -> mapping -> inserting -> completed, or error from any of
them. Batches already written stay written when a later step fails.
"""

import asyncio
import logging
import secrets
import string
import time
from typing import Any, Dict, List, Optional, Tuple

from tradebook.decoder import decode_workbook_async
from tradebook.exceptions import DecodeError, MappingError, NotFoundError, StoreUnavailableError, StoreWriteError
from tradebook.mapper import map_row
from tradebook.progress import ImportProgressTracker
from tradebook.schemas import ImportProgress, ImportStage
from tradebook.store import RecordStore

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 500
MAX_ERROR_DETAILS = 10
UNKNOWN_COLUMN_SAMPLE_ROWS = 5

_BASE36 = string.digits + string.ascii_lowercase


def _to_base36(number: int) -> str:
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits)) or "0"


def new_import_id() -> str:
    """Millisecond timestamp plus a random suffix, both base 36."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return _to_base36(int(time.time() * 1000)) + suffix


def map_rows(rows: List[Dict[str, Any]]) -> Tuple[List[Dict[str, Any]], List[str]]:
    """Map decoded rows, dropping empty ones.

    Returns the records to insert and the unknown columns seen in the first
    few surviving rows.
    """
    records = []
    unknown: List[str] = []
    for row in rows:
        mapped = map_row(row)
        if mapped.is_empty():
            continue
        if len(records) < UNKNOWN_COLUMN_SAMPLE_ROWS:
            unknown.extend(c for c in mapped.unknown_fields if c not in unknown)
        records.append(mapped.values)
    return records, unknown


class ImportService:
    """Runs imports as background tasks and owns their progress state."""

    def __init__(
        self,
        store: RecordStore,
        tracker: Optional[ImportProgressTracker] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        self.store = store
        self.tracker = tracker if tracker is not None else ImportProgressTracker()
        self.batch_size = max(1, batch_size)
        self._tasks: Dict[str, asyncio.Task] = {}

    def submit(self, content: bytes, filename: Optional[str] = None) -> str:
        """Register a job and start it; returns without waiting for the import."""
        import_id = new_import_id()
        self.tracker.create(import_id, ImportProgress(
            stage=ImportStage.PARSING,
            progress=5,
            message="Parsing Excel...",
        ))
        task = asyncio.create_task(self.run_import(import_id, content, filename), name=f"import-{import_id}")
        self._tasks[import_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(import_id, None))
        return import_id

    def get_progress(self, import_id: str) -> ImportProgress:
        state = self.tracker.get(import_id)
        if state is None:
            raise NotFoundError(f"Import {import_id} not found")
        return state

    async def wait(self, import_id: str) -> ImportProgress:
        task = self._tasks.get(import_id)
        if task is not None:
            await task
        return self.get_progress(import_id)

    async def shutdown(self) -> None:
        pending = [task for task in self._tasks.values() if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            logger.info(f"Cancelling {len(pending)} running import(s)")
            await asyncio.gather(*pending, return_exceptions=True)

    async def run_import(self, import_id: str, content: bytes, filename: Optional[str] = None) -> Optional[ImportProgress]:
        tag = f"[Import {import_id}]"
        try:
            logger.info(f"{tag} Starting import: {filename} ({len(content)} bytes)")
            rows = await decode_workbook_async(content, filename)
            if not rows:
                raise DecodeError("Excel file is empty or has no data rows")

            logger.info(f"{tag} Parsed {len(rows)} rows from Excel")
            self.tracker.update(
                import_id,
                stage=ImportStage.MAPPING,
                progress=15,
                message="Mapping columns...",
                total_rows=len(rows),
            )

            records, unknown_columns = map_rows(rows)
            logger.info(f"{tag} Mapped {len(records)} valid rows")
            if not records:
                raise MappingError("No valid rows found after mapping. Check column headers match schema.")
            if unknown_columns:
                logger.warning(f"{tag} Unknown columns detected: {unknown_columns}")

            self.tracker.update(
                import_id,
                stage=ImportStage.INSERTING,
                progress=25,
                message="Inserting into record store...",
            )
            imported, errors = await self.insert_records(import_id, records)

            message = f"Imported {imported} of {len(records)} rows"
            if errors:
                message += f" ({errors} errors)"
            logger.info(f"{tag} Import completed: {imported} inserted, {errors} errors")
            self.tracker.update(
                import_id,
                stage=ImportStage.COMPLETED,
                progress=100,
                message=message,
                unknown_columns=unknown_columns,
            )
        except asyncio.CancelledError:
            logger.warning(f"{tag} Import cancelled")
            self.tracker.update(import_id, stage=ImportStage.ERROR, message="Import cancelled",
                                error_details=["Import cancelled"])
            raise
        except Exception as e:
            logger.exception(f"{tag} Fatal error: {e}")
            self.tracker.update(
                import_id,
                stage=ImportStage.ERROR,
                message=str(e) or "Import failed",
                error_details=[f"{type(e).__name__}: {e}"],
            )
        return self.tracker.get(import_id)

    async def insert_records(self, import_id: str, records: List[Dict[str, Any]]) -> Tuple[int, int]:
        """Write ``records`` batch by batch, falling back to single rows.

        Returns (imported, errors). StoreUnavailableError is not recovered
        and propagates to the caller.
        """
        tag = f"[Import {import_id}]"
        total = len(records)
        imported = 0
        errors = 0
        error_details: List[str] = []
        progress = 25

        for start in range(0, total, self.batch_size):
            batch = records[start:start + self.batch_size]
            batch_num = start // self.batch_size + 1
            try:
                logger.debug(f"{tag} Inserting batch {batch_num} (rows {start + 1}-{start + len(batch)})")
                await self.store.insert_rows(batch)
                imported += len(batch)
            except StoreUnavailableError:
                raise
            except StoreWriteError as batch_err:
                logger.error(f"{tag} Batch {batch_num} failed: {batch_err}")
                for offset, row in enumerate(batch):
                    try:
                        await self.store.insert_row(row)
                        imported += 1
                    except StoreUnavailableError:
                        raise
                    except StoreWriteError as row_err:
                        errors += 1
                        if len(error_details) < MAX_ERROR_DETAILS:
                            detail = f"Row {start + offset + 1}: {row_err}"
                            error_details.append(detail)
                            logger.error(f"{tag} {detail}")

            processed = start + len(batch)
            progress = max(progress, min(95, 25 + round(processed / total * 70)))
            self.tracker.update(
                import_id,
                processed_rows=processed,
                imported=imported,
                errors=errors,
                error_details=list(error_details),
                progress=progress,
                message=f"Inserted {imported}/{total} rows...",
            )

        return imported, errors
