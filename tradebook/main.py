import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, Depends, File, HTTPException, Query, Request, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tradebook.config import get_settings
from tradebook.database import AsyncSessionLocal, engine, init_models
from tradebook.decoder import SUPPORTED_EXTENSIONS
from tradebook.exceptions import NotFoundError, StoreReadError, ValidationError
from tradebook.filters import RecordFilters
from tradebook.ingest import ImportService
from tradebook.models import Transaction
from tradebook.progress import ImportProgressTracker
from tradebook.records import DEFAULT_PAGE_LIMIT, RecordsService
from tradebook.schemas import (
    HoldingsResponse, ImportAccepted, ImportProgressResponse, RecordListResponse,
    SecurityTransactionsResponse, StatsResponse, TransactionRecord
)
from tradebook.store import SQLAlchemyRecordStore

settings = get_settings()

# Setup logging
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_models()
    store = SQLAlchemyRecordStore(AsyncSessionLocal, Transaction.__table__)
    tracker = ImportProgressTracker(ttl_seconds=settings.import_job_ttl_seconds)
    app.state.import_service = ImportService(store, tracker, batch_size=settings.import_batch_size)
    app.state.records_service = RecordsService(
        store, default_table=settings.transactions_table, page_size=settings.query_page_size
    )
    logger.info(f"Tradebook API started against {engine.url.render_as_string(hide_password=True)}")
    yield
    await app.state.import_service.shutdown()
    await engine.dispose()


app = FastAPI(title="Tradebook API", lifespan=lifespan)

# CORS Management
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_allow_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_import_service(request: Request) -> ImportService:
    return request.app.state.import_service


def get_records_service(request: Request) -> RecordsService:
    return request.app.state.records_service


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"success": False, "message": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"success": False, "message": str(exc)})


@app.exception_handler(StoreReadError)
async def store_read_error_handler(request: Request, exc: StoreReadError):
    # Raw error text is returned for operators; this API is internal only
    logger.error(f"Query failed on {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"message": "Failed to query records", "error": str(exc)})


@app.get("/")
async def health():
    return {"status": "ok", "service": "tradebook", "message": "Tradebook API is running"}


@app.post("/import", response_model=ImportAccepted)
async def import_excel(
    file: Optional[UploadFile] = File(None),
    service: ImportService = Depends(get_import_service),
):
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")
    if not file.filename.lower().endswith(SUPPORTED_EXTENSIONS):
        raise HTTPException(status_code=400, detail="Only Excel files (.xlsx, .xls, .xlsb) are allowed")

    max_bytes = settings.import_max_upload_bytes
    if file.size is not None and file.size > max_bytes:
        raise HTTPException(status_code=413, detail=f"File exceeds the {max_bytes} byte upload limit")

    try:
        content = await file.read()
    except Exception as e:
        logger.error(f"Error reading upload {file.filename}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Failed to import Excel file: {str(e)}")
    finally:
        await file.close()

    if len(content) > max_bytes:
        raise HTTPException(status_code=413, detail=f"File exceeds the {max_bytes} byte upload limit")

    import_id = service.submit(content, file.filename)
    return ImportAccepted(import_id=import_id)


@app.get("/import/progress/{import_id}", response_model=ImportProgressResponse)
async def get_import_progress(
    import_id: str,
    response: Response,
    service: ImportService = Depends(get_import_service),
):
    # Pollers must never be served a cached state
    response.headers.update(NO_STORE_HEADERS)
    return ImportProgressResponse(progress=service.get_progress(import_id))


@app.get("/records", response_model=RecordListResponse)
async def list_records(
    request: Request,
    page: int = Query(1),
    limit: int = Query(DEFAULT_PAGE_LIMIT),
    table: Optional[str] = Query(None),
    service: RecordsService = Depends(get_records_service),
):
    filters = RecordFilters.from_query(request.query_params)
    return await service.list_records(filters, page=page, limit=limit, table=table)


@app.get("/records/stats", response_model=StatsResponse)
async def get_stats(
    request: Request,
    table: Optional[str] = Query(None),
    service: RecordsService = Depends(get_records_service),
):
    filters = RecordFilters.from_query(request.query_params)
    return await service.stats(filters, table=table)


@app.get("/records/holdings", response_model=HoldingsResponse)
async def get_holdings(
    client_id: Optional[str] = Query(None, alias="clientId"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    table: Optional[str] = Query(None),
    service: RecordsService = Depends(get_records_service),
):
    return await service.holdings(client_id, end_date, table=table)


@app.get("/records/holdings/{security}/transactions", response_model=SecurityTransactionsResponse)
async def get_security_transactions(
    security: str,
    client_id: Optional[str] = Query(None, alias="clientId"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    security_code: Optional[str] = Query(None, alias="securityCode"),
    table: Optional[str] = Query(None),
    service: RecordsService = Depends(get_records_service),
):
    return await service.security_transactions(
        client_id, security, end_date=end_date, security_code=security_code, table=table
    )


@app.get("/records/meta/exchanges", response_model=List[str])
async def get_exchanges(table: Optional[str] = Query(None), service: RecordsService = Depends(get_records_service)):
    return await service.distinct_values("EXCHG", table=table)


@app.get("/records/meta/transaction-types", response_model=List[str])
async def get_transaction_types(table: Optional[str] = Query(None), service: RecordsService = Depends(get_records_service)):
    return await service.distinct_values("Tran_Type", table=table)


@app.get("/records/meta/client-ids", response_model=List[str])
async def get_client_ids(response: Response, table: Optional[str] = Query(None),
                         service: RecordsService = Depends(get_records_service)):
    # New imports add clients; the picker must not show a stale list
    response.headers.update(NO_STORE_HEADERS)
    return await service.distinct_values("WS_client_id", table=table)


@app.get("/records/meta/symbols", response_model=List[str])
async def get_symbols(table: Optional[str] = Query(None), service: RecordsService = Depends(get_records_service)):
    return await service.distinct_values("Security_Name", table=table)


@app.get("/records/meta/stocks-by-client", response_model=List[str])
async def get_stocks_by_client(
    response: Response,
    client_id: Optional[str] = Query(None, alias="clientId"),
    table: Optional[str] = Query(None),
    service: RecordsService = Depends(get_records_service),
):
    if not client_id:
        raise ValidationError("clientId is required")
    response.headers.update(NO_STORE_HEADERS)
    filters = RecordFilters.from_query({"ws_client_id": client_id})
    return await service.distinct_values("Security_Name", filters=filters, table=table)


@app.get("/records/{record_id}", response_model=TransactionRecord)
async def get_record(
    record_id: str,
    table: Optional[str] = Query(None),
    service: RecordsService = Depends(get_records_service),
):
    return await service.get_record(record_id, table=table)
