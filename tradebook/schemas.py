from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class TransactionRecord(BaseModel):
    """One stored transaction row, keyed by canonical column names."""
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: Optional[int] = None
    WS_client_id: Optional[str] = None
    WS_Account_code: Optional[str] = None
    TRANDATE: Optional[str] = None
    SETDATE: Optional[str] = None
    Tran_Type: Optional[str] = None
    Tran_Desc: Optional[str] = None
    Security_Type: Optional[str] = None
    Security_Type_Description: Optional[str] = None
    DETAILTYPENAME: Optional[str] = None
    ISIN: Optional[str] = None
    Security_code: Optional[str] = None
    Security_Name: Optional[str] = None
    EXCHG: Optional[str] = None
    BROKERCODE: Optional[str] = None
    Depository_Registrar: Optional[str] = None
    DPID_AMC: Optional[str] = None
    Dp_Client_id_Folio: Optional[str] = None
    BANKCODE: Optional[str] = None
    BANKACID: Optional[str] = None
    QTY: Optional[float] = None
    RATE: Optional[float] = None
    BROKERAGE: Optional[float] = None
    SERVICETAX: Optional[float] = None
    NETRATE: Optional[float] = None
    Net_Amount: Optional[float] = None
    STT: Optional[float] = None
    TRFDATE: Optional[str] = None
    TRFRATE: Optional[float] = None
    TRFAMT: Optional[float] = None
    TOTAL_TRXNFEE: Optional[float] = None
    TOTAL_TRXNFEE_STAX: Optional[float] = None
    Txn_Ref_No: Optional[str] = None
    DESCMEMO: Optional[str] = None
    CHEQUENO: Optional[str] = None
    CHEQUEDTL: Optional[str] = None
    PORTFOLIOID: Optional[str] = None
    DELIVERYDATE: Optional[str] = None
    PAYMENTDATE: Optional[str] = None
    ACCRUEDINTEREST: Optional[float] = None
    ISSUER: Optional[str] = None
    ISSUERNAME: Optional[str] = None
    TDSAMOUNT: Optional[float] = None
    STAMPDUTY: Optional[float] = None
    TPMSGAIN: Optional[float] = None
    RMID: Optional[str] = None
    RMNAME: Optional[str] = None
    ADVISORID: Optional[str] = None
    ADVISORNAME: Optional[str] = None
    BRANCHID: Optional[str] = None
    BRANCHNAME: Optional[str] = None
    GROUPID: Optional[str] = None
    GROUPNAME: Optional[str] = None
    OWNERID: Optional[str] = None
    OWNERNAME: Optional[str] = None
    WEALTHADVISOR_NAME: Optional[str] = None
    SCHEMEID: Optional[str] = None
    SCHEMENAME: Optional[str] = None

class RecordListResponse(BaseModel):
    page: int
    limit: int
    total: Optional[int]
    data: List[TransactionRecord]

class OverallStats(BaseModel):
    total_trades: int
    total_net_amount: float
    avg_trade_value: float
    buy_trades: int
    sell_trades: int
    completed_trades: int

class TopStock(BaseModel):
    name: Optional[str]
    trade_count: int
    total_value: float
    total_quantity: float

class ExchangeStat(BaseModel):
    exchange: Optional[str]
    count: int
    total_value: float

class DailyVolume(BaseModel):
    date: Optional[str]
    count: int
    total_value: float

class StatsResponse(BaseModel):
    overall: OverallStats
    top_stocks: List[TopStock]
    exchange_stats: List[ExchangeStat]
    daily_volume: List[DailyVolume]

class HoldingItem(BaseModel):
    stock_name: str
    stock_code: Optional[str] = None
    total_buy_qty: float
    total_buy_amount: float
    total_sell_qty: float
    total_sell_amount: float
    current_holding: float
    profit: float
    avg_buy_price: float
    avg_sell_price: float
    buy_trades: int
    sell_trades: int

class HoldingsResponse(BaseModel):
    client_id: str
    end_date: Optional[str]
    holdings: List[HoldingItem]

class SecurityTransactionsResponse(BaseModel):
    client_id: str
    security_name: str
    security_code: Optional[str]
    end_date: Optional[str]
    transactions: List[TransactionRecord]

class ImportStage(str, Enum):
    PARSING = "parsing"
    MAPPING = "mapping"
    INSERTING = "inserting"
    COMPLETED = "completed"
    ERROR = "error"

class ImportProgress(BaseModel):
    stage: ImportStage = ImportStage.PARSING
    progress: int = 0
    message: str = ""
    total_rows: int = 0
    processed_rows: int = 0
    imported: int = 0
    errors: int = 0
    error_details: List[str] = Field(default_factory=list)
    unknown_columns: List[str] = Field(default_factory=list)

    @property
    def finished(self) -> bool:
        return self.stage in (ImportStage.COMPLETED, ImportStage.ERROR)

class ImportAccepted(BaseModel):
    success: bool = True
    import_id: str = Field(serialization_alias="importId")
    message: str = "Import started"

class ImportProgressResponse(BaseModel):
    success: bool = True
    progress: ImportProgress
