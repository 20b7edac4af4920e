from sqlalchemy import Column, Integer, String, Float, Index
from tradebook.config import get_settings
from tradebook.database import Base

class Transaction(Base):
    __tablename__ = get_settings().transactions_table

    id = Column(Integer, primary_key=True, index=True)
    WS_client_id = Column(String)
    WS_Account_code = Column(String)
    TRANDATE = Column(String)
    SETDATE = Column(String)
    Tran_Type = Column(String)
    Tran_Desc = Column(String)
    Security_Type = Column(String)
    Security_Type_Description = Column(String)
    DETAILTYPENAME = Column(String)
    ISIN = Column(String)
    Security_code = Column(String)
    Security_Name = Column(String)
    EXCHG = Column(String)
    BROKERCODE = Column(String)
    Depository_Registrar = Column(String)
    DPID_AMC = Column(String)
    Dp_Client_id_Folio = Column(String)
    BANKCODE = Column(String)
    BANKACID = Column(String)
    QTY = Column(Float)
    RATE = Column(Float)
    BROKERAGE = Column(Float)
    SERVICETAX = Column(Float)
    NETRATE = Column(Float)
    Net_Amount = Column(Float)
    STT = Column(Float)
    TRFDATE = Column(String)
    TRFRATE = Column(Float)
    TRFAMT = Column(Float)
    TOTAL_TRXNFEE = Column(Float)
    TOTAL_TRXNFEE_STAX = Column(Float)
    Txn_Ref_No = Column(String)
    DESCMEMO = Column(String)
    CHEQUENO = Column(String)
    CHEQUEDTL = Column(String)
    PORTFOLIOID = Column(String)
    DELIVERYDATE = Column(String)
    PAYMENTDATE = Column(String)
    ACCRUEDINTEREST = Column(Float)
    ISSUER = Column(String)
    ISSUERNAME = Column(String)
    TDSAMOUNT = Column(Float)
    STAMPDUTY = Column(Float)
    TPMSGAIN = Column(Float)
    RMID = Column(String)
    RMNAME = Column(String)
    ADVISORID = Column(String)
    ADVISORNAME = Column(String)
    BRANCHID = Column(String)
    BRANCHNAME = Column(String)
    GROUPID = Column(String)
    GROUPNAME = Column(String)
    OWNERID = Column(String)
    OWNERNAME = Column(String)
    WEALTHADVISOR_NAME = Column(String)
    SCHEMEID = Column(String)
    SCHEMENAME = Column(String)

    # Holdings and per-security history are always read by client, then security
    __table_args__ = (
        Index("idx_client_security", "WS_client_id", "Security_Name"),
        Index("idx_trandate", "TRANDATE"),
    )
