"""
Canonical transaction schema and spreadsheet header normalization.

Broker exports label the same column in many ways ("WS client id",
"WS_client_id", "Dp Client id/Folio", ...). Headers are resolved to the
canonical store column names in order of decreasing strictness:

    1. explicit alias table
    2. separators collapsed to underscores, exact canonical match
    3. alphanumeric-only, case-insensitive match
    4. the underscored form, left unresolved
"""

import re
from typing import Dict, Optional

CANONICAL_COLUMNS = (
    "WS_client_id", "WS_Account_code", "TRANDATE", "SETDATE", "Tran_Type", "Tran_Desc",
    "Security_Type", "Security_Type_Description", "DETAILTYPENAME", "ISIN", "Security_code",
    "Security_Name", "EXCHG", "BROKERCODE", "Depository_Registrar", "DPID_AMC", "Dp_Client_id_Folio",
    "BANKCODE", "BANKACID", "QTY", "RATE", "BROKERAGE", "SERVICETAX", "NETRATE", "Net_Amount", "STT",
    "TRFDATE", "TRFRATE", "TRFAMT", "TOTAL_TRXNFEE", "TOTAL_TRXNFEE_STAX", "Txn_Ref_No", "DESCMEMO",
    "CHEQUENO", "CHEQUEDTL", "PORTFOLIOID", "DELIVERYDATE", "PAYMENTDATE", "ACCRUEDINTEREST", "ISSUER",
    "ISSUERNAME", "TDSAMOUNT", "STAMPDUTY", "TPMSGAIN", "RMID", "RMNAME", "ADVISORID", "ADVISORNAME",
    "BRANCHID", "BRANCHNAME", "GROUPID", "GROUPNAME", "OWNERID", "OWNERNAME", "WEALTHADVISOR_NAME",
    "SCHEMEID", "SCHEMENAME",
)
ALLOWED_COLUMNS = frozenset(CANONICAL_COLUMNS)

NUMERIC_COLUMNS = frozenset({
    "QTY", "RATE", "BROKERAGE", "SERVICETAX", "NETRATE", "Net_Amount", "STT", "TRFRATE", "TRFAMT",
    "TOTAL_TRXNFEE", "TOTAL_TRXNFEE_STAX", "TDSAMOUNT", "STAMPDUTY", "TPMSGAIN", "ACCRUEDINTEREST",
})

DATE_COLUMNS = frozenset({"TRANDATE", "SETDATE", "DELIVERYDATE", "PAYMENTDATE", "TRFDATE"})

# Header spellings seen in broker exports
COLUMN_ALIASES: Dict[str, str] = {
    "WS client id": "WS_client_id",
    "WS Client id": "WS_client_id",
    "WS_client_id": "WS_client_id",
    "WS Account code": "WS_Account_code",
    "WS_Account_code": "WS_Account_code",
    "TRANDATE": "TRANDATE",
    "Tran Date": "TRANDATE",
    "SETDATE": "SETDATE",
    "Set Date": "SETDATE",
    "Tran Type": "Tran_Type",
    "Tran_Type": "Tran_Type",
    "Tran Desc": "Tran_Desc",
    "Tran_Desc": "Tran_Desc",
    "Security Type": "Security_Type",
    "Security_Type": "Security_Type",
    "Security Type Description": "Security_Type_Description",
    "Security_Type_Description": "Security_Type_Description",
    "DETAILTYPENAME": "DETAILTYPENAME",
    "Detail Type Name": "DETAILTYPENAME",
    "ISIN": "ISIN",
    "Security code": "Security_code",
    "Security_code": "Security_code",
    "Security Name": "Security_Name",
    "Security_Name": "Security_Name",
    "EXCHG": "EXCHG",
    "Exchange": "EXCHG",
    "BROKERCODE": "BROKERCODE",
    "Broker Code": "BROKERCODE",
    "Depository/Registrar": "Depository_Registrar",
    "Depositoy/Registrar": "Depository_Registrar",
    "DPID/AMC": "DPID_AMC",
    "Dp Client id/Folio": "Dp_Client_id_Folio",
    "DP Client id/Folio": "Dp_Client_id_Folio",
    "BANKCODE": "BANKCODE",
    "Bank Code": "BANKCODE",
    "BANKACID": "BANKACID",
    "Bank AC ID": "BANKACID",
    "QTY": "QTY",
    "Quantity": "QTY",
    "RATE": "RATE",
    "Rate": "RATE",
    "BROKERAGE": "BROKERAGE",
    "Brokerage": "BROKERAGE",
    "SERVICETAX": "SERVICETAX",
    "Service Tax": "SERVICETAX",
    "NETRATE": "NETRATE",
    "Net Rate": "NETRATE",
    "Net Amount": "Net_Amount",
    "NET_Amount": "Net_Amount",
    "STT": "STT",
    "TRFDATE": "TRFDATE",
    "TRF Date": "TRFDATE",
    "TRFRATE": "TRFRATE",
    "TRF Rate": "TRFRATE",
    "TRFAMT": "TRFAMT",
    "TRF Amount": "TRFAMT",
    "TOTAL_TRXNFEE": "TOTAL_TRXNFEE",
    "Total Txn Fee": "TOTAL_TRXNFEE",
    "TOTAL_TRXNFEE_STAX": "TOTAL_TRXNFEE_STAX",
    "Total Txn Fee STax": "TOTAL_TRXNFEE_STAX",
    "Txn Ref No": "Txn_Ref_No",
    "TXN_Ref_No": "Txn_Ref_No",
    "DESCMEMO": "DESCMEMO",
    "Desc Memo": "DESCMEMO",
    "CHEQUENO": "CHEQUENO",
    "Cheque No": "CHEQUENO",
    "CHEQUEDTL": "CHEQUEDTL",
    "Cheque Dtl": "CHEQUEDTL",
    "PORTFOLIOID": "PORTFOLIOID",
    "Portfolio ID": "PORTFOLIOID",
    "DELIVERYDATE": "DELIVERYDATE",
    "Delivery Date": "DELIVERYDATE",
    "PAYMENTDATE": "PAYMENTDATE",
    "Payment Date": "PAYMENTDATE",
    "ACCRUEDINTEREST": "ACCRUEDINTEREST",
    "Accrued Interest": "ACCRUEDINTEREST",
    "ISSUER": "ISSUER",
    "Issuer": "ISSUER",
    "ISSUERNAME": "ISSUERNAME",
    "Issuer Name": "ISSUERNAME",
    "TDSAMOUNT": "TDSAMOUNT",
    "TDS Amount": "TDSAMOUNT",
    "STAMPDUTY": "STAMPDUTY",
    "Stamp Duty": "STAMPDUTY",
    "TPMSGAIN": "TPMSGAIN",
    "TPMSGain": "TPMSGAIN",
    "RMID": "RMID",
    "RM ID": "RMID",
    "RMNAME": "RMNAME",
    "RM Name": "RMNAME",
    "ADVISORID": "ADVISORID",
    "Advisor ID": "ADVISORID",
    "ADVISORNAME": "ADVISORNAME",
    "Advisor Name": "ADVISORNAME",
    "BRANCHID": "BRANCHID",
    "Branch ID": "BRANCHID",
    "BRANCHNAME": "BRANCHNAME",
    "Branch Name": "BRANCHNAME",
    "GROUPID": "GROUPID",
    "Group ID": "GROUPID",
    "GROUPNAME": "GROUPNAME",
    "Group Name": "GROUPNAME",
    "OWNERID": "OWNERID",
    "Owner ID": "OWNERID",
    "OWNERNAME": "OWNERNAME",
    "Owner Name": "OWNERNAME",
    "WEALTHADVISOR NAME": "WEALTHADVISOR_NAME",
    "Wealth Advisor Name": "WEALTHADVISOR_NAME",
    "SCHEMEID": "SCHEMEID",
    "Scheme ID": "SCHEMEID",
    "SCHEMENAME": "SCHEMENAME",
    "Scheme Name": "SCHEMENAME",
}

_SEPARATORS = re.compile(r"[.\s/-]+")
_NON_ALNUM = re.compile(r"[^a-z0-9]")


def canonicalize(name) -> str:
    """Lower-case and strip everything but letters and digits."""
    return _NON_ALNUM.sub("", str(name or "").lower())


CANONICAL_TO_SCHEMA: Dict[str, str] = {canonicalize(col): col for col in CANONICAL_COLUMNS}


def normalize_column_name(header) -> Optional[str]:
    """Resolve a spreadsheet header to a canonical column name.

    Returns None for blank headers. Headers that cannot be resolved come back
    in their underscored form and are reported as unknown by the row mapper.
    """
    if header is None:
        return None
    trimmed = str(header).strip()
    if not trimmed:
        return None

    alias = COLUMN_ALIASES.get(trimmed)
    if alias:
        return alias

    underscored = _SEPARATORS.sub("_", trimmed)
    if underscored in ALLOWED_COLUMNS:
        return underscored

    canonical = CANONICAL_TO_SCHEMA.get(canonicalize(trimmed))
    if canonical:
        return canonical

    return underscored


def is_known_column(name: Optional[str]) -> bool:
    return name in ALLOWED_COLUMNS
