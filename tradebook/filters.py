"""
Filter parameters -> SQL predicate.

Every piece of client input that ends up in query text goes through this
module. Only the fields of ``RecordFilters`` can influence a predicate;
unknown query parameters are dropped before anything is built.

Most equality filters are sent as ``?`` parameters. Date bounds, the client
id and account code filters, and search patterns are inlined as quoted
literals instead, because the upstream query engine does not accept bound
parameters in those positions. Inlined values have their single quotes
doubled. This is a workaround for that engine, not a general injection
defence: a store with full parameter support should bind everything and drop
``quote_literal``.
"""

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Mapping, Optional

import pydantic
from pydantic import BaseModel, ConfigDict

from tradebook.exceptions import ValidationError

# query parameter -> column, equality match
EQUALITY_FILTERS: Dict[str, str] = {
    "ws_client_id": "WS_client_id",
    "ws_account_code": "WS_Account_code",
    "tran_type": "Tran_Type",
    "tran_desc": "Tran_Desc",
    "security_type": "Security_Type",
    "security_type_description": "Security_Type_Description",
    "detailtypename": "DETAILTYPENAME",
    "isin": "ISIN",
    "security_code": "Security_code",
    "security_name": "Security_Name",
    "exchg": "EXCHG",
    "brokercode": "BROKERCODE",
    "portfolioid": "PORTFOLIOID",
    "branchid": "BRANCHID",
    "ownerid": "OWNERID",
    "advisorid": "ADVISORID",
    "groupid": "GROUPID",
}

LITERAL_FILTERS = frozenset({"ws_client_id", "ws_account_code"})

# query parameter -> (column, operator)
DATE_RANGE_FILTERS = {
    "trandate_from": ("TRANDATE", ">="),
    "trandate_to": ("TRANDATE", "<="),
    "setdate_from": ("SETDATE", ">="),
    "setdate_to": ("SETDATE", "<="),
}

SEARCH_COLUMNS = ("Security_Name", "Security_code")

_IDENTIFIER_UNSAFE = re.compile(r"[^a-zA-Z0-9_]")
_NUMERIC = re.compile(r"-?\d+(\.\d+)?")


def sanitize_identifier(identifier: Any) -> str:
    cleaned = _IDENTIFIER_UNSAFE.sub("", str(identifier))
    if not cleaned:
        raise ValidationError(f"Invalid identifier: {identifier!r}")
    return cleaned


def quote_identifier(identifier: str) -> str:
    return f'"{sanitize_identifier(identifier)}"'


def quote_literal(value: Any) -> str:
    return "'" + str(value).replace("'", "''") + "'"


def numeric_literal(value: Any) -> str:
    """Render an identifier for comparison against a numeric column."""
    text = str(value).strip()
    if not _NUMERIC.fullmatch(text):
        raise ValidationError(f"Expected a numeric identifier, got {value!r}")
    return text


class RecordFilters(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ws_client_id: Optional[str] = None
    ws_account_code: Optional[str] = None
    trandate_from: Optional[date] = None
    trandate_to: Optional[date] = None
    setdate_from: Optional[date] = None
    setdate_to: Optional[date] = None
    tran_type: Optional[str] = None
    tran_desc: Optional[str] = None
    security_type: Optional[str] = None
    security_type_description: Optional[str] = None
    detailtypename: Optional[str] = None
    isin: Optional[str] = None
    security_code: Optional[str] = None
    security_name: Optional[str] = None
    exchg: Optional[str] = None
    brokercode: Optional[str] = None
    portfolioid: Optional[str] = None
    branchid: Optional[str] = None
    ownerid: Optional[str] = None
    advisorid: Optional[str] = None
    groupid: Optional[str] = None
    q: Optional[str] = None

    @classmethod
    def from_query(cls, params: Mapping[str, Any]) -> "RecordFilters":
        """Keep allow-listed, non-empty parameters; ignore everything else."""
        values = {
            key: str(value)
            for key, value in params.items()
            if key in cls.model_fields and value is not None and str(value) != ""
        }
        try:
            return cls(**values)
        except pydantic.ValidationError as e:
            fields = ", ".join(str(err["loc"][0]) for err in e.errors())
            raise ValidationError(f"Invalid filter value for: {fields}") from e


@dataclass
class WhereClause:
    conditions: List[str] = field(default_factory=list)
    params: List[Any] = field(default_factory=list)

    def add(self, condition: str, *params: Any) -> "WhereClause":
        self.conditions.append(condition)
        self.params.extend(params)
        return self

    def extended(self, condition: str, *params: Any) -> "WhereClause":
        return WhereClause(list(self.conditions), list(self.params)).add(condition, *params)

    @property
    def sql(self) -> str:
        if not self.conditions:
            return ""
        return " WHERE " + " AND ".join(self.conditions)


def build_where_clause(filters: RecordFilters) -> WhereClause:
    where = WhereClause()

    for key, column in EQUALITY_FILTERS.items():
        value = getattr(filters, key)
        if value is None:
            continue
        if key in LITERAL_FILTERS:
            where.add(f"{quote_identifier(column)} = {quote_literal(value)}")
        else:
            where.add(f"{quote_identifier(column)} = ?", value)

    for key, (column, operator) in DATE_RANGE_FILTERS.items():
        value = getattr(filters, key)
        if value is not None:
            where.add(f"{quote_identifier(column)} {operator} {quote_literal(value.isoformat())}")

    if filters.q:
        pattern = quote_literal(f"%{filters.q}%")
        where.add("(" + " OR ".join(f"{quote_identifier(c)} LIKE {pattern}" for c in SEARCH_COLUMNS) + ")")

    return where


def id_condition(record_id: Any) -> str:
    return f'{quote_identifier("id")} = {numeric_literal(record_id)}'


def tran_type_prefix_condition(letter: str) -> str:
    """Match transaction types starting with ``letter`` in either case."""
    column = quote_identifier("Tran_Type")
    upper, lower = quote_literal(letter.upper() + "%"), quote_literal(letter.lower() + "%")
    return f"({column} LIKE {upper} OR {column} LIKE {lower})"


def not_null_condition(column: str) -> str:
    return f"{quote_identifier(column)} IS NOT NULL"
