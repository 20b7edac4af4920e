"""
Per-client holdings, computed from the transaction history.

The record store cannot do conditional sums, so buy/sell classification and
totals are computed here after the client's transactions have been fetched.
"""

from typing import Dict, Iterable, List, Optional, Tuple

from tradebook.schemas import HoldingItem, TransactionRecord

# Cash movements and tax deductions show up as securities in broker exports
EXCLUDED_SECURITY_PATTERNS = ("CASH", "TDS", "TAX DEDUCT")


def classify(tran_type: Optional[str]) -> Optional[str]:
    """'buy' or 'sell' from the first letter of the transaction type, else None."""
    if not tran_type:
        return None
    first = str(tran_type).strip()[:1].upper()
    if first == "B":
        return "buy"
    if first == "S":
        return "sell"
    return None


def is_excluded_security(name: Optional[str]) -> bool:
    upper = (name or "").upper()
    return any(pattern in upper for pattern in EXCLUDED_SECURITY_PATTERNS)


def _safe_div(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


def aggregate_holdings(transactions: Iterable[TransactionRecord]) -> List[HoldingItem]:
    groups: Dict[Tuple[str, str], dict] = {}

    for txn in transactions:
        side = classify(txn.Tran_Type)
        key = (txn.Security_Name or "", txn.Security_code or "")
        totals = groups.setdefault(key, {
            "buy_qty": 0.0, "buy_amount": 0.0, "buy_count": 0,
            "sell_qty": 0.0, "sell_amount": 0.0, "sell_count": 0,
        })
        if side is None:
            continue
        # some exports sign buys negative; only the magnitude matters per side
        totals[f"{side}_qty"] += abs(txn.QTY or 0.0)
        totals[f"{side}_amount"] += abs(txn.Net_Amount or 0.0)
        totals[f"{side}_count"] += 1

    holdings = []
    for (name, code), totals in groups.items():
        if is_excluded_security(name):
            continue
        if totals["buy_qty"] == 0 and totals["sell_qty"] == 0:
            continue
        holdings.append(HoldingItem(
            stock_name=name,
            stock_code=code or None,
            total_buy_qty=totals["buy_qty"],
            total_buy_amount=totals["buy_amount"],
            total_sell_qty=totals["sell_qty"],
            total_sell_amount=totals["sell_amount"],
            current_holding=totals["buy_qty"] - totals["sell_qty"],
            profit=totals["sell_amount"] - totals["buy_amount"],
            avg_buy_price=_safe_div(totals["buy_amount"], totals["buy_qty"]),
            avg_sell_price=_safe_div(totals["sell_amount"], totals["sell_qty"]),
            buy_trades=totals["buy_count"],
            sell_trades=totals["sell_count"],
        ))

    holdings.sort(key=lambda h: h.stock_name)
    return holdings
