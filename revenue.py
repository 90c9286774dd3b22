# revenue.py
"""
Latest declared revenue from a registry payload.

The financial sub-resources do not share one schema, so the payload is
interpreted through three rules, tried in order, first match wins:
  1. a scalar "latest revenue" + "latest year" pair (top level or envelope)
  2. yearly balance-sheet rows, most recent year first
  3. a pre-formatted "CA (YEAR) = N K€" string (already in K€)
Nothing here raises on malformed input: no match means None.
"""

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from models import RevenueFact, RevenueSource


class AmountUnit(str, Enum):
    EUROS = "euros"
    THOUSANDS = "thousands"


# keys are compared after _norm_key (lowercase, alphanumerics only)
ENVELOPE_KEYS = ("data", "informationsfinancieres", "profilfinancier", "finances", "entreprise")

DIRECT_AMOUNT_KEYS = (
    "dernierca", "derniercaht", "lastca", "latestrevenue", "lastrevenue",
    "chiffreaffaires", "chiffredaffaires", "ca", "caht", "turnover", "revenue",
)
DIRECT_YEAR_KEYS = (
    "dernierbildate", "dernierexercice", "latestyear", "lastyear",
    "anneebilan", "annee", "exercice", "year", "datecloture",
)

TABLE_KEYS = ("bilans", "finances", "financials", "profil", "donnees", "liste", "data")
ROW_AMOUNT_KEYS = (
    "rescatotal", "ca", "chiffreaffaires", "chiffredaffaires", "caht",
    "turnover", "revenue", "totalrevenue", "montant", "amount",
)
ROW_YEAR_KEYS = ("anneebilan", "annee", "exercice", "year", "datecloture", "dateclotureexercice")

FORMATTED_RE = re.compile(r"CA\s*\((\d{4})\)\s*=\s*(\d[\d\s]*)K€", re.IGNORECASE)
_KEY_RE = re.compile(r"[^a-z0-9]+")
_YEAR_RE = re.compile(r"(?<!\d)(\d{4})(?!\d)")
_AMOUNT_JUNK = re.compile(r"[\s€]+")
# amounts of 10**18 or more are treated as absent
_MAX_MAGNITUDE = 18


def _norm_key(key: Any) -> str:
    return _KEY_RE.sub("", str(key).lower())


def _normalized(d: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for k, v in d.items():
        out.setdefault(_norm_key(k), v)
    return out


def parse_amount(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        return None
    s = _AMOUNT_JUNK.sub("", value).replace(",", ".")
    if not s:
        return None
    try:
        d = Decimal(s)
    except InvalidOperation:
        return None
    if not d.is_finite() or (d and d.adjusted() >= _MAX_MAGNITUDE):
        return None
    return d


def parse_year(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    if isinstance(value, int):
        return value if 1000 <= value <= 9999 else None
    if not isinstance(value, str):
        return None
    s = value.strip()
    if s.isdigit() and len(s) == 8:
        s = s[:4]  # yyyymmdd
    m = _YEAR_RE.search(s)
    return int(m.group(1)) if m else None


def round_half_up(value: Decimal) -> int:
    try:
        return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        raise ValueError(f"amount out of range: {value}") from None


def euros_to_thousands(amount: Any) -> int:
    """round(amount / 1000), halves away from zero: 1_500_500 -> 1501."""
    d = amount if isinstance(amount, Decimal) else parse_amount(amount)
    if d is None:
        raise ValueError(f"not an amount: {amount!r}")
    return round_half_up(d / 1000)


def _to_thousands(amount: Decimal, unit: AmountUnit) -> int:
    if unit is AmountUnit.THOUSANDS:
        return round_half_up(amount)
    return euros_to_thousands(amount)


def _first_amount(d: Dict[str, Any], keys: Iterable[str]) -> Optional[Decimal]:
    # zero counts as absent
    for k in keys:
        amount = parse_amount(d.get(k))
        if amount:
            return amount
    return None


def _first_year(d: Dict[str, Any], keys: Iterable[str]) -> Optional[int]:
    for k in keys:
        year = parse_year(d.get(k))
        if year is not None:
            return year
    return None


def _scopes(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    """The payload itself followed by its dict-valued envelopes."""
    top = _normalized(payload)
    scopes = [top]
    for k in ENVELOPE_KEYS:
        v = top.get(k)
        if isinstance(v, dict):
            scopes.append(_normalized(v))
    return scopes


def _direct(scopes: List[Dict[str, Any]], unit: AmountUnit) -> Optional[RevenueFact]:
    for scope in scopes:
        amount = _first_amount(scope, DIRECT_AMOUNT_KEYS)
        year = _first_year(scope, DIRECT_YEAR_KEYS)
        if amount is not None and year is not None:
            return RevenueFact(
                year=year,
                amountThousands=_to_thousands(amount, unit),
                source=RevenueSource.DIRECT,
            )
    return None


def _tables(scopes: List[Dict[str, Any]]) -> List[list]:
    seen = set()
    tables: List[list] = []

    def add(v: Any) -> None:
        if isinstance(v, list) and id(v) not in seen:
            seen.add(id(v))
            tables.append(v)

    for scope in scopes:
        for k in TABLE_KEYS:
            add(scope.get(k))
        for v in scope.values():
            add(v)
    return tables


def _rows(tables: List[list]) -> List[Tuple[Optional[int], Optional[Decimal]]]:
    rows = []
    for table in tables:
        for entry in table:
            if isinstance(entry, dict):
                e = _normalized(entry)
                rows.append((_first_year(e, ROW_YEAR_KEYS), _first_amount(e, ROW_AMOUNT_KEYS)))
    return rows


def _table(scopes: List[Dict[str, Any]], unit: AmountUnit) -> Optional[RevenueFact]:
    rows = _rows(_tables(scopes))
    # stable sort: equal years keep list order, so the first one listed wins
    rows.sort(key=lambda r: (r[0] is None, -(r[0] or 0)))
    for year, amount in rows:
        if year is not None and amount is not None:
            return RevenueFact(
                year=year,
                amountThousands=_to_thousands(amount, unit),
                source=RevenueSource.TABLE,
            )
    return None


def parse_formatted(text: str) -> Optional[RevenueFact]:
    m = FORMATTED_RE.search(text)
    if not m:
        return None
    amount = int(re.sub(r"\s+", "", m.group(2)))
    if not amount:
        return None
    return RevenueFact(year=int(m.group(1)), amountThousands=amount, source=RevenueSource.FORMATTED)


def _formatted(scopes: List[Dict[str, Any]]) -> Optional[RevenueFact]:
    for scope in scopes:
        candidates = [scope.get("formatted")] + [v for k, v in scope.items() if k != "formatted"]
        for v in candidates:
            if isinstance(v, str):
                fact = parse_formatted(v)
                if fact:
                    return fact
    return None


def extract(payload: Any, unit: AmountUnit = AmountUnit.EUROS) -> Optional[RevenueFact]:
    if isinstance(payload, str):
        return parse_formatted(payload)
    if isinstance(payload, list):
        payload = {"bilans": payload}
    if not isinstance(payload, dict):
        return None
    scopes = _scopes(payload)
    return _direct(scopes, unit) or _table(scopes, unit) or _formatted(scopes)
