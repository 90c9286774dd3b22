# identifiers.py
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

_STRIP = re.compile(r"[\s\-]+")
_NON_DIGITS = re.compile(r"\D+")


class IdentifierKind(str, Enum):
    SIREN = "SIREN"
    SIRET = "SIRET"
    VAT = "TVA"
    INVALID = "INVALID"


@dataclass(frozen=True)
class Identifier:
    raw: str
    clean: str
    kind: IdentifierKind

    @property
    def ok(self) -> bool:
        return self.kind is not IdentifierKind.INVALID


def normalize(raw: Optional[str]) -> str:
    return _STRIP.sub("", raw or "").upper()


def classify(raw: Optional[str]) -> Identifier:
    """SIREN = 9 digits, SIRET = 14 digits, TVA = "FR" + at least two chars."""
    s = normalize(raw)
    if s.startswith("FR") and len(s) >= 4:
        kind = IdentifierKind.VAT
    elif s.isdigit() and len(s) == 9:
        kind = IdentifierKind.SIREN
    elif s.isdigit() and len(s) == 14:
        kind = IdentifierKind.SIRET
    else:
        kind = IdentifierKind.INVALID
    return Identifier(raw=raw or "", clean=s, kind=kind)


def to_siren(value) -> Optional[str]:
    """Keep the trailing 9 digits of a spreadsheet cell, None if fewer remain."""
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        # numeric cells come back from xlsx as floats
        value = int(value)
    digits = _NON_DIGITS.sub("", str(value))[-9:]
    return digits if len(digits) == 9 else None
