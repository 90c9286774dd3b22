from enum import Enum
from typing import Optional

from pydantic import BaseModel


class RevenueSource(str, Enum):
    DIRECT = "direct"          # dernierca / dernierbildate style scalar pair
    TABLE = "table"            # yearly balance-sheet rows
    FORMATTED = "formatted"    # "CA (YEAR) = N K€" text


class RevenueFact(BaseModel):
    year: int
    amountThousands: int
    source: RevenueSource

    @property
    def formatted(self) -> str:
        return f"CA ({self.year}) = {self.amountThousands} K€"


class RevenueLookup(BaseModel):
    formatted: str
    year: int
    ca: int                    # K€
    ca_k: int                  # same value, older callers read this one
    source: RevenueSource

    @classmethod
    def from_fact(cls, fact: RevenueFact) -> "RevenueLookup":
        return cls(
            formatted=fact.formatted,
            year=fact.year,
            ca=fact.amountThousands,
            ca_k=fact.amountThousands,
            source=fact.source,
        )


class BatchItemError(BaseModel):
    error: str
    siren: Optional[str] = None
