# batch.py
"""
Bounded-concurrency revenue lookups over a list of identifiers.

`concurrency` workers share one cursor; each claims the next index, looks it
up, records the outcome at that index, then sleeps `delay` before claiming
again (upstream rate limit). Output is index-aligned with the input and every
index ends with exactly one outcome, a RevenueFact or a BatchItemError.
"""

import asyncio, logging, os
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from errors import SocApiError
from identifiers import to_siren
from models import BatchItemError, RevenueFact
import soc_client

log = logging.getLogger("batch")

Outcome = Union[RevenueFact, BatchItemError]
Fetcher = Callable[[str], Awaitable[RevenueFact]]
ProgressHook = Callable[[int, int], None]

INVALID_SIREN = "SIREN invalide"
TIMEOUT = "Timeout"
CANCELLED = "Cancelled"

YEAR_COLUMN = "Year"
REVENUE_COLUMN = "Revenue (thousands)"


def default_concurrency() -> int:
    try: return max(1, int(os.getenv("BATCH_CONCURRENCY", "5")))
    except ValueError: return 5

def default_delay() -> float:
    try: return max(0, int(os.getenv("BATCH_DELAY_MS", "150"))) / 1000
    except ValueError: return 0.15


@dataclass
class BatchJob:
    identifiers: List[Any]
    fetch: Fetcher
    concurrency: int = 5
    delay: float = 0.0
    timeout: Optional[float] = None
    cancel: Optional[asyncio.Event] = None
    on_progress: Optional[ProgressHook] = None
    completed: int = 0
    results: List[Optional[Outcome]] = field(default_factory=list)
    _cursor: int = 0

    def __post_init__(self):
        self.results = [None] * len(self.identifiers)

    @property
    def total(self) -> int:
        return len(self.identifiers)

    def _claim(self) -> Optional[int]:
        # no await between read and increment, so two workers never share an index
        if self._cursor >= self.total:
            return None
        if self.cancel is not None and self.cancel.is_set():
            return None
        idx = self._cursor
        self._cursor += 1
        return idx

    def _finish(self, idx: int, outcome: Outcome) -> None:
        self.results[idx] = outcome
        self.completed += 1
        if self.on_progress:
            self.on_progress(self.completed, self.total)

    async def _lookup(self, raw: Any) -> Outcome:
        siren = to_siren(raw)
        if siren is None:
            return BatchItemError(error=INVALID_SIREN)
        try:
            if self.timeout:
                fact = await asyncio.wait_for(self.fetch(siren), self.timeout)
            else:
                fact = await self.fetch(siren)
            return fact
        except asyncio.TimeoutError:
            msg = TIMEOUT
        except SocApiError as e:
            msg = e.message
        except Exception as e:
            msg = str(e) or type(e).__name__
        log.warning("batch row %s failed: %s", siren, msg)
        return BatchItemError(error=msg, siren=siren)

    async def _worker(self) -> None:
        while True:
            idx = self._claim()
            if idx is None:
                return
            self._finish(idx, await self._lookup(self.identifiers[idx]))
            if self.delay:
                await asyncio.sleep(self.delay)

    async def run(self) -> List[Outcome]:
        width = min(max(1, self.concurrency), self.total)
        log.info("batch start: %d rows, %d workers, delay %.3fs", self.total, width, self.delay)
        if width:
            await asyncio.gather(*(self._worker() for _ in range(width)))
        for idx, outcome in enumerate(self.results):
            if outcome is None:
                self._finish(idx, BatchItemError(error=CANCELLED))
        log.info("batch done: %d rows", self.completed)
        return list(self.results)


async def run_batch(
    identifiers: List[Any],
    fetch: Optional[Fetcher] = None,
    concurrency: Optional[int] = None,
    delay: Optional[float] = None,
    *,
    timeout: Optional[float] = None,
    cancel: Optional[asyncio.Event] = None,
    on_progress: Optional[ProgressHook] = None,
) -> List[Outcome]:
    """Look up every identifier; one shared httpx client unless `fetch` is given."""
    kwargs = dict(
        concurrency=default_concurrency() if concurrency is None else concurrency,
        delay=default_delay() if delay is None else delay,
        timeout=timeout,
        cancel=cancel,
        on_progress=on_progress,
    )
    if fetch is not None:
        return await BatchJob(list(identifiers), fetch, **kwargs).run()

    async with soc_client.new_client() as client:
        async def fetch_with_client(siren: str) -> RevenueFact:
            return await soc_client.get_revenue(siren, client)
        return await BatchJob(list(identifiers), fetch_with_client, **kwargs).run()


def annotate(rows: List[Dict[str, Any]], outcomes: List[Outcome]) -> List[Dict[str, Any]]:
    """Copies of `rows` with the year and K€ columns (or the row's error) appended."""
    out = []
    for row, outcome in zip(rows, outcomes):
        row = dict(row)
        if isinstance(outcome, RevenueFact):
            row[YEAR_COLUMN] = str(outcome.year)
            row[REVENUE_COLUMN] = outcome.amountThousands
        else:
            row[YEAR_COLUMN] = ""
            row[REVENUE_COLUMN] = outcome.error
        out.append(row)
    return out
