# soc_client.py
import os, json, httpx, logging
from typing import Any, List, Optional, Tuple
from urllib.parse import quote

from dotenv import load_dotenv, find_dotenv

from errors import (
    ConfigurationError,
    UpstreamAuthError,
    UpstreamError,
    UpstreamNotFound,
    UpstreamTransportError,
)
from models import RevenueFact
from revenue import AmountUnit, extract

load_dotenv(find_dotenv(), override=False)
log = logging.getLogger("soc_client")

DEFAULT_BASE = "https://api.societe.com/api/v1"
DEFAULT_FINANCE_PATHS = "bilans,finances,profilfinancier,profil-financier,informations-financieres"

NO_DATA = "Aucune donnée finances/bilans trouvée"
CA_NOT_FOUND = "CA non trouvé dans les bilans/profil financier"

# Everything below is read per call: the secret and the per-offer
# header/endpoint naming come from the deployment environment.

def api_key() -> str:
    key = os.getenv("SOC_API_KEY")
    if not key:
        raise ConfigurationError("Server misconfigured: SOC_API_KEY missing")
    return key

def base_url() -> str:
    return os.getenv("SOC_API_BASE", DEFAULT_BASE).rstrip("/")

def finance_paths() -> List[str]:
    raw = os.getenv("SOC_FINANCE_PATHS", DEFAULT_FINANCE_PATHS)
    return [p.strip().strip("/") for p in raw.split(",") if p.strip()]

def amount_unit() -> AmountUnit:
    raw = os.getenv("SOC_AMOUNT_UNIT", AmountUnit.EUROS.value).strip().lower()
    try:
        return AmountUnit(raw)
    except ValueError:
        raise ConfigurationError(f"Server misconfigured: SOC_AMOUNT_UNIT={raw!r} (euros|thousands)")

def _timeout() -> float:
    try: return float(os.getenv("SOC_TIMEOUT_SECONDS", "20"))
    except ValueError: return 20.0

def auth_headers() -> dict:
    header = os.getenv("SOC_AUTH_HEADER", "X-Authorization")
    prefix = os.getenv("SOC_AUTH_PREFIX", "socapi").strip()
    token = api_key()
    return {
        header: f"{prefix} {token}" if prefix else token,
        "Accept": "application/json",
    }

def new_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=_timeout())

def company_url(identifier: str, path: str = "") -> str:
    url = f"{base_url()}/entreprise/{quote(identifier, safe='')}"
    return f"{url}/{path}" if path else url

def _decode(r: httpx.Response) -> Tuple[Optional[Any], str]:
    text = r.text
    try:
        return json.loads(text), text
    except ValueError:
        return None, text

async def _get(client: httpx.AsyncClient, url: str, headers: dict) -> httpx.Response:
    try:
        return await client.get(url, headers=headers)
    except httpx.HTTPError as e:
        raise UpstreamTransportError(f"Upstream request failed: {e}") from e

async def _fetch_financials(client: httpx.AsyncClient, identifier: str) -> Any:
    headers = auth_headers()
    last: Optional[UpstreamError] = None
    for path in finance_paths():
        url = company_url(identifier, path)
        r = await _get(client, url, headers)
        log.debug("GET %s -> %s", url, r.status_code)
        data, text = _decode(r)
        if r.is_success and data is not None:
            return data
        if r.status_code in (401, 403):
            # credentials lack access to this offer, trying other paths won't help
            log.warning("upstream refused %s for %s (%s)", path, identifier, r.status_code)
            raise UpstreamAuthError("Unauthorized for this endpoint", status_code=r.status_code)
        if r.is_success:
            last = UpstreamTransportError(f"Unparseable upstream body from {path}", body=text or None)
        else:
            last = UpstreamError(f"Upstream HTTP {r.status_code}", status_code=r.status_code, body=data if data is not None else text or None)
    if last is None or last.status_code == 404:
        raise UpstreamNotFound(NO_DATA)
    raise last

async def get_financials(identifier: str, client: Optional[httpx.AsyncClient] = None) -> Any:
    """First financial sub-resource that answers with JSON, in preference order."""
    if client is not None:
        return await _fetch_financials(client, identifier)
    async with new_client() as c:
        return await _fetch_financials(c, identifier)

async def get_revenue(identifier: str, client: Optional[httpx.AsyncClient] = None) -> RevenueFact:
    unit = amount_unit()
    payload = await get_financials(identifier, client)
    fact = extract(payload, unit)
    if fact is None:
        raise UpstreamNotFound(CA_NOT_FOUND)
    return fact

async def get_company(identifier: str) -> Tuple[int, Any]:
    """Legal-information resource, passed through: (status, body)."""
    headers = auth_headers()
    url = company_url(identifier, os.getenv("SOC_PROFILE_PATH", "").strip("/"))
    async with new_client() as client:
        r = await _get(client, url, headers)
    data, text = _decode(r)
    log.debug("GET %s -> %s", url, r.status_code)
    return r.status_code, data if data is not None else {"raw": text}
