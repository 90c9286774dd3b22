# app.py
import os, logging
from typing import Optional
from urllib.parse import quote
from dotenv import load_dotenv, find_dotenv
load_dotenv(find_dotenv(), override=False)

from fastapi import FastAPI, File, Query, Request, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import soc_client
from batch import annotate, run_batch
from errors import InvalidInputError, SocApiError
from identifiers import classify
from models import RevenueLookup
from spreadsheet import detect_id_column, extension, output_filename, read_rows, write_rows

log = logging.getLogger("uvicorn.error")

app = FastAPI(title="Societe.com CA proxy")

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("ALLOWED_ORIGINS", "*").split(","),
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["Content-Type"],
)

XLSX_MEDIA = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@app.exception_handler(SocApiError)
async def soc_api_error(request: Request, exc: SocApiError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.payload()})


def _require_id(id: Optional[str]) -> str:
    if not id:
        raise InvalidInputError("Missing id")
    ident = classify(id)
    if not ident.ok:
        raise InvalidInputError("Invalid identifier")
    return ident.clean


@app.get("/api/health")
def health():
    return {"ok": True}


@app.options("/api/ca")
@app.options("/api/societe")
def preflight():
    return Response(status_code=204)


@app.get("/api/ca", response_model=RevenueLookup)
async def api_ca(id: Optional[str] = Query(None, description="SIREN / SIRET / TVA")):
    ident = _require_id(id)
    try:
        fact = await soc_client.get_revenue(ident)
    except SocApiError:
        raise
    except Exception as e:
        log.exception("ca lookup failed for %s", ident)
        return JSONResponse(status_code=500, content={"error": str(e) or "Server error"})
    return RevenueLookup.from_fact(fact)


@app.get("/api/societe")
async def api_societe(id: Optional[str] = Query(None, description="SIREN / SIRET / TVA")):
    ident = _require_id(id)
    try:
        status, body = await soc_client.get_company(ident)
    except SocApiError:
        raise
    except Exception as e:
        log.exception("societe lookup failed for %s", ident)
        return JSONResponse(status_code=500, content={"error": str(e) or "Unknown server error"})
    return JSONResponse(status_code=status, content=body)


@app.post("/api/batch")
async def api_batch(
    file: UploadFile = File(...),
    column: Optional[str] = Query(None, description="Identifier column, auto-detected if omitted"),
    concurrency: Optional[int] = Query(None, ge=1, le=20),
    delay_ms: Optional[int] = Query(None, ge=0),
):
    ext = extension(file.filename)
    soc_client.api_key()  # fail the whole upload, not every row, when unconfigured
    sheet = read_rows(file.filename, await file.read())
    col = column or detect_id_column(sheet.columns)
    if col not in sheet.columns:
        raise InvalidInputError(f"Unknown column {col!r}")

    log.info("batch %s: %d rows, column %r", file.filename, len(sheet.rows), col)
    try:
        outcomes = await run_batch(
            [r.get(col) for r in sheet.rows],
            concurrency=concurrency,
            delay=None if delay_ms is None else delay_ms / 1000,
        )
        content = write_rows(sheet, annotate(sheet.rows, outcomes), ext)
    except SocApiError:
        raise
    except Exception as e:
        log.exception("batch failed for %s", file.filename)
        return JSONResponse(status_code=500, content={"error": str(e) or "Server error"})
    return Response(
        content=content,
        media_type=XLSX_MEDIA if ext == "xlsx" else "text/csv; charset=utf-8",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(output_filename(file.filename))}"},
    )
