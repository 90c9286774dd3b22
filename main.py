"""
Command line entry point for the Societe.com CA proxy
- serve:  run the FastAPI app (app:app) with uvicorn
- lookup: latest revenue for one SIREN / SIRET / TVA, as JSON
- batch:  fill a spreadsheet's SIREN column with year + revenue (K€)

Configuration comes from the environment / .env (SOC_API_KEY is required).
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv, find_dotenv

load_dotenv(find_dotenv(), override=False)

import soc_client
from batch import annotate, default_concurrency, default_delay, run_batch
from errors import SocApiError
from identifiers import classify
from models import BatchItemError, RevenueLookup
from spreadsheet import detect_id_column, extension, output_filename, read_rows, write_rows

log = logging.getLogger("main")


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn
    uvicorn.run("app:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def cmd_lookup(args: argparse.Namespace) -> int:
    ident = classify(args.id)
    if not ident.ok:
        print(json.dumps({"error": "Invalid identifier"}), file=sys.stderr)
        return 2
    try:
        fact = asyncio.run(soc_client.get_revenue(ident.clean))
    except SocApiError as e:
        print(json.dumps({"status": e.status_code, "error": e.payload()}, ensure_ascii=False), file=sys.stderr)
        return 1
    print(json.dumps(RevenueLookup.from_fact(fact).model_dump(mode="json"), ensure_ascii=False))
    return 0


def _progress(done: int, total: int) -> None:
    print(f"\r{done}/{total}", end="" if done < total else "\n", file=sys.stderr, flush=True)


def cmd_batch(args: argparse.Namespace) -> int:
    src = Path(args.input)
    ext = extension(src.name)
    sheet = read_rows(src.name, src.read_bytes())
    column = args.column or detect_id_column(sheet.columns)
    if column not in sheet.columns:
        print(f"Unknown column {column!r}; columns: {sheet.columns}", file=sys.stderr)
        return 2
    soc_client.api_key()
    log.info('sheet "%s" loaded (%d rows), SIREN column "%s"', sheet.name, len(sheet.rows), column)

    outcomes = asyncio.run(run_batch(
        [r.get(column) for r in sheet.rows],
        concurrency=args.concurrency,
        delay=args.delay_ms / 1000,
        timeout=args.timeout,
        on_progress=_progress,
    ))
    dest = Path(args.output) if args.output else src.with_name(output_filename(src.name))
    dest.write_bytes(write_rows(sheet, annotate(sheet.rows, outcomes), ext))
    failed = sum(1 for o in outcomes if isinstance(o, BatchItemError))
    log.info("wrote %s (%d rows, %d errors)", dest, len(outcomes), failed)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="societe-ca", description=__doc__.strip().splitlines()[0])
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("serve", help="run the HTTP API")
    p.add_argument("--host", default="0.0.0.0")
    p.add_argument("--port", type=int, default=int(os.getenv("PORT", "8000")))
    p.add_argument("--reload", action="store_true")
    p.set_defaults(func=cmd_serve)

    p = sub.add_parser("lookup", help="latest revenue for one identifier")
    p.add_argument("id", help="SIREN, SIRET or TVA number")
    p.set_defaults(func=cmd_lookup)

    p = sub.add_parser("batch", help="fill a spreadsheet with year + revenue (K€)")
    p.add_argument("input", help=".xlsx or .csv file")
    p.add_argument("--column", help="SIREN column (auto-detected by default)")
    p.add_argument("--concurrency", type=int, default=default_concurrency())
    p.add_argument("--delay-ms", type=int, default=int(default_delay() * 1000))
    p.add_argument("--timeout", type=float, default=None, help="per-row timeout in seconds")
    p.add_argument("--output", help="defaults to <input>_with_CA.<ext>")
    p.set_defaults(func=cmd_batch)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except SocApiError as e:
        log.error("%s", e.message)
        return 1


if __name__ == "__main__":
    sys.exit(main())
