# src/cli.py
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, TextIO

import uvicorn

from src.config import AppConfig, load_settings
from src.discover.machine import EmailDiscovery
from src.discover.research import ResearchController
from src.discover.stream import DiscoveryStream
from src.dispatch.gmail import GmailClient
from src.dispatch.mime import normalize_attachments
from src.dispatch.scheduler import BulkDispatcher
from src.exceptions import BatchRejected, MailAuthError
from src.models import BulkSendItem, DiscoveryRequest
from src.search.backend import TavilySearchBackend
from src.verify.client import VerificationClient
from src.verify.finder import PatternFinder


def _section(title: str, out: TextIO) -> None:
    out.write(f"=== {title} ===\n")


def _print_event(event: dict[str, Any], out: TextIO) -> None:
    if event.get("type") == "step":
        step = event["step"]
        marker = "..." if step["status"] == "running" else "ok"
        out.write(f"  [{step['id']}] {step['label']} {marker}\n")
        return
    if "error" in event:
        out.write(f"  error: {event['error']}\n")
        return

    result = event.get("result") or {}
    _section("Result", out)
    if result.get("success"):
        out.write(f"  email:  {result.get('email')}\n")
        out.write(f"  status: {result.get('verificationStatus')}\n")
        out.write(f"  method: {result.get('method')}\n")
        if result.get("source"):
            out.write(f"  source: {result['source']}\n")
    else:
        out.write("  no email found (all attempts exhausted)\n")


async def _discover(cfg: AppConfig, args: argparse.Namespace, out: TextIO) -> int:
    request = DiscoveryRequest(
        name=args.name, company=args.company, domain=args.domain, role=args.role
    )
    async with VerificationClient(cfg.verifier) as verifier, TavilySearchBackend(
        cfg.search
    ) as search:
        discovery = EmailDiscovery(PatternFinder(verifier), ResearchController(search, verifier))
        stream = DiscoveryStream(discovery, request, known_pattern=args.known_pattern)
        if not args.json:
            _section(f"Discovering {args.name} @ {args.domain}", out)

        ok = False
        async for event in stream.events():
            if args.json:
                out.write(json.dumps(event) + "\n")
            else:
                _print_event(event, out)
            if event.get("done"):
                ok = bool(event["result"]["success"])
    return 0 if ok else 1


def _load_items(path: str) -> list[BulkSendItem]:
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    entries = raw.get("items", []) if isinstance(raw, dict) else raw
    return [
        BulkSendItem(
            client_id=str(e["clientId"]),
            to=str(e["to"]),
            subject=str(e["subject"]),
            body=str(e["body"]),
            attachments=normalize_attachments(e.get("attachments") or []),
        )
        for e in entries
    ]


async def _send_bulk(cfg: AppConfig, args: argparse.Namespace, out: TextIO) -> int:
    items = _load_items(args.file)
    async with GmailClient(cfg.mail) as gmail:
        try:
            access_token = await gmail.get_access_token(args.refresh_token)
            report = await BulkDispatcher(gmail).send_batch(items, access_token)
        except BatchRejected as exc:
            out.write(f"{exc.error}: {exc.message}\n")
            return 2
        except MailAuthError as exc:
            out.write(f"Gmail authentication failed: {exc}\n")
            return 2

    out.write(json.dumps(report.to_dict(), indent=2) + "\n")
    return 0 if report.summary.failed == 0 else 1


def _cmd_discover(args: argparse.Namespace) -> int:
    return asyncio.run(_discover(load_settings(), args, sys.stdout))


def _cmd_send_bulk(args: argparse.Namespace) -> int:
    return asyncio.run(_send_bulk(load_settings(), args, sys.stdout))


def _cmd_serve(args: argparse.Namespace) -> int:
    uvicorn.run("src.api.app:app", host=args.host, port=args.port, log_level=args.log_level)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m src.cli",
        description="Email discovery and bulk dispatch tools.",
    )
    subparsers = parser.add_subparsers(dest="command")

    discover_parser = subparsers.add_parser(
        "discover",
        help="Find and verify a work email address for one person.",
    )
    discover_parser.add_argument("--name", required=True, help="Full name of the person.")
    discover_parser.add_argument("--company", required=True, help="Company name.")
    discover_parser.add_argument("--domain", required=True, help="Company email domain.")
    discover_parser.add_argument("--role", default=None, help="Job title (optional).")
    discover_parser.add_argument(
        "--known-pattern",
        default=None,
        help="Observed address or pattern key (e.g. first.last) for this domain.",
    )
    discover_parser.add_argument(
        "--json",
        action="store_true",
        help="Emit one JSON event per line instead of human-readable steps.",
    )
    discover_parser.set_defaults(func=_cmd_discover)

    send_parser = subparsers.add_parser(
        "send-bulk",
        help="Send a batch of composed messages through Gmail.",
    )
    send_parser.add_argument(
        "file",
        help='JSON file holding {"items": [{clientId, to, subject, body, attachments?}, ...]}.',
    )
    send_parser.add_argument(
        "--refresh-token",
        required=True,
        help="Gmail OAuth refresh token of the sending account.",
    )
    send_parser.set_defaults(func=_cmd_send_bulk)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API with uvicorn.")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)
    serve_parser.add_argument("--log-level", default="info")
    serve_parser.set_defaults(func=_cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    func = getattr(args, "func", None)
    if func is None:
        parser.error("no command specified")
        return 1

    logging.basicConfig(
        level=load_settings().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return int(func(args))


if __name__ == "__main__":
    raise SystemExit(main())
