"""
Command line entry point.

    python -m fundrouter.main methods
    python -m fundrouter.main match --amount 500 --method wechat
    python -m fundrouter.main evidence --amount 500 --method bank_card --file a.png --card-last-four 1234
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from prometheus_client import REGISTRY, start_http_server
from rich.console import Console
from rich.prompt import Prompt
from rich.table import Table

from fundrouter.app import RechargeSession, build_session
from fundrouter.config.config import Settings
from fundrouter.config.config_validator import validate_and_log
from fundrouter.core.errors import FundRouterError
from fundrouter.core.json_utils import dumps
from fundrouter.core.models import EvidenceFile, OrderStatus
from fundrouter.infra.api_client import ApiClient
from fundrouter.infra.logging_cfg import build_logger
from fundrouter.monitoring.metrics import EngineMetrics
from fundrouter.redirect.confirmation_flow import FlowState
from fundrouter.redirect.surface import ConsoleSurface

console = Console()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fundrouter", description="Recharge channel matching and failover")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("methods", help="list payment methods offered by the backend")

    match = sub.add_parser("match", help="match a channel and follow the payment link")
    match.add_argument("--amount", required=True)
    match.add_argument("--method", required=True)

    evidence = sub.add_parser("evidence", help="pay a manual channel by uploading proof")
    evidence.add_argument("--amount", required=True)
    evidence.add_argument("--method", required=True)
    evidence.add_argument("--file", action="append", default=[], dest="files")
    evidence.add_argument("--card-last-four", default=None)
    return parser


async def cmd_methods(session: RechargeSession) -> int:
    table = Table(title="Payment methods")
    table.add_column("method")
    table.add_column("name")
    table.add_column("channels", justify="right")
    for opt in session.available_methods():
        count = sum(1 for ep in session.endpoints if ep.method is opt.method)
        table.add_row(opt.method.value, opt.display_name, str(count))
    console.print(table)
    return 0


async def cmd_match(session: RechargeSession, method: str, amount: str) -> int:
    result = await session.start_match(method, amount)
    if result.status is OrderStatus.FAILED:
        console.print(f"[red]match failed:[/red] {result.error}")
        return 1
    if result.status is OrderStatus.AWAITING_EVIDENCE:
        ep = result.endpoint
        console.print("Manual transfer required. Pay to:")
        console.print(f"  {ep.account_name}  {ep.account_number}  {ep.bank_name or ''} {ep.bank_branch or ''}")
        console.print("Then run the 'evidence' command with your payment screenshots.")
        return 0

    flow = session.open_redirect(ConsoleSurface(console))
    while not flow.closed:
        choice = await asyncio.to_thread(
            Prompt.ask, "[c]onfirm paid / [x] cancel / [r]eload / [u] new link", choices=["c", "x", "r", "u"]
        )
        if flow.closed:
            break
        if choice == "c":
            await flow.user_confirmed_success()
        elif choice == "x":
            flow.user_cancelled()
        elif choice == "r":
            flow.reload()
        elif choice == "u":
            try:
                await flow.refresh_url()
            except FundRouterError as e:
                console.print(f"[yellow]could not refresh link:[/yellow] {e}")
    console.print(f"payment flow finished: {flow.state.name}")
    return 0 if flow.state is FlowState.USER_CONFIRMED_SUCCESS else 1


async def cmd_evidence(session: RechargeSession, method: str, amount: str, files: List[str], last_four: Optional[str]) -> int:
    result = await session.start_match(method, amount)
    if result.status is not OrderStatus.AWAITING_EVIDENCE:
        console.print(f"[red]channel does not take evidence:[/red] {result.status.name} {result.error or ''}")
        return 1
    added = await session.evidence.upload_files([EvidenceFile.from_path(p) for p in files])
    for f, reason in added.rejected:
        console.print(f"[yellow]skipped {f.name}:[/yellow] {reason}")
    for item in session.evidence.items:
        console.print(f"{item.file.name}: {item.status.name} {item.error or ''}")
    accepted = await session.submit_evidence(last_four=last_four)
    console.print(f"order submitted: {accepted.reference.backend_id or accepted.reference.client_ref}")
    return 0


async def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    cfg = Settings.load()
    log = build_logger("fundrouter", level=getattr(logging, cfg.log_level, logging.INFO), file_path=cfg.log_file)
    if not validate_and_log(cfg, log):
        log.error("Configuration validation failed, exiting")
        return 2

    metrics = EngineMetrics(REGISTRY)
    if cfg.metrics_port:
        start_http_server(cfg.metrics_port)

    def on_limit(max_count: int, dropped: int) -> None:
        console.print(f"[yellow]at most {max_count} screenshots; {dropped} ignored[/yellow]")

    api = ApiClient(cfg.base_url, token=cfg.api_token, timeout=cfg.http_timeout, retries=cfg.http_retries)
    try:
        session = build_session(cfg, api, metrics=metrics, on_limit_exceeded=on_limit)
    except FundRouterError as e:
        log.error(f"CONFIG ERROR: {e}")
        await api.close()
        return 2
    try:
        await session.enter()
        if args.command == "methods":
            return await cmd_methods(session)
        if args.command == "match":
            return await cmd_match(session, args.method, args.amount)
        return await cmd_evidence(session, args.method, args.amount, args.files, args.card_last_four)
    except FundRouterError as e:
        log.error(dumps({"event": "command_failed", "command": args.command, "error": str(e)}))
        console.print(f"[red]{e}[/red]")
        return 1
    finally:
        await session.leave()
        await api.close()


def run() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nstopped by user")
        sys.exit(130)


if __name__ == "__main__":
    run()
