"""KMITL NetAuth command-line interface."""
from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import signal
import sys
from typing import Any, Dict, List, Optional

from netauth.config import Settings, configure_logging, load_settings
from netauth.errors import ConfigError
from netauth.journal import EventJournal
from netauth.runner import build_probe, build_runner
from netauth.store import StateStore

try:  # pragma: no cover - optional rich rendering
	from rich.console import Console
	from rich.table import Table
except Exception:  # pragma: no cover
	Console = None  # type: ignore
	Table = None  # type: ignore


def _load(args: argparse.Namespace) -> Settings:
	settings = load_settings(args.config)
	configure_logging(args.log_level or settings.log_level)
	return settings


def _print_table(title: str, columns: List[str], rows: List[Dict[str, Any]]) -> None:
	if Console and Table:
		console = Console()
		table = Table(title=title, show_lines=False)
		for column in columns:
			table.add_column(column.upper())
		for entry in rows:
			table.add_row(*(str(entry.get(column, "")) for column in columns))
		console.print(table)
	else:
		for entry in rows:
			sys.stdout.write("\t".join(str(entry.get(column, "")) for column in columns) + "\n")


async def _cmd_run(args: argparse.Namespace) -> int:
	settings = _load(args)
	if not settings.username and not settings.credentials_path:
		raise ConfigError("username not set; add it to the config file or set KMITL_USERNAME")

	runner = build_runner(settings, persist=not args.no_persist)

	def _signal_handler(*_: Any) -> None:
		runner.request_stop()

	loop = asyncio.get_running_loop()
	for sig in (signal.SIGINT, signal.SIGTERM):
		with contextlib.suppress(NotImplementedError):
			loop.add_signal_handler(sig, _signal_handler)

	try:
		await runner.run(runtime=args.runtime)
	except KeyboardInterrupt:
		runner.request_stop()
	return 0


async def _cmd_check(args: argparse.Namespace) -> int:
	settings = _load(args)
	probe = build_probe(settings)
	result = await asyncio.to_thread(probe.check)
	sys.stdout.write(f"{result.value}\n")
	return 0 if result.ok else 1


async def _cmd_status(args: argparse.Namespace) -> int:
	settings = _load(args)
	state = StateStore(settings.resolved_state_path()).load()
	if state is None:
		sys.stdout.write("no saved state\n")
		return 1
	data = state.to_dict()
	if args.json:
		json.dump(data, sys.stdout, indent=2)
		sys.stdout.write("\n")
		return 0
	_print_table(
		"KMITL NetAuth Status",
		["field", "value"],
		[{"field": key, "value": value} for key, value in data.items()],
	)
	return 0


async def _cmd_history(args: argparse.Namespace) -> int:
	settings = _load(args)
	path = settings.resolved_journal_path()
	rows = EventJournal(path).read(args.limit) if path.exists() else []
	if args.json:
		json.dump(rows, sys.stdout, indent=2)
		sys.stdout.write("\n")
		return 0
	_print_table("KMITL NetAuth Events", ["timestamp", "event", "phase", "failures", "message"], rows)
	return 0


async def _cmd_serve(args: argparse.Namespace) -> int:
	import uvicorn

	configure_logging(args.log_level or "info")
	config = uvicorn.Config("netauth.api:app", host=args.host, port=args.port, log_level="info")
	await uvicorn.Server(config).serve()
	return 0


def _build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(description="Keep this machine logged in to the KMITL campus network")
	parser.add_argument("--config", help="Path to config.json")
	parser.add_argument("--log-level", help="Override the configured log level")
	sub = parser.add_subparsers(dest="command", required=True)

	run = sub.add_parser("run", help="Supervise login and heartbeat until stopped")
	run.add_argument("--runtime", type=float, help="Optional run duration seconds")
	run.add_argument("--no-persist", action="store_true", help="Do not load or save state")
	run.set_defaults(handler=_cmd_run)

	check = sub.add_parser("check", help="Probe connectivity once")
	check.set_defaults(handler=_cmd_check)

	status = sub.add_parser("status", help="Show the last saved connection state")
	status.add_argument("--json", action="store_true", help="Output JSON")
	status.set_defaults(handler=_cmd_status)

	history = sub.add_parser("history", help="Show recent status events")
	history.add_argument("--limit", type=int, default=20, help="Number of events to show")
	history.add_argument("--json", action="store_true", help="Output JSON")
	history.set_defaults(handler=_cmd_history)

	serve = sub.add_parser("serve", help="Run the HTTP status API")
	serve.add_argument("--host", default="127.0.0.1")
	serve.add_argument("--port", type=int, default=8000)
	serve.set_defaults(handler=_cmd_serve)

	return parser


def main(argv: Optional[List[str]] = None) -> int:
	parser = _build_parser()
	args = parser.parse_args(argv)
	try:
		return asyncio.run(args.handler(args))
	except (ConfigError, ValueError) as exc:
		parser.error(str(exc))


if __name__ == "__main__":
	sys.exit(main())
