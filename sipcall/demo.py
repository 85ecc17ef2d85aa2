"""Command-line demo driving the SIP call engine against a real trunk.

This script registers with a trunk, optionally pings it with OPTIONS,
places one call, sends a DTMF digit string once the call is answered and
hangs up, logging lifecycle events as they arrive. Settings not given on the
command line are read from ``SIP_*`` environment variables. It is intended
for manual experimentation rather than automated testing.
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn

from . import (
	CallEnded,
	CallFailed,
	CallRinging,
	CallState,
	ConfigurationError,
	DigitSent,
	EngineConfig,
	RegistrationFailed,
	RegistrationState,
	SessionEngine,
	SipCallError,
)


CONSOLE = Console()


def _ringing_handler(event: CallRinging) -> None:
	logging.info(f"Ringing {event.destination} ({event.call_id})")


def _digit_handler(event: DigitSent) -> None:
	logging.info(f"DTMF {event.digit} sent")


def _failed_handler(event: CallFailed) -> None:
	code = f" [{event.status_code}]" if event.status_code else ""
	logging.warning(f"Call to {event.destination} failed: {event.reason}{code}")


def _registration_failed_handler(event: RegistrationFailed) -> None:
	logging.warning(f"Registration failed: {event.error}")


def _ended_handler(event: CallEnded) -> None:
	logging.info(f"Call hangup from {event.initiator}")


_EVENT_HANDLERS = [
	(CallRinging, _ringing_handler),
	(DigitSent, _digit_handler),
	(CallFailed, _failed_handler),
	(RegistrationFailed, _registration_failed_handler),
	(CallEnded, _ended_handler),
]


def _build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(description="Place a call through a SIP trunk")
	parser.add_argument("destination", nargs="?", help="Number or SIP URI to call")
	parser.add_argument("--host", help="Trunk host (SIP_HOST)")
	parser.add_argument("--port", type=int, help="Trunk port (SIP_PORT)")
	parser.add_argument("--username", help="Account username (SIP_USERNAME)")
	parser.add_argument("--password", help="Digest password (SIP_PASSWORD)")
	parser.add_argument("--domain", help="Account domain (SIP_DOMAIN, defaults to host)")
	parser.add_argument("--caller-id", help="Caller identity (SIP_CALLER_ID, defaults to username)")
	parser.add_argument("--public-host", help="Address advertised in Contact/Via")
	parser.add_argument("--local-port", type=int, help="Local UDP port (0 picks one)")
	parser.add_argument(
		"--digits",
		default="",
		help="DTMF digits to send once the call is established",
	)
	parser.add_argument(
		"--digit-interval",
		type=float,
		default=0.5,
		help="Seconds between DTMF digits",
	)
	parser.add_argument(
		"--hold",
		type=float,
		default=2.0,
		help="Seconds to keep the call up before hanging up",
	)
	parser.add_argument(
		"--skip-options",
		action="store_true",
		help="Skip the OPTIONS connectivity check",
	)
	parser.add_argument(
		"--log-level",
		default="INFO",
		choices={"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"},
		help="Logging verbosity",
	)
	parser.add_argument(
		"--debug",
		action="store_true",
		help="Shortcut for --log-level=DEBUG, including raw SIP traffic",
	)
	return parser


def _configure_logging(level: str, debug: bool) -> None:
	effective_level = "DEBUG" if debug else level
	logging.basicConfig(
		level=getattr(logging, effective_level.upper(), logging.INFO),
		format="%(message)s",
		handlers=[
			RichHandler(
				console=CONSOLE,
				rich_tracebacks=True,
				show_path=False,
				show_time=False,
			)
		],
		force=True,
	)
	logging.getLogger("sipcall").setLevel(logging.getLogger().level)


def _load_config(args: argparse.Namespace) -> EngineConfig:
	overrides = {
		name: value
		for name, value in (
			("host", args.host),
			("port", args.port),
			("username", args.username),
			("password", args.password),
			("domain", args.domain),
			("caller_id", args.caller_id),
			("public_host", args.public_host),
			("local_port", args.local_port),
		)
		if value is not None
	}
	return EngineConfig.from_env(**overrides).validate()


async def _run_demo(args: argparse.Namespace) -> int:
	_configure_logging(args.log_level, args.debug)

	try:
		config = _load_config(args)
	except ConfigurationError as exc:
		logging.error(str(exc))
		return 2

	register_result = "Not attempted"
	options_result = "Not attempted"
	call_result = "Not attempted"
	digits_result = "Not attempted"
	hangup_result = "Not attempted"

	try:
		async with SessionEngine(config) as engine:
			for event, handler in _EVENT_HANDLERS:
				engine.on(event, handler)

			with Progress(
				SpinnerColumn(),
				TextColumn("[progress.description]{task.description}"),
				console=CONSOLE,
				transient=True,
			) as progress:
				register_task = progress.add_task("[cyan]REGISTER[/] in progress", total=1)
				state = await engine.register()
				if state != RegistrationState.REGISTERED:
					register_result = f"Failed ({engine.last_error})"
					progress.update(register_task, advance=1, description="[red]REGISTER failed")
				else:
					register_result = "OK"
					progress.update(register_task, advance=1, description="[green]REGISTER ok")

				if args.skip_options:
					options_result = "Skipped (requested)"
				else:
					options_task = progress.add_task("[cyan]OPTIONS[/] in progress", total=1)
					response = await engine.ping()
					if response is None:
						logging.warning("OPTIONS request timed out")
						options_result = "Timed out"
						progress.update(options_task, advance=1, description="[red]OPTIONS timed out")
					else:
						status_line = f"{response.status_code} {response.reason_phrase}"
						logging.info(f"OPTIONS {status_line}")
						options_result = status_line
						progress.update(options_task, advance=1, description=f"[green]OPTIONS {status_line}")

				if state != RegistrationState.REGISTERED:
					call_result = "Skipped (not registered)"
				elif not args.destination:
					call_result = "Skipped (no destination)"
				else:
					call_task = progress.add_task(f"[cyan]INVITE[/] {args.destination}", total=1)
					call = engine.place_call(args.destination)
					outcome = await call
					if outcome == CallState.ESTABLISHED:
						call_result = f"Established ({call.call_id})"
						progress.update(call_task, advance=1, description="[green]INVITE answered")
					else:
						call_result = f"Failed ({call.failure_reason})"
						progress.update(call_task, advance=1, description="[red]INVITE failed")

			if engine.is_call_active:
				digits_result = await _send_digits(engine, args.digits, args.digit_interval)
				if args.hold > 0:
					logging.info(f"Holding the call for {args.hold:.1f} seconds")
					await asyncio.sleep(args.hold)
				if engine.is_call_active:
					await engine.hang_up()
					hangup_result = f"Local ({engine.current_call.duration:.1f}s)"
				else:
					hangup_result = "Remote"

			status = engine.call_status()
			logging.debug(f"Final call status: {status}")

	except SipCallError as exc:
		logging.exception(f"Demo failed: {exc}")
		return 1

	summary_lines = [
		f"[bold]REGISTER[/]: {register_result}",
		f"[bold]OPTIONS[/]: {options_result}",
		f"[bold]INVITE[/]: {call_result}",
		f"[bold]DTMF[/]: {digits_result}",
		f"[bold]BYE[/]: {hangup_result}",
	]
	CONSOLE.print(Panel("\n".join(summary_lines), title="Call Summary", border_style="green"))
	logging.info("Demo finished")
	return 0


async def _send_digits(engine: SessionEngine, digits: str, interval: float) -> str:
	if not digits:
		return "None requested"
	sent = 0
	for digit in digits:
		if not engine.is_call_active:
			break
		response = await engine.send_digit(digit)
		if response is not None:
			sent += 1
		await asyncio.sleep(interval)
	return f"{sent}/{len(digits)} acknowledged"


def main() -> int:
	parser = _build_parser()
	args = parser.parse_args()
	return asyncio.run(_run_demo(args))


if __name__ == "__main__":
	raise SystemExit(main())
