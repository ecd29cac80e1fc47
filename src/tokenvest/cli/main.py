#!/usr/bin/env python3
"""
tokenvest CLI - Vesting Stream Ledger Commands

Operates on a persisted registry snapshot:
- Registry initialisation and account funding
- Stream creation and claims
- Claimable/stream/balance queries
- Pure vested-amount calculation
- Two-phase admin handover
"""

from __future__ import annotations

import json
import logging
import sys
import time
from typing import Any, Dict, Optional

try:
    import click
    from rich import box
    from rich.console import Console
    from rich.table import Table
except ImportError:
    print("ERROR: Required packages not installed. Install with:")
    print("  pip install click rich")
    sys.exit(1)

from tokenvest.core import vesting_math
from tokenvest.core.config import AdmissionMode, load_settings
from tokenvest.core.events import LoggingEventSink
from tokenvest.core.exceptions import VestingError
from tokenvest.core.registry_factory import build_registry, restore, snapshot
from tokenvest.core.registry_storage import RegistryStorage
from tokenvest.core.stream_registry import StreamRegistry, validate_schedule
from tokenvest.core.structured_logger import LogContext, get_structured_logger
from tokenvest.core.vesting_math import CliffPolicy

logger = logging.getLogger(__name__)
console = Console()

CLIFF_CHOICES = [p.value for p in CliffPolicy]
ADMISSION_CHOICES = [m.value for m in AdmissionMode]


def _cli_fail(exc: Exception, exit_code: int = 1) -> None:
    """Centralized CLI error handler for consistent messaging/exit codes."""
    logger.error("CLI error: %s", exc, exc_info=not isinstance(exc, VestingError))
    console.print(f"[bold red]Error:[/] {exc}")
    sys.exit(exit_code)


def _clock(ctx: click.Context):
    fixed = ctx.obj.get("now")
    if fixed is not None:
        return lambda: fixed
    return lambda: int(time.time())


def _event_sink(ctx: click.Context) -> LoggingEventSink:
    settings = ctx.obj["settings"]
    return LoggingEventSink(
        get_structured_logger(log_dir=settings.log_dir or None, log_level=settings.log_level)
    )


def _load_registry(ctx: click.Context) -> StreamRegistry:
    storage: RegistryStorage = ctx.obj["storage"]
    state = storage.load_from_disk()
    if state is None:
        raise click.ClickException(
            f"No registry at {storage.state_file}. Run 'tokenvest init' first."
        )
    registry, _ = restore(state, event_sink=_event_sink(ctx), time_provider=_clock(ctx))
    return registry


def _save_registry(ctx: click.Context, registry: StreamRegistry) -> None:
    ctx.obj["storage"].save_to_disk(snapshot(registry))


def _emit(ctx: click.Context, payload: Dict[str, Any], title: str) -> None:
    if ctx.obj.get("json_output"):
        click.echo(json.dumps(payload, indent=2, sort_keys=True))
        return

    table = Table(title=title, box=box.ROUNDED, show_header=True, header_style="bold cyan")
    table.add_column("Field", style="bold")
    table.add_column("Value")
    for key, value in payload.items():
        table.add_row(str(key), str(value))
    console.print(table)


@click.group()
@click.option(
    "--state-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Registry snapshot path (defaults to TOKENVEST_STATE_FILE)",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="YAML configuration file",
)
@click.option("--now", type=int, default=None, help="Override the current time (unix seconds)")
@click.option("--json-output", is_flag=True, help="Output raw JSON")
@click.pass_context
def cli(
    ctx: click.Context,
    state_file: Optional[str],
    config_file: Optional[str],
    now: Optional[int],
    json_output: bool,
):
    """tokenvest - time-release allocation ledger."""
    try:
        settings = load_settings(config_file)
    except VestingError as exc:
        _cli_fail(exc)

    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings
    ctx.obj["storage"] = RegistryStorage(state_file or settings.state_file)
    ctx.obj["now"] = now
    ctx.obj["json_output"] = json_output
    # One correlation ID per invocation, released when the context closes
    ctx.with_resource(LogContext())


@cli.command("init")
@click.option("--admin", required=True, help="Admin address")
@click.option("--cliff-policy", type=click.Choice(CLIFF_CHOICES), default=None)
@click.option("--admission", type=click.Choice(ADMISSION_CHOICES), default=None)
@click.option("--stream-creator", default=None, help="Additional identity allowed to create streams")
@click.option("--force", is_flag=True, help="Overwrite an existing registry")
@click.pass_context
def init_registry(
    ctx: click.Context,
    admin: str,
    cliff_policy: Optional[str],
    admission: Optional[str],
    stream_creator: Optional[str],
    force: bool,
):
    """
    Create an empty registry.

    Example:
        tokenvest init --admin 0xadmin --cliff-policy immediate
    """
    storage: RegistryStorage = ctx.obj["storage"]
    if storage.exists() and not force:
        raise click.ClickException(f"Registry already exists at {storage.state_file} (use --force)")

    settings = ctx.obj["settings"]
    if cliff_policy:
        settings.cliff_policy = cliff_policy
    if admission:
        settings.admission_policy = admission

    try:
        registry = build_registry(
            settings,
            admin,
            stream_creator=stream_creator,
            event_sink=_event_sink(ctx),
            time_provider=_clock(ctx),
        )
        _save_registry(ctx, registry)
    except VestingError as exc:
        _cli_fail(exc)

    _emit(ctx, registry.get_registry_stats(), "Registry initialized")


@cli.command("fund")
@click.argument("address")
@click.argument("amount", type=int)
@click.pass_context
def fund(ctx: click.Context, address: str, amount: int):
    """Mint AMOUNT units to ADDRESS in the custody ledger."""
    try:
        registry = _load_registry(ctx)
        registry.custody.mint(address, amount)
        _save_registry(ctx, registry)
    except VestingError as exc:
        _cli_fail(exc)

    _emit(ctx, {"address": address.lower(), "balance": registry.custody.balance(address)}, "Funded")


@cli.command("create")
@click.option("--caller", required=True, help="Identity creating and funding the stream")
@click.option("--beneficiary", required=True)
@click.option("--amount", type=int, required=True)
@click.option("--start", "start_time", type=int, required=True, help="Unlock start (unix seconds)")
@click.option("--cliff", type=int, default=0, show_default=True, help="Cliff duration or amount")
@click.option("--duration", type=int, required=True, help="Linear unlock window (seconds)")
@click.pass_context
def create_stream(
    ctx: click.Context,
    caller: str,
    beneficiary: str,
    amount: int,
    start_time: int,
    cliff: int,
    duration: int,
):
    """Create a vesting stream funded from CALLER's balance."""
    try:
        registry = _load_registry(ctx)
        stream_id = registry.create_vesting_stream(
            caller, beneficiary, amount, start_time, cliff, duration
        )
        _save_registry(ctx, registry)
    except VestingError as exc:
        _cli_fail(exc)

    _emit(ctx, registry.get_vesting_stream(stream_id).to_dict(), "Stream created")


@cli.command("claim")
@click.option("--caller", required=True)
@click.option("--stream-id", default=None, help="Stream handle (instance admission)")
@click.pass_context
def claim(ctx: click.Context, caller: str, stream_id: Optional[str]):
    """Release all unlocked, unclaimed units to the beneficiary."""
    try:
        registry = _load_registry(ctx)
        amount = registry.claim_tokens(caller, stream_id)
        _save_registry(ctx, registry)
    except VestingError as exc:
        _cli_fail(exc)

    ref = stream_id or caller.lower()
    _emit(
        ctx,
        {
            "stream_id": ref,
            "claimed": amount,
            "completed": not registry.exists_vesting_stream(ref)
            or registry.get_vesting_stream(ref).is_fully_claimed,
        },
        "Claimed",
    )


@cli.command("claimable")
@click.argument("stream_ref")
@click.pass_context
def claimable(ctx: click.Context, stream_ref: str):
    """Show the claimable amount of a stream (beneficiary or handle)."""
    try:
        registry = _load_registry(ctx)
        amount = registry.get_claimable_amount(stream_ref)
    except VestingError as exc:
        _cli_fail(exc)

    _emit(ctx, {"stream_ref": stream_ref.lower(), "claimable": amount}, "Claimable")


@cli.command("show")
@click.argument("stream_ref")
@click.pass_context
def show(ctx: click.Context, stream_ref: str):
    """Show the raw fields of a stream."""
    try:
        registry = _load_registry(ctx)
        stream = registry.get_vesting_stream(stream_ref)
    except VestingError as exc:
        _cli_fail(exc)

    payload = stream.to_dict()
    payload["claimable"] = registry.get_claimable_amount(stream_ref)
    _emit(ctx, payload, "Stream")


@cli.command("list")
@click.option("--beneficiary", default=None)
@click.pass_context
def list_streams(ctx: click.Context, beneficiary: Optional[str]):
    """List streams, optionally for one beneficiary."""
    try:
        registry = _load_registry(ctx)
        streams = (
            registry.get_streams_for_beneficiary(beneficiary)
            if beneficiary
            else registry.list_streams()
        )
    except VestingError as exc:
        _cli_fail(exc)

    if ctx.obj.get("json_output"):
        click.echo(json.dumps([s.to_dict() for s in streams], indent=2, sort_keys=True))
        return

    table = Table(title="Vesting Streams", box=box.ROUNDED, header_style="bold cyan")
    for column in ("Stream", "Beneficiary", "Total", "Claimed", "Unlock End"):
        table.add_column(column)
    for stream in streams:
        table.add_row(
            stream.stream_id,
            stream.beneficiary,
            str(stream.total_amount),
            str(stream.claimed_amount),
            str(stream.unlock_end_time),
        )
    console.print(table)


@cli.command("balance")
@click.argument("address")
@click.pass_context
def balance(ctx: click.Context, address: str):
    """Show the custody balance of ADDRESS."""
    try:
        registry = _load_registry(ctx)
    except VestingError as exc:
        _cli_fail(exc)

    _emit(ctx, {"address": address.lower(), "balance": registry.custody.balance(address)}, "Balance")


@cli.command("stats")
@click.pass_context
def stats(ctx: click.Context):
    """Show registry totals."""
    try:
        registry = _load_registry(ctx)
    except VestingError as exc:
        _cli_fail(exc)

    _emit(ctx, registry.get_registry_stats(), "Registry")


@cli.command("calc")
@click.option("--amount", type=int, required=True)
@click.option("--start", "start_time", type=int, required=True)
@click.option("--cliff", type=int, default=0, show_default=True)
@click.option("--duration", type=int, required=True)
@click.option("--cliff-policy", type=click.Choice(CLIFF_CHOICES), default=None)
@click.pass_context
def calc(
    ctx: click.Context,
    amount: int,
    start_time: int,
    cliff: int,
    duration: int,
    cliff_policy: Optional[str],
):
    """Calculate the unlocked amount for arbitrary parameters (no stored stream)."""
    policy = CliffPolicy.parse(cliff_policy or ctx.obj["settings"].cliff_policy)
    try:
        validate_schedule(amount, cliff, duration, policy)
    except VestingError as exc:
        _cli_fail(exc)

    now = _clock(ctx)()
    unlocked = vesting_math.unlocked_amount(amount, start_time, cliff, duration, now, policy)
    _emit(
        ctx,
        {
            "now": now,
            "cliff_policy": policy.value,
            "unlocked": unlocked,
            "unlock_begin_time": vesting_math.unlock_begin_time(start_time, cliff, policy),
            "unlock_end_time": vesting_math.unlock_end_time(start_time, cliff, duration, policy),
        },
        "Vested amount",
    )


@cli.group("admin")
def admin():
    """Admin handover and role commands."""
    pass


@admin.command("propose")
@click.option("--caller", required=True)
@click.option("--new-admin", required=True)
@click.pass_context
def admin_propose(ctx: click.Context, caller: str, new_admin: str):
    """Nominate NEW_ADMIN; the current admin keeps control until it accepts."""
    try:
        registry = _load_registry(ctx)
        registry.set_pending_admin(caller, new_admin)
        _save_registry(ctx, registry)
    except VestingError as exc:
        _cli_fail(exc)

    _emit(ctx, registry.access_control.to_dict(), "Admin")


@admin.command("accept")
@click.option("--caller", required=True)
@click.pass_context
def admin_accept(ctx: click.Context, caller: str):
    """Accept a pending admin nomination."""
    try:
        registry = _load_registry(ctx)
        registry.accept_admin(caller)
        _save_registry(ctx, registry)
    except VestingError as exc:
        _cli_fail(exc)

    _emit(ctx, registry.access_control.to_dict(), "Admin")


@admin.command("set-creator")
@click.option("--caller", required=True)
@click.option("--creator", default=None, help="Stream creator address (omit to clear)")
@click.pass_context
def admin_set_creator(ctx: click.Context, caller: str, creator: Optional[str]):
    """Assign or clear the legacy stream creator role."""
    try:
        registry = _load_registry(ctx)
        registry.set_stream_creator(caller, creator)
        _save_registry(ctx, registry)
    except VestingError as exc:
        _cli_fail(exc)

    _emit(ctx, registry.access_control.to_dict(), "Admin")


def main():
    """Console script entry point."""
    return cli(obj={})


if __name__ == "__main__":
    sys.exit(main() or 0)
