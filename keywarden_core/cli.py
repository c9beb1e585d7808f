"""
keywarden command line.

    keywarden key list
    keywarden key link [FINGERPRINT]
    keywarden key create [--email EMAIL]
    keywarden key rotate [--dry-run]
    keywarden key rotate automatic [--cron-output]
    keywarden schedule enable|disable

The ``cmd_*`` functions do the work and write to a text stream; the typer
commands only resolve the run context and turn results into exit codes.
"""

from contextlib import contextmanager
from enum import Enum
from typing import Callable, Iterator, Optional, TextIO
import sys

import typer

from keywarden_core import __version__
from keywarden_core.config import build_context, load_config
from keywarden_core.context import MaintenanceContext
from keywarden_core.errors import KeywardenError
from keywarden_core.formatting import format_outcome, format_summary, format_warning_lines
from keywarden_core.keys import create_key, keys_available_to_link, link_key, list_managed_keys
from keywarden_core.logger import configure_for_cli, get_logger
from keywarden_core.maintenance import ROTATE, run_maintenance
from keywarden_core.policy import classify
from keywarden_core.scheduler import Crontab

log = get_logger("keywarden.cli")

Reader = Callable[[str], str]


def _ask(message: str) -> str:
    return typer.prompt(message, default="", show_default=False)


def _ask_secret(message: str) -> str:
    return typer.prompt(message, default="", show_default=False, hide_input=True)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
def cmd_list(ctx: MaintenanceContext, out: TextIO) -> int:
    keys = list_managed_keys(ctx)
    if not keys:
        out.write("No keys are managed yet. Run `keywarden key create` or `keywarden key link`.\n")
        return 0

    now = ctx.now()
    for listing in keys:
        last = ctx.store.get_last_action(ROTATE, listing.fingerprint)
        state = classify(listing.expiry, listing.working_expiry, last, now, ctx.policy)
        warnings = format_warning_lines(state) or ["Good"]
        created = f"{listing.created:%d %B %Y}" if listing.created else "unknown"
        out.write(f"{listing.display_name()}\n    {listing.fingerprint}\n    created {created}\n")
        for line in warnings:
            out.write(f"    {line}\n")
        out.write("\n")
    return 0


def cmd_link(ctx: MaintenanceContext, out: TextIO, fingerprint: Optional[str], read: Reader = _ask) -> int:
    if fingerprint:
        link_key(ctx, fingerprint)
        out.write("The key has been linked to keywarden\n")
        return 0

    available = keys_available_to_link(ctx)
    if not available:
        out.write("No secret keys found in GnuPG that aren't already linked\n")
        return 1

    out.write(f"Found {len(available)} key{'s' if len(available) != 1 else ''} in GnuPG:\n\n")
    for number, listing in enumerate(available, start=1):
        out.write(f"{str(number) + '.':<4}{listing.fingerprint}\n")
        for uid in listing.uids:
            out.write(f"      {uid}\n")
    out.write("\n")

    while True:
        out.flush()
        answer = read(f"Which key would you like to link? [1-{len(available)}, blank to cancel]").strip()
        if not answer:
            out.write("No key selected to link\n")
            return 0
        if answer.isdigit() and 1 <= int(answer) <= len(available):
            break
        out.write(f"Please select between 1 and {len(available)}.\n")

    link_key(ctx, available[int(answer) - 1].fingerprint)
    out.write("The key has been linked to keywarden\n")
    return 0


def cmd_create(
    ctx: MaintenanceContext,
    out: TextIO,
    email: Optional[str],
    read: Reader = _ask,
    read_secret: Reader = _ask_secret,
) -> int:
    if not email:
        out.flush()
        email = read("[email]").strip()
    if not email:
        out.write("An email address is needed to create a key\n")
        return 1

    def collect_password() -> str:
        for _ in range(2):
            password = read_secret("Password for the new key")
            if password and read_secret("Repeat password") == password:
                return password
            out.write("That didn't match.\n")
        raise KeywardenError("password not confirmed")

    out.write(f"Generating key for {email}\n")
    fingerprint = create_key(ctx, email, collect_password)
    out.write(f"Created {fingerprint}; inspect it with:\n > gpg --list-keys '{email}'\n")
    return 0


def cmd_rotate(ctx: MaintenanceContext, out: TextIO, dry_run: bool, automatic: bool, cron_output: bool) -> int:
    report = run_maintenance(ctx, dry_run=dry_run, automatic_mode=automatic)

    for outcome in report.outcomes:
        if cron_output and not outcome.failed:
            continue
        out.write(format_outcome(outcome) + "\n")

    if not (cron_output and report.ok):
        out.write(format_summary(report) + "\n")
    return 0 if report.ok else 1


def cmd_schedule(out: TextIO, action: str, crontab: Optional[Crontab] = None) -> int:
    crontab = crontab or Crontab()
    if action == "enable":
        changed = crontab.enable()
        out.write("Added keywarden to crontab.\n" if changed else "keywarden is already in crontab.\n")
    else:
        changed = crontab.disable()
        out.write("Removed keywarden from crontab.\n" if changed else "keywarden is not in crontab.\n")
    return 0


# ---------------------------------------------------------------------------
# typer wiring
# ---------------------------------------------------------------------------
app = typer.Typer(help="Keep OpenPGP keys healthy.", no_args_is_help=True, add_completion=False)
key_app = typer.Typer(help="Manage keys", no_args_is_help=True)
app.add_typer(key_app, name="key")


class RotateMode(str, Enum):
    automatic = "automatic"


class ScheduleAction(str, Enum):
    enable = "enable"
    disable = "disable"


def _maintenance_context(ctx: typer.Context) -> MaintenanceContext:
    """The context passed in as ``obj`` (tests), else one built from config."""
    if ctx.obj is None:
        cfg = load_config()
        cfg.ensure_directory()
        configure_for_cli(cfg.log_level, cfg.log_file)
        ctx.obj = build_context(cfg)
    return ctx.obj


@contextmanager
def _exit_on_error(command: str) -> Iterator[None]:
    try:
        yield
    except (KeywardenError, ValueError) as e:
        log.error(f"{command} failed: {e}")
        typer.echo(f"keywarden: {e}", err=True)
        raise typer.Exit(2) from e


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"keywarden {__version__}")
        raise typer.Exit()


@app.callback()
def cli(
    version: bool = typer.Option(False, "--version", callback=_version_callback, is_eager=True, help="Show the version"),
):
    """Track, rotate and schedule rotation of OpenPGP keys kept in GnuPG."""


@key_app.command("list")
def list_command(ctx: typer.Context):
    """List managed keys and their health"""
    with _exit_on_error("key list"):
        code = cmd_list(_maintenance_context(ctx), sys.stdout)
    raise typer.Exit(code)


@key_app.command("link")
def link_command(ctx: typer.Context, fingerprint: Optional[str] = typer.Argument(None, help="Fingerprint of a key in GnuPG")):
    """Start managing a key already in GnuPG"""
    with _exit_on_error("key link"):
        code = cmd_link(_maintenance_context(ctx), sys.stdout, fingerprint)
    raise typer.Exit(code)


@key_app.command("create")
def create_command(ctx: typer.Context, email: Optional[str] = typer.Option(None, "--email", help="Email for the new key")):
    """Create a new key and manage it"""
    with _exit_on_error("key create"):
        code = cmd_create(_maintenance_context(ctx), sys.stdout, email)
    raise typer.Exit(code)


@key_app.command("rotate")
def rotate_command(
    ctx: typer.Context,
    mode: Optional[RotateMode] = typer.Argument(None, help="'automatic' when run unattended"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Only show what would happen"),
    cron_output: bool = typer.Option(False, "--cron-output", help="Only print output on errors"),
):
    """Rotate keys that need it"""
    with _exit_on_error("key rotate"):
        code = cmd_rotate(
            _maintenance_context(ctx),
            sys.stdout,
            dry_run=dry_run,
            automatic=mode is RotateMode.automatic,
            cron_output=cron_output,
        )
    raise typer.Exit(code)


@app.command("schedule")
def schedule_command(action: ScheduleAction = typer.Argument(..., help="enable or disable")):
    """Run automatic rotation from cron"""
    with _exit_on_error("schedule"):
        code = cmd_schedule(sys.stdout, action.value)
    raise typer.Exit(code)


def main() -> None:
    app(prog_name="keywarden")
