"""otpkeep: keep one OTP authenticator record on disk and use it.

Commands
--------
  new        Create a record document from a base32 secret
  show       Show the record's name, type, flags and settings
  code       Print the current code (optionally copy it to the clipboard)
  uri        Print the otpauth:// URI for other authenticator apps
  set        Change the name or display flags
  protect    Encrypt the secret with a password
  unprotect  Store the secret unencrypted again
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table
from rich.theme import Theme

from .authenticators import (
    BattleNetAuthenticator,
    HMACType,
    HOTPAuthenticator,
    SteamAuthenticator,
    TOTPAuthenticator,
    decode_base32,
)
from .crypto import BadPasswordError
from .document import load, save
from .log import setup_logging
from .record import Record, RecordChange
from .uri import to_uri

# ---------------------------------------------------------------------------
# App & consoles
# ---------------------------------------------------------------------------

_THEME = Theme(
    {
        "success": "bold green",
        "warning": "bold yellow",
        "danger": "bold red",
        "muted": "dim",
        "label": "cyan",
        "highlight": "bold white",
    }
)

console = Console(theme=_THEME)
err = Console(stderr=True, theme=_THEME)

app = typer.Typer(
    name="otpkeep",
    help="[bold cyan]otpkeep[/bold cyan]: one-time password records on disk.",
    no_args_is_help=True,
    pretty_exceptions_show_locals=False,
    rich_markup_mode="rich",
)

_VARIANTS = {
    "totp": TOTPAuthenticator,
    "hotp": HOTPAuthenticator,
    "battlenet": BattleNetAuthenticator,
    "steam": SteamAuthenticator,
}

FileOption = Annotated[
    Optional[Path],
    typer.Option("--file", "-f", help="Record document path.", show_default=False),
]


@app.callback()
def _main() -> None:
    setup_logging()


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _get_record_path(path: Optional[Path] = None) -> Path:
    if path:
        return path
    env = os.environ.get("OTPKEEP_FILE")
    if env:
        return Path(env)
    if sys.platform == "win32":
        base = Path(os.environ.get("APPDATA", Path.home()))
    else:
        base = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))
    return base / "otpkeep" / "record.xml"


def _open(path: Path, *, unlock: bool = True) -> Record:
    """Load the record at *path*, prompting for a password if the secret is locked."""
    if not path.exists():
        err.print(f"[danger]No record found at {path}.[/danger] Run [bold]otpkeep new[/bold] first.")
        raise typer.Exit(1)

    try:
        record, result = load(path)
    except (KeyError, ValueError) as exc:
        err.print(f"[danger]Cannot read {path}: {exc}[/danger]")
        raise typer.Exit(1) from exc

    if result.changed:
        save(record, path)
        console.print("[muted]Record upgraded to the current format.[/muted]")

    if unlock and record.authenticator_data is not None and record.authenticator_data.is_locked:
        password = Prompt.ask("Password", password=True, console=console)
        try:
            record.unlock(password)
        except BadPasswordError as exc:
            err.print(f"[danger]{exc}[/danger]")
            raise typer.Exit(1) from exc
    return record


def _save_on_change(record: Record, path: Path) -> None:
    def listener(rec: Record, change: RecordChange) -> None:
        save(rec, path)

    record.add_listener(listener)


def _yes_no(value: bool) -> str:
    return "[green]yes[/green]" if value else "[red]no[/red]"


def _render_record(record: Record) -> None:
    data = record.authenticator_data

    table = Table(box=box.SIMPLE, show_header=False, padding=(0, 2))
    table.add_column("Key", style="label")
    table.add_column("Value", style="highlight")
    table.add_row("Type", type(data).__name__ if data else "[muted]none[/muted]")
    if data is not None:
        table.add_row("Issuer", data.issuer or "[muted]-[/muted]")
        table.add_row("Algorithm", data.hmac_type.value)
        table.add_row("Digits", str(data.code_digits))
        table.add_row("Period", f"{data.period}s")
        if isinstance(data, HOTPAuthenticator):
            table.add_row("Counter", str(data.counter))
        if isinstance(data, BattleNetAuthenticator) and not record.hide_serial:
            table.add_row("Serial", data.serial)
        if isinstance(data, SteamAuthenticator):
            table.add_row("Device", data.device_id or "[muted]-[/muted]")
        table.add_row("Protected", _yes_no(data.encrypted_secret is not None))
    table.add_row("Auto refresh", _yes_no(record.auto_refresh))
    table.add_row("Allow copy", _yes_no(record.allow_copy))
    table.add_row("Copy on code", _yes_no(record.copy_on_code))
    table.add_row("Hide serial", _yes_no(record.hide_serial))
    table.add_row("Created", record.created.strftime("%Y-%m-%d %H:%M"))
    table.add_row("ID", str(record.id)[:8] + "…")

    console.print(
        Panel(table, title=f"[bold cyan]{record.name or 'unnamed'}[/bold cyan]", expand=False, border_style="cyan")
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def new(
    name: Annotated[str, typer.Argument(help="Display name, e.g. 'Example (alice@example.com)'.")],
    secret: Annotated[str, typer.Option("--secret", "-s", help="Base32 secret from the provider.")],
    kind: Annotated[str, typer.Option("--type", "-t", help="totp, hotp, battlenet or steam.")] = "totp",
    issuer: Annotated[Optional[str], typer.Option("--issuer", "-i", help="Issuer name.")] = None,
    digits: Annotated[Optional[int], typer.Option("--digits", "-d", help="Code length.")] = None,
    period: Annotated[int, typer.Option("--period", help="Seconds per code.")] = 30,
    algorithm: Annotated[str, typer.Option("--algorithm", "-a", help="SHA1, SHA256 or SHA512.")] = "SHA1",
    counter: Annotated[int, typer.Option("--counter", help="Initial HOTP counter.")] = 0,
    serial: Annotated[Optional[str], typer.Option("--serial", help="Battle.net serial.")] = None,
    file: FileOption = None,
) -> None:
    """Create a new record document."""
    path = _get_record_path(file)
    if path.exists() and not Confirm.ask(
        f"[warning]{path} already exists. Overwrite?[/warning]", default=False, console=console
    ):
        raise typer.Exit(0)

    variant = _VARIANTS.get(kind.lower())
    if variant is None:
        err.print(f"[danger]Unknown type '{kind}'. Use one of: {', '.join(_VARIANTS)}.[/danger]")
        raise typer.Exit(1)
    try:
        key = decode_base32(secret)
        hmac_type = HMACType(algorithm.upper())
    except ValueError as exc:
        err.print(f"[danger]{exc}[/danger]")
        raise typer.Exit(1) from exc

    data = variant(secret_key=key, hmac_type=hmac_type, period=period)
    if issuer is not None:
        data.issuer = issuer
    if digits is not None:
        data.code_digits = digits
    if isinstance(data, HOTPAuthenticator):
        data.counter = counter
    if isinstance(data, BattleNetAuthenticator) and serial:
        data.serial = serial

    record = Record(name=name, authenticator_data=data)
    save(record, path)
    console.print(f"[success]Record '[bold]{name}[/bold]' created →[/success] [bold]{path}[/bold]")


@app.command()
def show(file: FileOption = None) -> None:
    """Show the record's settings (never the secret)."""
    record = _open(_get_record_path(file), unlock=False)
    _render_record(record)


@app.command()
def code(
    copy: Annotated[bool, typer.Option("--copy", "-c", help="Copy the code to the clipboard.")] = False,
    retries: Annotated[int, typer.Option("--retries", help="Retries while the clipboard is busy.")] = 3,
    file: FileOption = None,
) -> None:
    """Print the current code."""
    path = _get_record_path(file)
    record = _open(path)
    _save_on_change(record, path)

    current = record.current_code()
    if current is None:
        err.print("[danger]Record has no usable authenticator.[/danger]")
        raise typer.Exit(1)
    console.print(f"[bold green]{current}[/bold green]")

    if copy or record.copy_on_code:
        if record.copy_code_to_clipboard(code=current, retries=retries):
            console.print("[success]Code copied to clipboard.[/success]")
        else:
            console.print("[warning]Could not access clipboard.[/warning]")


@app.command()
def uri(
    compat: Annotated[bool, typer.Option("--compat", help="Leave out Steam-only parameters.")] = False,
    file: FileOption = None,
) -> None:
    """Print the otpauth:// URI (it contains the secret, handle with care)."""
    record = _open(_get_record_path(file))
    try:
        console.print(to_uri(record, compat=compat), soft_wrap=True, highlight=False, markup=False)
    except ValueError as exc:
        err.print(f"[danger]{exc}[/danger]")
        raise typer.Exit(1) from exc


@app.command("set")
def set_cmd(
    name: Annotated[Optional[str], typer.Option("--name", help="New display name.")] = None,
    auto_refresh: Annotated[Optional[bool], typer.Option("--auto-refresh/--no-auto-refresh")] = None,
    allow_copy: Annotated[Optional[bool], typer.Option("--allow-copy/--no-allow-copy")] = None,
    copy_on_code: Annotated[Optional[bool], typer.Option("--copy-on-code/--no-copy-on-code")] = None,
    hide_serial: Annotated[Optional[bool], typer.Option("--hide-serial/--no-hide-serial")] = None,
    file: FileOption = None,
) -> None:
    """Change the record's name or display flags."""
    path = _get_record_path(file)
    record = _open(path, unlock=False)

    changed: list[str] = []
    record.add_listener(lambda rec, change: changed.append(change.property or ""))

    if name is not None:
        record.name = name
    if auto_refresh is not None:
        record.auto_refresh = auto_refresh
    if allow_copy is not None:
        record.allow_copy = allow_copy
    if copy_on_code is not None:
        record.copy_on_code = copy_on_code
    if hide_serial is not None:
        record.hide_serial = hide_serial

    if not changed:
        console.print("[muted]No changes made.[/muted]")
        return

    save(record, path)
    console.print(f"[success]Updated:[/success] {', '.join(changed)}")


@app.command()
def protect(file: FileOption = None) -> None:
    """Encrypt the secret with a password."""
    path = _get_record_path(file)
    record = _open(path)
    if record.authenticator_data is None:
        err.print("[danger]Record has no authenticator.[/danger]")
        raise typer.Exit(1)

    pw = Prompt.ask("  New password", password=True, console=console)
    if not pw:
        err.print("[danger]Password cannot be empty.[/danger]")
        raise typer.Exit(1)
    confirm = Prompt.ask("  Confirm password", password=True, console=console)
    if pw != confirm:
        err.print("[danger]Passwords do not match.[/danger]")
        raise typer.Exit(1)

    record.authenticator_data.lock(pw)
    save(record, path)
    console.print("[success]Secret protected.[/success]")


@app.command()
def unprotect(file: FileOption = None) -> None:
    """Store the secret without a password."""
    path = _get_record_path(file)
    record = _open(path)
    if record.authenticator_data is None or record.authenticator_data.encrypted_secret is None:
        console.print("[muted]Secret is not protected.[/muted]")
        return

    record.authenticator_data.remove_protection()
    save(record, path)
    console.print("[warning]Secret is now stored unencrypted.[/warning]")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main() -> None:
    app()


if __name__ == "__main__":
    main()
