"""keycustody command-line tool."""

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from keycustody.cli import __version__
from keycustody.cli.commands import keys
from keycustody.cli.utils.context import CLIContext
from keycustody.cli.utils.output import OutputFormatter
from keycustody.core.config import Settings
from keycustody.core.errors import FormatError
from keycustody.core.keys.fingerprint import fingerprint, sha256_fingerprint
from keycustody.infrastructure.exceptions import InfrastructureError
from keycustody.infrastructure.logging import setup_logging

app = typer.Typer(
    name="keycustody",
    help="keycustody - custody and rotation of the administrative SSH key",
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
    pretty_exceptions_enable=False,
)

console = Console()


def version_callback(value: bool):
    """Display version and exit."""
    if value:
        console.print(f"keycustody v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        "-d",
        help="Enable debug logging",
    ),
    output_format: str = typer.Option(
        "table",
        "--output",
        "-o",
        help="Output format: table, json, yaml",
    ),
):
    """
    keycustody

    Generates, stores, verifies and rotates the administrative SSH keypair.
    """
    settings = Settings()
    setup_logging("DEBUG" if debug else settings.log_level, settings.log_format)

    ctx.obj = CLIContext(
        debug=debug,
        settings=settings,
        formatter=OutputFormatter(output_format, console),
        console=console,
    )


app.add_typer(keys.app, name="key", help="Manage the administrative SSH key")


@app.command("init-db")
def init_db(ctx: typer.Context):
    """
    Create the key store tables.

    Example:
        keycustody init-db
    """
    cli_ctx: CLIContext = ctx.obj

    async def _init():
        async with cli_ctx.database() as connection:
            await connection.create_all()

    try:
        asyncio.run(_init())
    except InfrastructureError as e:
        cli_ctx.formatter.print_error(str(e))
        raise typer.Exit(1)
    cli_ctx.formatter.print_success("Key store tables are ready")


@app.command("fingerprint")
def fingerprint_command(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Public key line or path to a .pub file"),
):
    """
    Print the MD5 and SHA256 fingerprints of a public key.

    Example:
        keycustody fingerprint ~/.ssh/id_rsa.pub
    """
    cli_ctx: CLIContext = ctx.obj

    line = key
    if not key.startswith("ssh-"):
        try:
            line = Path(key).expanduser().read_text().strip()
        except OSError as e:
            cli_ctx.formatter.print_error(f"Cannot read {key}: {e.strerror or e}")
            raise typer.Exit(1)

    try:
        details = {"md5": fingerprint(line), "sha256": sha256_fingerprint(line)}
    except FormatError as e:
        cli_ctx.formatter.print_error(e.message)
        raise typer.Exit(1)
    cli_ctx.formatter.print_detail(details, title="Fingerprint")


if __name__ == "__main__":
    app()
