"""Admin key management commands."""

import asyncio
import functools
from pathlib import Path
from typing import List, Optional

import typer

from keycustody.application.dto.key_dto import KeyRecordDTO, VerificationDTO
from keycustody.application.services.key_rotation import backup_prefix_for
from keycustody.cli.utils.context import CLIContext
from keycustody.core.errors import KeyCustodyError
from keycustody.core.keys.key_types import Match, RotationOutcome
from keycustody.infrastructure.exceptions import InfrastructureError

app = typer.Typer(help="Manage the administrative SSH key")


def run_async(coro):
    return asyncio.run(coro)


def handle_errors(func):
    """Map custody errors to a red message and exit code 1."""

    @functools.wraps(func)
    def wrapper(ctx: typer.Context, *args, **kwargs):
        cli_ctx: CLIContext = ctx.obj
        try:
            return func(ctx, *args, **kwargs)
        except KeyCustodyError as e:
            cli_ctx.formatter.print_error(e.message)
            if cli_ctx.debug and e.details:
                cli_ctx.formatter.print_detail(e.details, title="Details")
            raise typer.Exit(1)
        except InfrastructureError as e:
            cli_ctx.formatter.print_error(str(e))
            raise typer.Exit(1)

    return wrapper


def _key_name(cli_ctx: CLIContext, name: Optional[str]) -> str:
    return name or cli_ctx.settings.admin_key_name


@app.command("show")
@handle_errors
def show_key(
    ctx: typer.Context,
    name: Optional[str] = typer.Argument(None, help="Key name (default: configured admin key)"),
):
    """
    Show the active key record.

    Example:
        keycustody key show
    """
    cli_ctx: CLIContext = ctx.obj
    key_name = _key_name(cli_ctx, name)

    async def _show():
        async with cli_ctx.admin_service() as service:
            return KeyRecordDTO.from_record(await service.get_key(key_name))

    dto = run_async(_show())
    cli_ctx.formatter.print_detail(dto.to_dict(), title=f"SSH key '{key_name}'")


@app.command("list")
@handle_errors
def list_keys(
    ctx: typer.Context,
    key_type: Optional[str] = typer.Option(None, "--type", "-t", help="Key type to list"),
    include_inactive: bool = typer.Option(False, "--all", "-a", help="Include inactive records"),
):
    """
    List key records of a type.

    Example:
        keycustody key list --all
    """
    cli_ctx: CLIContext = ctx.obj

    async def _list():
        async with cli_ctx.admin_service() as service:
            return await service.list_keys(key_type, include_inactive)

    records = run_async(_list())
    cli_ctx.formatter.print_list(
        [KeyRecordDTO.from_record(r).summary() for r in records],
        title="System SSH keys",
    )


@app.command("ensure")
@handle_errors
def ensure_key(
    ctx: typer.Context,
    name: Optional[str] = typer.Argument(None, help="Key name (default: configured admin key)"),
):
    """
    Make sure an active admin key exists, generating one if necessary.

    Example:
        keycustody key ensure
    """
    cli_ctx: CLIContext = ctx.obj
    key_name = _key_name(cli_ctx, name)

    async def _ensure():
        async with cli_ctx.admin_service() as service:
            return await service.ensure_admin_key(key_name)

    result = run_async(_ensure())
    cli_ctx.formatter.print_detail(result.to_dict(), title=f"Admin key '{key_name}'")
    for warning in result.warnings or []:
        cli_ctx.formatter.print_warning(warning)


@app.command("regenerate")
@handle_errors
def regenerate_key(
    ctx: typer.Context,
    name: Optional[str] = typer.Argument(None, help="Key name (default: configured admin key)"),
    bits: Optional[int] = typer.Option(None, "--bits", "-b", help="RSA modulus size: 2048, 3072 or 4096"),
    comment: Optional[str] = typer.Option(None, "--comment", help="Public key comment"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """
    Generate a new keypair and replace the stored one.

    Machines provisioned with the old public key lose admin access until
    they are re-keyed.

    Example:
        keycustody key regenerate --bits 4096 --yes
    """
    cli_ctx: CLIContext = ctx.obj
    key_name = _key_name(cli_ctx, name)

    if not yes:
        cli_ctx.formatter.print_warning(
            f"Regenerating '{key_name}' replaces the keypair used to reach existing VMs."
        )
        if not typer.confirm("Continue?"):
            cli_ctx.formatter.print_warning("Aborted")
            raise typer.Exit(1)

    async def _regenerate():
        async with cli_ctx.admin_service() as service:
            return await service.coordinator.regenerate_with_report(key_name, bits, comment)

    report = run_async(_regenerate())
    dto = KeyRecordDTO.from_record(report.record)
    cli_ctx.formatter.print_success(f"Key '{key_name}' regenerated ({dto.key_size} bits)")
    cli_ctx.formatter.print_detail(
        {
            "fingerprint": dto.fingerprint,
            "sha256_fingerprint": dto.sha256_fingerprint,
            "version": dto.version,
            "validation": report.validation,
            "backup": str(report.backup_paths.private_path) if report.backup_paths else None,
            "public_key": dto.public_key,
        }
    )
    if report.backup_error:
        cli_ctx.formatter.print_warning(f"Backup files were not written: {report.backup_error}")


@app.command("rotate-secret")
@handle_errors
def rotate_secret(
    ctx: typer.Context,
    name: Optional[str] = typer.Argument(None, help="Key name (default: configured admin key)"),
    old_secret: Optional[List[str]] = typer.Option(
        None, "--old-secret", help="Previous encryption secret (can be used multiple times)"
    ),
    key_file: Optional[Path] = typer.Option(
        None, "--key-file", help="Plaintext private key to fall back on"
    ),
):
    """
    Re-encrypt the stored private key under the configured secret.

    Previous secrets come from --old-secret and SSH_KEY_PREVIOUS_SECRETS.
    Without a matching secret, --key-file (or the backup file) is used.

    Example:
        keycustody key rotate-secret --old-secret "$OLD_SECRET"
    """
    cli_ctx: CLIContext = ctx.obj
    key_name = _key_name(cli_ctx, name)
    candidates = list(old_secret or []) + list(cli_ctx.settings.ssh_key_previous_secrets)

    async def _rotate():
        async with cli_ctx.admin_service() as service:
            fallback = key_file
            if fallback is None:
                backup = service.key_files.paths(
                    backup_prefix_for(key_name, cli_ctx.settings.admin_key_name)
                ).private_path
                fallback = backup if backup.exists() else None
            return await service.coordinator.rotate_secret(
                key_name,
                candidates,
                service.coordinator.config.encryption_secret,
                key_file=fallback,
            )

    result = run_async(_rotate())
    if result.outcome == RotationOutcome.ALREADY_CURRENT:
        cli_ctx.formatter.print_success(f"Key '{key_name}' is already encrypted with the current secret")
    else:
        cli_ctx.formatter.print_success(
            f"Key '{key_name}' re-encrypted (recovered from {result.recovered_from})"
        )
    cli_ctx.formatter.print_detail(
        {
            "outcome": result.outcome.value,
            "recovered_from": result.recovered_from,
            "fingerprint": result.fingerprint,
            "verification": result.verification.status.value,
            "version": result.record.version,
        }
    )


@app.command("verify")
@handle_errors
def verify_key(
    ctx: typer.Context,
    name: Optional[str] = typer.Argument(None, help="Key name (default: configured admin key)"),
):
    """
    Check that the stored public key belongs to the stored private key.

    Exits with status 1 when they do not match.

    Example:
        keycustody key verify
    """
    cli_ctx: CLIContext = ctx.obj
    key_name = _key_name(cli_ctx, name)

    async def _verify():
        async with cli_ctx.admin_service() as service:
            return await service.inspect(key_name)

    inspection = run_async(_verify())
    dto: VerificationDTO = inspection.to_dto()
    cli_ctx.formatter.print_detail(dto.to_dict(), title=f"Verification of '{key_name}'")

    if not isinstance(inspection.verification, Match):
        cli_ctx.formatter.print_error(
            f"Key '{key_name}' is inconsistent: stored {dto.db_fingerprint or '-'} "
            f"vs derived {dto.derived_fingerprint or '-'}"
        )
        raise typer.Exit(1)
    cli_ctx.formatter.print_success(f"Key '{key_name}' is consistent")


@app.command("export")
@handle_errors
def export_key(
    ctx: typer.Context,
    name: Optional[str] = typer.Argument(None, help="Key name (default: configured admin key)"),
    output_dir: Optional[Path] = typer.Option(
        None, "--output-dir", help="Directory for the exported files (default: secrets dir)"
    ),
):
    """
    Export the verified keypair to owner-only files.

    Example:
        keycustody key export --output-dir ./secrets/ssh-keys
    """
    cli_ctx: CLIContext = ctx.obj
    key_name = _key_name(cli_ctx, name)
    directory = output_dir or cli_ctx.settings.secrets_dir

    async def _export():
        async with cli_ctx.admin_service() as service:
            return await service.export_to_directory(directory, key_name)

    paths = run_async(_export())
    cli_ctx.formatter.print_success(f"Key '{key_name}' exported")
    cli_ctx.formatter.print_detail(
        {"private_key": str(paths.private_path), "public_key": str(paths.public_path)}
    )


@app.command("public-key")
@handle_errors
def public_key(
    ctx: typer.Context,
    name: Optional[str] = typer.Argument(None, help="Key name (default: configured admin key)"),
):
    """
    Print the admin public key line for provisioning.
    """
    cli_ctx: CLIContext = ctx.obj
    key_name = _key_name(cli_ctx, name)

    async def _public_key():
        async with cli_ctx.admin_service() as service:
            return await service.get_admin_public_key(key_name)

    cli_ctx.formatter.emit(run_async(_public_key()))


@app.command("cloud-init")
@handle_errors
def cloud_init(
    ctx: typer.Context,
    user_public_key: str = typer.Argument(..., help="Tenant public key line"),
    password: Optional[str] = typer.Option(None, "--password", help="Enable password login with this password"),
):
    """
    Print cloud-init user data authorizing the tenant key and the admin key.
    """
    cli_ctx: CLIContext = ctx.obj

    async def _cloud_init():
        async with cli_ctx.admin_service() as service:
            return await service.build_cloud_init(user_public_key, password)

    cli_ctx.formatter.emit(run_async(_cloud_init()))


@app.command("deactivate")
@handle_errors
def deactivate_key(
    ctx: typer.Context,
    name: Optional[str] = typer.Argument(None, help="Key name (default: configured admin key)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """
    Mark the active key record inactive. The row is kept.
    """
    cli_ctx: CLIContext = ctx.obj
    key_name = _key_name(cli_ctx, name)

    if not yes and not typer.confirm(f"Deactivate '{key_name}'?"):
        cli_ctx.formatter.print_warning("Aborted")
        raise typer.Exit(1)

    async def _deactivate():
        async with cli_ctx.admin_service() as service:
            return await service.deactivate(key_name)

    record = run_async(_deactivate())
    cli_ctx.formatter.print_success(
        f"Key '{key_name}' deactivated (fingerprint {record.fingerprint})"
    )
