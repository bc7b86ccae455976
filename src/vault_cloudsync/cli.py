"""Command-line interface for the vault cloud sync application."""

import asyncio
import signal
import sys
from pathlib import Path
from typing import List

import click
import requests
from azure.core.exceptions import AzureError
from botocore.exceptions import BotoCoreError, ClientError
from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import GoogleAuthError
from pydantic import ValidationError
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from . import __version__
from .backends import create_manager
from .config.settings import AWSSettings, AzureSettings, CloudSyncSettings, GCPSettings, ProviderType, SyncOptions
from .errors import CloudSyncError
from .sync.coordinator import ProviderResult, ProviderSyncRunner
from .sync.models import OperationKind, OutcomeStatus, SyncOperation, SyncReport
from .utils.file_utils import FileHelper
from .utils.logging import get_logger, setup_logging

# Force UTF-8 encoding for Windows console to handle Unicode characters
if sys.platform == 'win32':
    import codecs
    sys.stdout = codecs.getwriter('utf-8')(sys.stdout.buffer, errors='replace')
    sys.stderr = codecs.getwriter('utf-8')(sys.stderr.buffer, errors='replace')

console = Console()

# Errors that abort a command with a message instead of a stack trace
HANDLED_ERRORS = (CloudSyncError, ValidationError, FileNotFoundError, requests.RequestException,
                  BotoCoreError, ClientError, AzureError, GoogleAPIError, GoogleAuthError)

KIND_STYLES = {
    OperationKind.UPLOAD: "green",
    OperationKind.DOWNLOAD: "cyan",
    OperationKind.DELETE_LOCAL: "red",
    OperationKind.DELETE_REMOTE: "red",
    OperationKind.CONFLICT: "yellow",
    OperationKind.SKIP: "dim",
}

config_option = click.option('--config', '-c',
                             type=click.Path(exists=True, path_type=Path),
                             default=Path('config/cloudsync.yaml'),
                             help='Path to configuration file')


def _load_settings(config: Path) -> CloudSyncSettings:
    settings = CloudSyncSettings.from_yaml(config)
    setup_logging(
        log_level=settings.log_level.value,
        log_file=settings.log_file,
        log_to_console=False,
    )
    return settings


def _notify(message: str) -> None:
    console.print(f"• {message}", style="dim")


@click.group()
@click.version_option(version=__version__)
def cli():
    """Vault Cloud Sync

    Keeps a local notes vault in sync with Azure Blob Storage, AWS S3 and
    Google Cloud Storage, in both directions, keeping both copies when they
    conflict.
    """
    pass


@cli.command()
@config_option
@click.option('--dry-run', '-d',
              is_flag=True,
              help='Show what would be synchronized without doing it')
def sync(config: Path, dry_run: bool):
    """Run one sync pass per enabled provider."""
    try:
        with console.status("Loading configuration..."):
            settings = _load_settings(config)
        runner = ProviderSyncRunner(settings, log=get_logger("sync"), notify=_notify)

        if dry_run:
            console.print("🔍 DRY RUN MODE - nothing will be transferred", style="yellow bold")
            for provider, operations in asyncio.run(runner.plan()):
                _display_plan(provider, operations)
            return

        results = asyncio.run(_run_sync_async(runner))
        for result in results:
            _display_sync_results(result)
        if not all(result.ok for result in results):
            sys.exit(1)

    except HANDLED_ERRORS as e:
        console.print(f"❌ Error: {e}", style="red bold")
        sys.exit(1)


async def _run_sync_async(runner: ProviderSyncRunner) -> List[ProviderResult]:
    """Run the passes, turning Ctrl+C into a cancellation of pending operations."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, runner.cancel)
    except (NotImplementedError, RuntimeError):
        # Windows event loops have no signal handlers
        pass
    return await runner.run()


@cli.command()
@config_option
def plan(config: Path):
    """Show the operations the next sync pass would perform."""
    try:
        settings = _load_settings(config)
        runner = ProviderSyncRunner(settings, log=get_logger("plan"))
        with console.status("Listing local vault and remote storage..."):
            plans = asyncio.run(runner.plan())
        for provider, operations in plans:
            _display_plan(provider, operations)
    except HANDLED_ERRORS as e:
        console.print(f"❌ Error: {e}", style="red bold")
        sys.exit(1)


def _display_plan(provider: ProviderType, operations: List[SyncOperation]):
    """Display planned operations, skips collapsed into a count."""
    pending = [op for op in operations if op.kind != OperationKind.SKIP]
    table = Table(title=f"Sync Plan: {provider.value}")
    table.add_column("Operation", style="magenta")
    table.add_column("Path", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Reason")

    for op in pending:
        style = KIND_STYLES[op.kind]
        record = op.record
        size = "" if record is None or record.is_directory else FileHelper.format_file_size(record.size)
        table.add_row(f"[{style}]{op.kind.value}[/{style}]", op.path, size, op.reason)

    if pending:
        console.print(table)
    rprint(f"\n📋 {provider.value}: [bold]{len(pending)}[/bold] operations planned, "
           f"{len(operations) - len(pending)} files unchanged")


def _display_sync_results(result: ProviderResult):
    """Display one provider's sync results in a table."""
    if result.error is not None:
        console.print(f"❌ {result.provider.value}: {result.error}", style="red bold")
        return

    report: SyncReport = result.report
    table = Table(title=f"Sync Results: {result.provider.value}")
    table.add_column("Operation", style="magenta")
    table.add_column("Succeeded", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Cancelled", justify="right", style="yellow")

    for kind in OperationKind:
        if kind == OperationKind.SKIP:
            continue
        outcomes = [o for o in report.outcomes if o.operation.kind == kind]
        if not outcomes:
            continue
        counts = {status: len([o for o in outcomes if o.status == status]) for status in OutcomeStatus}
        table.add_row(
            kind.value,
            str(counts[OutcomeStatus.SUCCEEDED]),
            str(counts[OutcomeStatus.FAILED]),
            str(counts[OutcomeStatus.CANCELLED]),
        )

    console.print(table)

    rprint(f"\n📊 [bold]Summary:[/bold] {report.summary()} in {report.duration:.1f}s")

    if report.failures:
        rprint(f"\n⚠️ [yellow]{len(report.failures)} operations failed:[/yellow]")
        for outcome in report.failures:
            rprint(f"   • {outcome.operation.path}: {outcome.error.cause}")


@cli.command('test-connection')
@config_option
def test_connection(config: Path):
    """Test the connection to every enabled provider."""
    try:
        settings = _load_settings(config)

        console.print("🔍 Testing connection...\n")
        table = Table(title="Connection Test Results")
        table.add_column("Provider", style="cyan")
        table.add_column("Status", style="magenta")
        table.add_column("Details")

        all_ok = True
        for provider in settings.enabled_providers:
            manager = create_manager(settings, provider)
            result = manager.test_connectivity()
            all_ok = all_ok and result['success']

            status_text = "✅ Connected" if result['success'] else "❌ Failed"
            status_style = "green" if result['success'] else "red"
            table.add_row(manager.name, f"[{status_style}]{status_text}[/{status_style}]", result['message'])

        console.print(table)

        if not all_ok:
            sys.exit(1)

    except HANDLED_ERRORS as e:
        console.print(f"❌ Error: {e}", style="red bold")
        sys.exit(1)


@cli.command('init-config')
@click.option('--config', '-c',
              type=click.Path(path_type=Path),
              default=Path('config/cloudsync.yaml'),
              help='Path to save configuration file')
@click.option('--provider', '-p',
              type=click.Choice([p.value for p in ProviderType]),
              multiple=True,
              default=[ProviderType.AZURE_BLOB.value],
              help='Cloud provider to enable, repeat for several')
@click.option('--vault', '-v',
              type=click.Path(path_type=Path),
              default=Path('.'),
              help='Path to the local vault')
def init_config(config: Path, provider: List[str], vault: Path):
    """Initialize a new configuration file."""
    if config.exists():
        if not click.confirm(f"Configuration file {config} already exists. Overwrite?"):
            return

    console.print("🚀 Creating new configuration file...")

    enabled = {ProviderType(p) for p in provider}
    settings = CloudSyncSettings(
        vault_path=vault.resolve(),
        azure=AzureSettings(enabled=ProviderType.AZURE_BLOB in enabled, account='mystorageaccount'),
        aws=AWSSettings(enabled=ProviderType.AWS_S3 in enabled, bucket='my-vault-bucket'),
        gcp=GCPSettings(enabled=ProviderType.GCP_STORAGE in enabled, bucket='my-vault-bucket'),
        sync_options=SyncOptions(),
    )
    settings.to_yaml(config)

    console.print(f"✅ Configuration saved to {config}", style="green")
    console.print("\n📝 Next steps:")
    console.print("1. Edit the configuration file to match your storage accounts")
    console.print("2. Export AZURE_STORAGE_ACCOUNT_KEY, the AWS_* or the GCP_* credentials")
    console.print("3. Run 'vault-cloudsync test-connection' to verify access")
    console.print("4. Run 'vault-cloudsync plan' to review the first sync")


if __name__ == '__main__':
    cli()
