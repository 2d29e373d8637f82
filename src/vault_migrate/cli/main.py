"""Main CLI entry point for Vault Migration Tool."""

import signal
import sys
from typing import Optional, Tuple
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..config.config import Config, parse_paths
from ..git.operations import GitRepository
from ..git.runner import CommandError, CommandRunner
from ..migration.engine import MigrationEngine, MigrationSummary
from ..migration.exceptions import RootWorkingFolderError
from ..migration.orchestrator import (
    PROGRESS_FINALIZE,
    PROGRESS_GC,
    PROGRESS_INIT,
    PROGRESS_TAGS,
)
from ..models.transaction import TransactionRecord
from ..utils.logging import get_logger, setup_logging
from ..vault.client import VaultClientFactory
from ..vault.exceptions import VaultError

console = Console()

_MARKER_LABELS = {
    PROGRESS_INIT: 'init',
    PROGRESS_GC: 'gc',
    PROGRESS_FINALIZE: 'finalize',
    PROGRESS_TAGS: 'tags',
}


@click.group()
@click.version_option(version='0.1.0', prog_name='vault-migrate')
@click.option(
    '--config',
    '-c',
    type=click.Path(exists=True),
    help='Path to configuration file',
)
@click.option(
    '--verbose',
    '-v',
    is_flag=True,
    help='Enable verbose logging',
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], verbose: bool) -> None:
    """Vault Migration Tool - Replay SourceGear Vault history into git branches."""
    ctx.ensure_object(dict)

    if config:
        ctx.obj['config_path'] = config
    ctx.obj['verbose'] = verbose

    # Setup basic logging first (will be enhanced later with config)
    log_level = 'DEBUG' if verbose else 'INFO'
    setup_logging(log_level)


@cli.command()
@click.option(
    '--output',
    '-o',
    default='config.yaml',
    help='Output configuration file path',
)
@click.pass_context
def init(ctx: click.Context, output: str) -> None:
    """Initialize a new configuration file."""
    console.print(
        Panel.fit(
            '[bold green]Vault Migration Tool[/bold green]\n'
            'Initializing configuration...',
            border_style='green',
        )
    )

    try:
        Config.create_template(output)

        console.print(f'[green]✓[/green] Configuration template created at: {output}')
        console.print(
            f'[yellow]Please edit {output} with your Vault server and branch details[/yellow]'
        )

    except OSError as e:
        console.print(f'[red]✗[/red] Failed to create configuration: {e}')
        sys.exit(1)


@cli.command()
@click.option(
    '--branch',
    '-b',
    'branches',
    multiple=True,
    help='Migrate only this configured branch (repeatable)',
)
@click.option('--limit', type=int, help='Maximum transactions to migrate per branch')
@click.option(
    '--restart-limit',
    type=int,
    help='Commits to search back for the restart point (0 starts over)',
)
@click.option(
    '--skip-empty-commits',
    is_flag=True,
    help='Do not commit transactions that change nothing in the branch',
)
@click.option(
    '--ignore-labels', is_flag=True, help='Do not create tags from labels'
)
@click.option(
    '--force-full-folder-get',
    is_flag=True,
    help='Fetch the whole folder for every transaction',
)
@click.option('--pause', is_flag=True, help='Pause before every commit')
@click.option(
    '--work',
    type=click.Path(file_okay=False),
    help='git work tree (overrides git.working_folder)',
)
@click.option(
    '--paths',
    help='Branch mapping as vaultpath~branch;vaultpath~branch (overrides migration.paths)',
)
@click.option(
    '--yes',
    '-y',
    is_flag=True,
    help='Start from the first version when no restart point is found',
)
@click.option(
    '--console-output', is_flag=True, help='Print a line for every migrated version'
)
@click.pass_context
def migrate(
    ctx: click.Context,
    branches: Tuple[str, ...],
    limit: Optional[int],
    restart_limit: Optional[int],
    skip_empty_commits: bool,
    ignore_labels: bool,
    force_full_folder_get: bool,
    pause: bool,
    work: Optional[str],
    paths: Optional[str],
    yes: bool,
    console_output: bool,
) -> None:
    """Start the migration process."""
    console.print(
        Panel.fit(
            '[bold blue]Vault Migration Tool[/bold blue]\n'
            'Starting migration process...',
            border_style='blue',
        )
    )

    try:
        config = _load_config(ctx)
        config = config.with_overrides(
            git={'working_folder': work},
            migration={
                'paths': parse_paths(paths) if paths else None,
                'limit': limit,
                'restart_limit': restart_limit,
                'skip_empty_commits': skip_empty_commits or None,
                'ignore_labels': ignore_labels or None,
                'force_full_folder_get': force_full_folder_get or None,
                'pause': pause or None,
                'assume_first_revision': yes or None,
            },
        )

        unknown = [b for b in branches if b not in config.migration.paths]
        if unknown:
            raise click.BadParameter(
                f'not configured: {", ".join(unknown)}', param_hint='--branch'
            )

        _setup_logging_with_config(ctx, config)

        summary = _run_migration(config, list(branches), console_output)
        _display_migration_summary(summary)

        if summary.cancelled:
            console.print('[yellow]Migration stopped before completion[/yellow]')
        else:
            console.print('[green]✓[/green] Migration completed successfully')

    except click.BadParameter:
        raise
    except Exception as e:
        console.print(f'[red]✗[/red] Migration failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)


@cli.command()
@click.pass_context
def validate(ctx: click.Context) -> None:
    """Check that git and the Vault client work with the configuration."""
    console.print(
        Panel.fit(
            '[bold cyan]Vault Migration Tool[/bold cyan]\nValidating setup...',
            border_style='cyan',
        )
    )

    try:
        config = _load_config(ctx)

        git = GitRepository(
            CommandRunner(config.git.command, cwd=config.git.working_folder),
            config.git.user_name,
            config.git.user_email,
        )
        console.print(f'[green]✓[/green] {git.version()}')

        with VaultClientFactory.create_client(config.vault) as client:
            client.login()
            try:
                engine = MigrationEngine(config, client=client, git=git)
                engine.check_root_binding()
            finally:
                client.logout()
        console.print(f'[green]✓[/green] Connected to {config.vault.url}')
        console.print(
            f'[green]✓[/green] Working folder of {config.vault.root_path} is set'
        )

    except (
        CommandError,
        VaultError,
        RootWorkingFolderError,
        FileNotFoundError,
        ValueError,
    ) as e:
        console.print(f'[red]✗[/red] Validation failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the effective migration configuration."""
    console.print(
        Panel.fit(
            '[bold magenta]Vault Migration Tool[/bold magenta]\nMigration Status',
            border_style='magenta',
        )
    )

    try:
        config = _load_config(ctx)

        _setup_logging_with_config(ctx, config)

        table = Table(title='Migration Configuration')
        table.add_column('Setting', style='cyan')
        table.add_column('Value', style='green')

        table.add_row('Vault URL', config.vault.url)
        table.add_row('Vault User', config.vault.user)
        table.add_row('Vault Password', '***' if config.vault.password else '')
        table.add_row('Repository', config.vault.repository)
        table.add_row('Oldest Commit Date', str(config.vault.oldest_commit_date))
        table.add_row('Working Folder', config.git.working_folder)
        table.add_row('Author Domain', config.git.domain_name)
        for branch, vault_path in config.migration.paths.items():
            table.add_row(f'Branch {branch}', vault_path)
        table.add_row('Restart Limit', str(config.migration.restart_limit))
        table.add_row(
            'Skip Empty Commits', '✓' if config.migration.skip_empty_commits else '✗'
        )
        table.add_row('Create Tags', '✗' if config.migration.ignore_labels else '✓')

        console.print(table)

    except Exception as e:
        console.print(f'[red]✗[/red] Failed to load status: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)


def _load_config(ctx: click.Context) -> Config:
    """Load configuration from file or environment."""
    config_path = ctx.obj.get('config_path')

    if config_path:
        if not Path(config_path).exists():
            raise FileNotFoundError(f'Configuration file not found: {config_path}')
        return Config.from_file(config_path)
    else:
        # Try to load from default locations
        default_paths = ['config.yaml', 'config.yml', '.vault-migrate.yaml']
        for path in default_paths:
            if Path(path).exists():
                return Config.from_file(path)

        # Fall back to environment variables
        try:
            return Config.from_env()
        except ValueError:
            raise FileNotFoundError(
                'No configuration found. Use --config to specify a file or run "vault-migrate init" to create one.'
            )


def _setup_logging_with_config(ctx: click.Context, config: Config) -> None:
    """Setup logging with configuration from config file."""
    verbose = ctx.obj.get('verbose', False)

    # Use config logging settings, but allow verbose flag to override level
    log_level = 'DEBUG' if verbose else config.logging.level
    setup_logging(
        level=log_level, log_file=config.logging.file, log_format=config.logging.format
    )


class _StopRequest:
    """Turns the first Ctrl+C into a stop request; the second one interrupts."""

    def __init__(self):
        self.requested = False
        self.logger = get_logger('cli')
        self._previous = None

    def __enter__(self):
        self._previous = signal.signal(signal.SIGINT, self._handle)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        signal.signal(signal.SIGINT, self._previous)

    def _handle(self, signum, frame):
        if self.requested:
            raise KeyboardInterrupt
        self.requested = True
        self.logger.warning('Stop requested; finishing the current transaction...')
        console.print(
            '[yellow]Stopping after the current transaction '
            '(press Ctrl+C again to abort)[/yellow]'
        )


def _run_migration(
    config: Config, branches: list, console_output: bool
) -> MigrationSummary:
    """Run the migration, reporting progress on the console."""
    with _StopRequest() as stop:

        def on_progress(marker: int, elapsed_ms: int) -> bool:
            if console_output:
                label = _MARKER_LABELS.get(marker, f'version {marker}')
                console.print(f'[blue]{label}[/blue] ({elapsed_ms} ms)')
            return stop.requested

        def on_pause(record: TransactionRecord) -> None:
            click.pause(
                f'Version {record.source_revision} (transaction '
                f'{record.transaction_id}) is ready to commit. Press any key...'
            )

        engine = MigrationEngine(
            config,
            progress=on_progress,
            confirm=lambda question: click.confirm(question, default=False),
            pause=on_pause,
        )
        return engine.run(branches or None)


def _display_migration_summary(summary: MigrationSummary) -> None:
    """Display migration summary results."""
    table = Table(title='Migration Summary')
    table.add_column('Branch', style='cyan')
    table.add_column('Vault Path', style='blue')
    table.add_column('Resumed After', style='yellow')
    table.add_column('Transactions', style='green')
    table.add_column('Commits', style='green')

    for branch in summary.branches:
        table.add_row(
            branch.branch,
            branch.source_path,
            str(branch.resume_revision),
            f'{branch.processed}/{branch.pending}',
            str(branch.commits),
        )

    console.print(table)

    if summary.completed_at:
        duration = summary.completed_at - summary.started_at
        console.print(f'\n[blue]Migration Duration:[/blue] {duration}')

    console.print(f'[blue]Tags created:[/blue] {len(summary.tags_created)}')
    if summary.tags_failed:
        console.print(f'\n[yellow]Tags not created ({len(summary.tags_failed)}):[/yellow]')
        for name in summary.tags_failed[:5]:
            console.print(f'  • {name}')
        if len(summary.tags_failed) > 5:
            console.print(f'  ... and {len(summary.tags_failed) - 5} more')


def main() -> None:
    """Main entry point for the CLI application."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print('\n[red]Migration interrupted by user[/red]')
        sys.exit(1)
    except Exception as e:
        console.print(f'[red]Error: {e}[/red]')
        sys.exit(1)


if __name__ == '__main__':
    main()
