"""Command line interface for SecretSync."""

import json
import signal
import threading

import click

from .errors import AuthError, ConfigError, SecretSyncError

EXIT_CONFIG_ERROR = 1
EXIT_AUTH_ERROR = 10


def _build_app(ctx, cancel_event=None):
    from secretsync.app import create_app

    try:
        return create_app(
            config_name=ctx.obj.get("env"),
            config_file=ctx.obj.get("config_file"),
            cancel_event=cancel_event,
        )
    except ConfigError as e:
        click.echo(f"✗ Configuration error: {e.message}", err=True)
        ctx.exit(EXIT_CONFIG_ERROR)


def _exit_for(ctx, error: SecretSyncError):
    """Report a startup failure and exit with its status code."""
    if isinstance(error, ConfigError):
        click.echo(f"✗ Configuration error: {error.message}", err=True)
        ctx.exit(EXIT_CONFIG_ERROR)
    if isinstance(error, AuthError):
        click.echo(f"✗ Authentication failed: {error.message}", err=True)
        ctx.exit(EXIT_AUTH_ERROR)
    click.echo(f"✗ {error.message}", err=True)
    ctx.exit(EXIT_CONFIG_ERROR)


class _CancelOnSignal:
    """Set a cancellation event on SIGINT/SIGTERM while active."""

    SIGNALS = (signal.SIGINT, signal.SIGTERM)

    def __init__(self, event: threading.Event):
        self.event = event
        self._previous = {}

    def _handle(self, signum, frame):
        click.echo(f"Received signal {signum}, finishing in-flight work...", err=True)
        self.event.set()

    def __enter__(self):
        if threading.current_thread() is threading.main_thread():
            for signum in self.SIGNALS:
                self._previous[signum] = signal.signal(signum, self._handle)
        return self

    def __exit__(self, exc_type, exc, tb):
        for signum, handler in self._previous.items():
            signal.signal(signum, handler)
        self._previous.clear()


@click.group()
@click.option(
    "--config-file",
    type=click.Path(dir_okay=False),
    help="Repository descriptor file (defaults to SYNC_CONFIG_PATH)",
)
@click.option("--env", help="Settings profile: development, production or testing")
@click.pass_context
def cli(ctx, config_file, env):
    """SecretSync: copy credentials between Vault and Bitwarden."""
    ctx.ensure_object(dict)
    ctx.obj["config_file"] = config_file
    ctx.obj["env"] = env


@cli.command()
@click.argument("source_id")
@click.argument("destination_id")
@click.option(
    "--dry-run", is_flag=True, help="Show what would be synced without making changes"
)
@click.option("--json-output", is_flag=True, help="Print the sync report as JSON")
@click.pass_context
def sync(ctx, source_id, destination_id, dry_run, json_output):
    """Sync the paths of SOURCE_ID into DESTINATION_ID."""
    cancel_event = threading.Event()
    app = _build_app(ctx, cancel_event)

    with _CancelOnSignal(cancel_event), app:
        try:
            report = app.sync(source_id, destination_id, dry_run=dry_run)
        except SecretSyncError as e:
            _exit_for(ctx, e)

    if json_output:
        click.echo(json.dumps(report.to_dict(), indent=2))
        return

    if dry_run:
        click.echo("\nDRY RUN - No changes were made:\n")

    for result in report.results:
        icon = "✓" if result.outcome.value == "success" else "✗"
        target = f" -> {result.destination_path}" if result.destination_path else ""
        click.echo(f"  {icon} {result.path}{target} [{result.outcome.value}]")
        if result.message and result.outcome.value != "success":
            click.echo(f"    {result.message}")

    counts = report.counts()
    summary = ", ".join(f"{count} {name}" for name, count in counts.items() if count)
    click.echo(
        f"\nSync completed {source_id} -> {destination_id}: {summary or 'no paths'}"
    )


@cli.command()
@click.argument("repo_id")
@click.pass_context
def test_connection(ctx, repo_id):
    """Test connectivity to a configured repository."""
    app = _build_app(ctx)

    with app:
        try:
            click.echo(f"Testing connection to {repo_id}...")
            results = app.test_connection(repo_id)
        except SecretSyncError as e:
            _exit_for(ctx, e)

    result = results[repo_id]
    status = result["status"]
    icon = "✓" if status == "success" else "✗"
    click.echo(f"{repo_id.upper()}: {icon} {status}")
    if "message" in result:
        click.echo(f"  Message: {result['message']}")

    if results.get("overall_status") == "error":
        ctx.exit(1)


@cli.command()
@click.pass_context
def list_repos(ctx):
    """List the configured repositories."""
    app = _build_app(ctx)

    with app:
        if not app.repos:
            click.echo("No repositories configured")
            return

        for repo in app.repos:
            click.echo(f"{repo.id} ({repo.type.value}) {repo.addr}")
            click.echo(f"  Paths: {', '.join(repo.paths)}")
            if repo.prefix:
                click.echo(f"  Prefix: {repo.prefix}")


if __name__ == "__main__":
    cli()
