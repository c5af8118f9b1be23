"""
Command line interface for parley.

Usage:
    parley serve --port 8081
    parley projects
    parley send <project-id> "Please fix the login bug" --for developer
    parley retry <project-id> <message-id>
    parley block ./my-project
"""

import logging
from pathlib import Path
from typing import Optional

import click

from . import __version__
from .blocks import current_block
from .config import Config
from .dispatcher import Scheduler, create_server
from .exceptions import ConfigurationError, ParleyError
from .store import AgentDirectory

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool, quiet: bool):
    """Configure logging based on verbosity.

    Args:
        verbose: Enable debug logging
        quiet: Suppress all but errors
    """
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )


def load_config(path: Optional[Path]) -> Config:
    """Config file (if given), then environment overrides."""
    base = Config.from_yaml(path) if path else Config.default()
    return Config.from_env(base)


def _scheduler(ctx: click.Context) -> Scheduler:
    return Scheduler.from_config(ctx.obj["config"])


@click.group()
@click.version_option(__version__)
@click.option("--config", "-c", "config_path", type=click.Path(path_type=Path), default=None,
              help="YAML config file")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.option("--quiet", "-q", is_flag=True, help="Only log errors")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], verbose: bool, quiet: bool):
    """Parley - dispatch chat messages to coding agents."""
    setup_logging(verbose, quiet)
    try:
        config = load_config(config_path)
    except ConfigurationError as e:
        raise click.ClickException(str(e))
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@cli.command()
@click.option("--host", default=None, help="Bind address (default from config)")
@click.option("--port", "-p", type=int, default=None, help="Port (default from config)")
@click.option("--no-scheduler", is_flag=True, help="Serve the API without dispatching")
@click.pass_context
def serve(ctx: click.Context, host: Optional[str], port: Optional[int], no_scheduler: bool):
    """Run the scheduler and the HTTP API until interrupted."""
    config: Config = ctx.obj["config"]
    host = host or config.server.host
    port = port if port is not None else config.server.port

    scheduler = Scheduler.from_config(config)
    server = create_server(scheduler, host, port)

    if not no_scheduler:
        scheduler.start()
    click.echo(f"parley API listening on http://{host}:{server.server_port}/")
    click.echo(f"  data: {config.storage.data_dir}")

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        click.echo("\nShutting down...")
    finally:
        server.server_close()
        scheduler.stop(wait=False)


@cli.command()
@click.argument("directory", type=click.Path(exists=True, file_okay=False, path_type=Path))
def block(directory: Path):
    """Print the current block number of a project folder."""
    click.echo(current_block(directory))


@cli.command()
@click.pass_context
def agents(ctx: click.Context):
    """List the agent names available to the coordinator."""
    config: Config = ctx.obj["config"]
    directory = AgentDirectory(config.agent.agents_dir, config.agent.fallback_agents)
    for name in directory.list_agent_names():
        click.echo(name)


@cli.command()
@click.pass_context
def projects(ctx: click.Context):
    """List registered projects."""
    for project in _scheduler(ctx).projects.list_all():
        state = "paused" if project.paused else "active"
        click.echo(f"{project.id}  [{state}]  {project.title}  ({project.working_dir})")


@cli.command("project-add")
@click.argument("title")
@click.option("--folder", "-f", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Working directory (default: <data_dir>/projects/<id>)")
@click.option("--description", "-d", default="", help="Project description")
@click.pass_context
def project_add(ctx: click.Context, title: str, folder: Optional[Path], description: str):
    """Register a new project."""
    project = _scheduler(ctx).projects.create(title, description, folder)
    click.echo(project.id)


def _set_paused(ctx: click.Context, project_id: str, paused: bool) -> None:
    try:
        project = _scheduler(ctx).projects.set_paused(project_id, paused)
    except ParleyError as e:
        raise click.ClickException(str(e))
    click.echo(f"{project.id} {'paused' if paused else 'resumed'}")


@cli.command()
@click.argument("project_id")
@click.pass_context
def pause(ctx: click.Context, project_id: str):
    """Stop dispatching messages of a project."""
    _set_paused(ctx, project_id, True)


@cli.command()
@click.argument("project_id")
@click.pass_context
def resume(ctx: click.Context, project_id: str):
    """Resume dispatching messages of a project."""
    _set_paused(ctx, project_id, False)


@cli.command()
@click.argument("project_id")
@click.argument("content")
@click.option("--for", "recipient", default=None, help="Agent to address")
@click.option("--agent", "-a", default=None, help="Sender name (default: user)")
@click.pass_context
def send(ctx: click.Context, project_id: str, content: str, recipient: Optional[str], agent: Optional[str]):
    """Append a message to a project's chat log.

    A running `parley serve` dispatches it on its next tick.
    """
    try:
        message = _scheduler(ctx).post_message(project_id, content, agent=agent, recipient=recipient)
    except ParleyError as e:
        raise click.ClickException(str(e))
    click.echo(message.id)


@cli.command()
@click.argument("project_id")
@click.argument("message_id", type=int)
@click.pass_context
def retry(ctx: click.Context, project_id: str, message_id: int):
    """Reset a message to waiting and delete everything after it."""
    try:
        message, deleted = _scheduler(ctx).retry(project_id, message_id)
    except ParleyError as e:
        raise click.ClickException(str(e))
    click.echo(f"Message {message.id} is waiting again ({deleted} later message(s) deleted)")


@cli.command("show-config")
@click.pass_context
def show_config(ctx: click.Context):
    """Print the effective configuration as YAML."""
    click.echo(ctx.obj["config"].to_yaml())


if __name__ == "__main__":
    cli()
