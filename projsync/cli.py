"""CLI interface for projsync."""

import logging
from pathlib import Path
from typing import Any, Optional

import click

from . import __version__
from .api import ProjectClient
from .config import config
from .exceptions import ProjsyncAPIError, ProjsyncConfigError, SyncError
from .output import OutputFormatter
from .sync import SyncEngine, SyncStateManager, load_rules
from .utils import format_millis

logger = logging.getLogger(__name__)


def _make_client(ctx: Any, out: OutputFormatter) -> ProjectClient:
    """Create a client from the global options, exiting if unconfigured."""
    try:
        return ProjectClient(api_url=ctx.obj["url"], access_token=ctx.obj["token"])
    except ProjsyncConfigError as e:
        out.error(str(e))
        ctx.exit(1)
        raise  # Unreachable, but helps type checker


@click.group()
@click.option("--url", "-u", envvar="PROJSYNC_API_URL", help="Project server URL")
@click.option(
    "--token", "-k", envvar="PROJSYNC_ACCESS_TOKEN", help="Server access token"
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(version=__version__)
@click.pass_context
def main(
    ctx: Any,
    url: Optional[str],
    token: Optional[str],
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """projsync - Sync local project directories to a project server."""
    ctx.ensure_object(dict)
    ctx.obj["url"] = url
    ctx.obj["token"] = token
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("projsync").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.option("--url", "-u", "api_url", prompt="Project server URL", help="Server URL")
@click.option(
    "--token",
    "-k",
    "access_token",
    prompt="Access token (leave empty for none)",
    default="",
    hide_input=True,
    help="Server access token",
)
@click.pass_context
def init(ctx: Any, api_url: str, access_token: str) -> None:
    """Store the server URL and access token.

    Settings are written to ~/.config/projsync/config.
    """
    out: OutputFormatter = ctx.obj["out"]

    if not api_url.startswith(("http://", "https://")):
        out.error("Server URL must start with http:// or https://")
        ctx.exit(1)

    config.save(api_url, access_token or None)
    out.success(f"Configuration saved to {config.get_config_path()}")


@main.command()
@click.option("--path", "-p", required=True, help="Local project directory")
@click.option("--id", "-i", "project_id", required=True, help="Project ID")
@click.option(
    "--time",
    "-t",
    "last_sync",
    type=int,
    default=None,
    help="Last sync time in ms since epoch (default: stored time of the last pass)",
)
@click.option("--full", is_flag=True, help="Ignore the last sync time and upload all files")
@click.option(
    "--workers",
    type=int,
    default=1,
    help="Number of parallel uploads (default: 1)",
)
@click.pass_context
def sync(
    ctx: Any,
    path: str,
    project_id: str,
    last_sync: Optional[int],
    full: bool,
    workers: int,
) -> None:
    """Upload files changed since the last sync and finalize the pass.

    Examples:
        projsync sync -p ./my-app -i 1a2b3c          # Since last stored pass
        projsync sync -p ./my-app -i 1a2b3c -t 0     # Everything
        projsync --json sync -p ./my-app -i 1a2b3c   # JSON result
    """
    out: OutputFormatter = ctx.obj["out"]
    path = path.strip()
    project_id = project_id.strip()

    if workers < 1:
        out.error("Workers must be at least 1")
        ctx.exit(1)

    state_manager = SyncStateManager(config.state_dir)
    local_path = Path(path)
    if full:
        cutoff = 0
    elif last_sync is not None:
        cutoff = last_sync
    else:
        cutoff = state_manager.load_last_sync(project_id, local_path)

    if not out.quiet:
        out.info(f"Project: {project_id}")
        out.info(f"Local path: {path}")
        out.info(f"Last sync: {format_millis(cutoff)}")

    client = _make_client(ctx, out)
    error: Optional[str] = None
    try:
        engine = SyncEngine(client, out, max_workers=workers)
        response = engine.sync_project(path, project_id, cutoff)
    except SyncError as e:
        error = f"Sync failed ({e.operation.value}): {e.description}"
    except ProjsyncAPIError as e:
        error = f"API error: {e}"
    except KeyboardInterrupt:
        out.warning("Sync cancelled by user")
        ctx.exit(130)
    finally:
        client.close()

    if error is not None:
        out.error(error)
        ctx.exit(1)

    if response.succeeded:
        state_manager.save_last_sync(project_id, local_path, response.time_stamp)

    if out.json_output:
        out.output_json(response.to_dict())
        return

    for warning in response.warnings:
        out.warning(warning)
    if response.uploaded_files:
        out.output_table(
            "Uploaded files",
            ["File", "Status"],
            [[f.file_path, f.status] for f in response.uploaded_files],
        )
    if not response.succeeded:
        out.error(f"Server did not accept the sync: {response.status}")
        ctx.exit(1)


@main.command()
@click.option("--path", "-p", required=True, help="Local project directory")
@click.option("--id", "-i", "project_id", required=True, help="Project ID")
@click.pass_context
def status(ctx: Any, path: str, project_id: str) -> None:
    """Show the stored last sync time and the project's sync rules."""
    out: OutputFormatter = ctx.obj["out"]
    local_path = Path(path.strip())
    project_id = project_id.strip()

    state_manager = SyncStateManager(config.state_dir)
    last_sync = state_manager.load_last_sync(project_id, local_path)
    rules = load_rules(local_path)

    if out.json_output:
        out.output_json(
            {
                "projectID": project_id,
                "path": str(local_path),
                "lastSync": last_sync,
                "ignoredPaths": rules.ignored_paths,
                "refPaths": [
                    {"from": ref.from_path, "to": ref.to_path}
                    for ref in rules.ref_paths
                ],
            }
        )
        return

    out.print(f"Project: {project_id}")
    out.print(f"Local path: {local_path}")
    out.print(f"Last sync: {format_millis(last_sync)}")
    out.print(f"Ignore rules: {len(rules.ignored_paths)}")
    for pattern in rules.ignored_paths:
        out.print(f"  {pattern}")
    out.print(f"Reference paths: {len(rules.ref_paths)}")
    for ref in rules.ref_paths:
        out.print(f"  {ref.from_path} -> {ref.to_path}")


if __name__ == "__main__":
    main()
