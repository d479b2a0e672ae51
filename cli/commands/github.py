# cli/commands/github.py
"""GitHub commands: check access, deploy a pipeline and simulate a run."""

import asyncio
import signal
import sys
from pathlib import Path
from typing import Optional, Tuple

import click
import structlog
import yaml

from core.config import get_settings
from core.deploy.orchestrator import DeploymentOrchestrator
from core.deploy.session import DeploymentOutcome, ProgressEntry
from core.deploy.simulation import PipelineSimulator
from core.generator.engine import DEFAULT_HEADER, PipelineGenerator
from core.visual.flow import BlockGraphError, parse_block_graph

logger = structlog.get_logger(__name__)

EXIT_CODES = {
    DeploymentOutcome.SUCCESS: 0,
    DeploymentOutcome.FAILURE: 1,
    DeploymentOutcome.INDETERMINATE: 2,
}


def load_workflow_source(source: Path) -> str:
    """Return workflow YAML for ``source``.

    A saved block graph (JSON, or YAML with a ``pipeline`` root or a
    ``blocks`` list) is generated first; anything else is taken as an
    already generated workflow and used verbatim.
    """
    content = source.read_text(encoding='utf-8')
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise click.ClickException(f"Could not parse {source}: {e}")

    is_block_graph = (
        isinstance(data, list)
        or (isinstance(data, dict) and (data.get('type') == 'pipeline' or 'blocks' in data))
    )
    if not is_block_graph:
        if not content.strip():
            raise click.ClickException(f"{source} is empty")
        return content

    try:
        root = parse_block_graph(data)
    except BlockGraphError as e:
        raise click.ClickException(str(e))
    return PipelineGenerator(header=DEFAULT_HEADER).generate(root)


def _resolve_token(token: Optional[str]) -> str:
    token = token or get_settings().github_token
    if not token:
        raise click.ClickException(
            "No GitHub token given. Use --token, GITHUB_TOKEN or VISUAL_CICD_GITHUB_TOKEN."
        )
    return token


def _echo_entry(entry: ProgressEntry) -> None:
    click.echo(entry.message)


@click.group()
def github():
    """Deploy pipelines to GitHub Actions."""
    pass


@github.command()
@click.option('--repo', '-r', required=True, help='Repository as owner/name')
@click.option('--token', envvar='GITHUB_TOKEN', help='GitHub personal access token')
def connect(repo: str, token: Optional[str]):
    """Check that the token is well formed and can see the repository."""
    token = _resolve_token(token)
    ok, message = asyncio.run(DeploymentOrchestrator().check_connection(token, repo))
    if not ok:
        click.echo(f"❌ {message}", err=True)
        sys.exit(1)
    click.echo(f"✅ {message}")


async def _deploy(token: str, repo: str, workflow_yaml: str):
    orchestrator = DeploymentOrchestrator()
    cancel = asyncio.Event()

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel.set)
    except (NotImplementedError, RuntimeError):
        # Not available on every platform or outside the main thread
        pass

    try:
        return await orchestrator.deploy(
            token, repo, workflow_yaml, on_progress=_echo_entry, cancel_event=cancel
        )
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass


@github.command()
@click.argument('source', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--repo', '-r', required=True, help='Repository as owner/name')
@click.option('--token', envvar='GITHUB_TOKEN', help='GitHub personal access token')
def deploy(source: Path, repo: str, token: Optional[str]):
    """Commit a pipeline to REPO, run it and stream the progress log.

    SOURCE is a saved block graph or a generated workflow YAML file. Exits 0
    on success, 1 on failure and 2 when the outcome is not known yet.
    """
    token = _resolve_token(token)
    workflow_yaml = load_workflow_source(source)

    result = asyncio.run(_deploy(token, repo, workflow_yaml))
    logger.info("deploy_command_finished", outcome=result.outcome.value, run_url=result.run_url)
    sys.exit(EXIT_CODES[result.outcome])


@github.command()
@click.argument('source', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--fail', 'fail_jobs', multiple=True, help='Make this job fail (repeatable)')
@click.option('--speed', default=1.0, show_default=True,
              help='Delay multiplier; 0 runs without pauses')
def simulate(source: Path, fail_jobs: Tuple[str, ...], speed: float):
    """Narrate a local run of a pipeline without touching GitHub."""
    workflow_yaml = load_workflow_source(source)
    simulator = PipelineSimulator(delay_scale=speed)

    result = asyncio.run(simulator.run(workflow_yaml, fail_jobs=fail_jobs, on_progress=_echo_entry))
    sys.exit(EXIT_CODES[result.outcome])
