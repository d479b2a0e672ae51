"""
Tests for the visual-cicd command line interface.
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import yaml
from click.testing import CliRunner

from cli.main import cli
from cli.commands.github import load_workflow_source
from cli.commands.pipeline import watch_file
from core.deploy.session import DeploymentOutcome, DeploymentResult, ProgressEntry


TOKEN = "ghp_" + "c" * 36


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def blocks_file(tmp_path, block_payload):
    path = tmp_path / "blocks.json"
    path.write_text(json.dumps(block_payload))
    return path


# ============================================================================
# pipeline
# ============================================================================

class TestPipelineCommands:

    def test_generate_to_file(self, runner, blocks_file, tmp_path):
        out = tmp_path / "out" / "ci.yml"
        result = runner.invoke(cli, ["pipeline", "generate", str(blocks_file), "-o", str(out)])

        assert result.exit_code == 0, result.output
        text = out.read_text()
        assert text.startswith("# Generated CI/CD Pipeline YAML")
        document = yaml.safe_load(text)
        assert list(document["jobs"]) == ["build", "test"]
        assert document["on"] == {"push": {"branches": ["main"]}}
        assert document["env"] == {"PYTHON_VERSION": "3.11"}

    def test_generate_to_stdout_without_header(self, runner, blocks_file):
        result = runner.invoke(cli, ["pipeline", "generate", str(blocks_file), "--no-header"])

        assert result.exit_code == 0
        assert result.output.startswith("name: ci\n")

    def test_generate_strict_fails_on_dangling_needs(self, runner, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("type: pipeline\njobs:\n  - type: job\n    name: test\n    needs: [build]\n")

        result = runner.invoke(cli, ["pipeline", "generate", str(path), "--strict"])

        assert result.exit_code == 1
        assert "needs unknown job 'build'" in result.output

    def test_generate_unreadable_file(self, runner, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{")

        result = runner.invoke(cli, ["pipeline", "generate", str(path)])

        assert result.exit_code == 1
        assert "Invalid block graph file" in result.output

    def test_validate_ok(self, runner, blocks_file):
        result = runner.invoke(cli, ["pipeline", "validate", str(blocks_file)])

        assert result.exit_code == 0
        assert "Pipeline 'ci' is valid" in result.output

    def test_validate_reports_problems(self, runner, tmp_path):
        path = tmp_path / "dup.yaml"
        path.write_text("type: pipeline\njobs:\n  - {type: job, name: a}\n  - {type: job, name: a}\n")

        result = runner.invoke(cli, ["pipeline", "validate", str(path)])

        assert result.exit_code == 1
        assert "Duplicate job name 'a'" in result.output

    def test_blocks_lists_palette(self, runner):
        result = runner.invoke(cli, ["pipeline", "blocks"])

        assert result.exit_code == 0
        for block_id in ("pipeline", "job", "step", "trigger", "env_var", "conditional"):
            assert block_id in result.output

    def test_blocks_single_category(self, runner):
        result = runner.invoke(cli, ["pipeline", "blocks", "--category", "triggers"])

        assert result.exit_code == 0
        assert "trigger" in result.output
        assert "env_var" not in result.output

    def test_blocks_search(self, runner):
        result = runner.invoke(cli, ["pipeline", "blocks", "--search", "environment"])

        assert result.exit_code == 0
        assert "env_var" in result.output
        assert "pipeline" in result.output
        assert "conditional" not in result.output

    def test_blocks_search_without_matches(self, runner):
        result = runner.invoke(cli, ["pipeline", "blocks", "--search", "matrix"])

        assert result.exit_code == 0
        assert "No blocks match 'matrix'" in result.output


async def _wait_for(predicate, timeout=5.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.02)


@pytest.mark.asyncio
async def test_watch_file_generates_on_start(tmp_path, blocks_file):
    out = tmp_path / "watched.yml"
    stop = asyncio.Event()

    task = asyncio.ensure_future(watch_file(blocks_file, out, stop=stop, delay=0.02))
    await _wait_for(out.exists)
    stop.set()
    debouncer = await asyncio.wait_for(task, timeout=5)

    assert debouncer.generations == 1
    assert list(yaml.safe_load(out.read_text())["jobs"]) == ["build", "test"]


@pytest.mark.asyncio
async def test_watch_file_picks_up_changes(tmp_path, blocks_file, block_payload):
    out = tmp_path / "watched.yml"
    stop = asyncio.Event()

    task = asyncio.ensure_future(watch_file(blocks_file, out, stop=stop, delay=0.02))
    await _wait_for(out.exists)

    block_payload["jobs"].append({"type": "job", "name": "deploy", "needs": ["test"]})
    blocks_file.write_text(json.dumps(block_payload))
    await _wait_for(lambda: "deploy" in yaml.safe_load(out.read_text())["jobs"])

    stop.set()
    await asyncio.wait_for(task, timeout=5)
    assert list(yaml.safe_load(out.read_text())["jobs"]) == ["build", "test", "deploy"]


# ============================================================================
# github
# ============================================================================

def _result(outcome, *messages):
    return DeploymentResult(
        outcome=outcome,
        entries=[ProgressEntry(timestamp=0.0, message=m) for m in messages],
    )


def _fake_orchestrator(result):
    async def deploy(token, repo, workflow_yaml, on_progress=None, cancel_event=None):
        for entry in result.entries:
            on_progress(entry)
        return result

    orchestrator = MagicMock()
    orchestrator.deploy = AsyncMock(side_effect=deploy)
    orchestrator.check_connection = AsyncMock(return_value=(True, "Connected to octo/widgets (default branch: main)"))
    return orchestrator


class TestGithubCommands:

    @pytest.mark.parametrize("outcome,code", [
        (DeploymentOutcome.SUCCESS, 0),
        (DeploymentOutcome.FAILURE, 1),
        (DeploymentOutcome.INDETERMINATE, 2),
    ])
    def test_deploy_exit_codes(self, runner, blocks_file, outcome, code):
        fake = _fake_orchestrator(_result(outcome, "Initializing GitHub Actions deployment...", "done"))

        with patch("cli.commands.github.DeploymentOrchestrator", return_value=fake):
            result = runner.invoke(cli, ["github", "deploy", str(blocks_file), "--repo", "octo/widgets",
                                         "--token", TOKEN])

        assert result.exit_code == code
        assert "Initializing GitHub Actions deployment..." in result.output
        token, repo, workflow_yaml = fake.deploy.await_args.args
        assert (token, repo) == (TOKEN, "octo/widgets")
        assert list(yaml.safe_load(workflow_yaml)["jobs"]) == ["build", "test"]

    def test_deploy_token_from_environment(self, runner, blocks_file):
        fake = _fake_orchestrator(_result(DeploymentOutcome.SUCCESS, "ok"))

        with patch("cli.commands.github.DeploymentOrchestrator", return_value=fake):
            result = runner.invoke(cli, ["github", "deploy", str(blocks_file), "--repo", "octo/widgets"],
                                   env={"GITHUB_TOKEN": TOKEN})

        assert result.exit_code == 0
        assert fake.deploy.await_args.args[0] == TOKEN

    def test_deploy_without_token(self, runner, blocks_file, monkeypatch):
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        with patch("cli.commands.github.get_settings") as get_settings:
            get_settings.return_value.github_token = None
            result = runner.invoke(cli, ["github", "deploy", str(blocks_file), "--repo", "octo/widgets"])

        assert result.exit_code == 1
        assert "No GitHub token given" in result.output

    def test_connect(self, runner):
        fake = _fake_orchestrator(_result(DeploymentOutcome.SUCCESS))

        with patch("cli.commands.github.DeploymentOrchestrator", return_value=fake):
            result = runner.invoke(cli, ["github", "connect", "--repo", "octo/widgets", "--token", TOKEN])

        assert result.exit_code == 0
        assert "Connected to octo/widgets" in result.output

    def test_connect_rejects_bad_repository(self, runner):
        result = runner.invoke(cli, ["github", "connect", "--repo", "owner", "--token", TOKEN])

        assert result.exit_code == 1
        assert "Repository must be in format 'owner/repo'" in result.output

    def test_simulate(self, runner, blocks_file):
        result = runner.invoke(cli, ["github", "simulate", str(blocks_file), "--speed", "0"])

        assert result.exit_code == 0
        assert "[build] Started" in result.output
        assert "✅ Pipeline execution completed successfully." in result.output

    def test_simulate_failure(self, runner, blocks_file):
        result = runner.invoke(cli, ["github", "simulate", str(blocks_file), "--speed", "0", "--fail", "test"])

        assert result.exit_code == 1
        assert "❌ Pipeline execution failed." in result.output


class TestWorkflowSource:

    def test_block_graph_is_generated(self, blocks_file):
        assert "Generated CI/CD Pipeline YAML" in load_workflow_source(blocks_file)

    def test_workflow_yaml_used_verbatim(self, tmp_path):
        path = tmp_path / "workflow.yml"
        text = "name: hand written\non: push\njobs:\n  build:\n    runs-on: ubuntu-latest\n"
        path.write_text(text)

        assert load_workflow_source(path) == text
