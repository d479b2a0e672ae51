"""
Pytest configuration and fixtures for the visual-cicd project.
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest
from unittest.mock import AsyncMock

from core.config import Settings
from core.deploy.models import Repository, Workflow, WorkflowJob, WorkflowRun
from core.visual.nodes import JobNode, PipelineNode, StepNode


VALID_TOKEN = "ghp_" + "a" * 36
REPO = "octo/widgets"
WORKFLOW_PATH = ".github/workflows/visual-cicd-workflow.yml"


@pytest.fixture
def ci_pipeline():
    """Pipeline 'ci': build (checkout, compile) then test (needs build)."""
    return PipelineNode(
        name="ci",
        jobs=[
            JobNode(name="build", steps=[StepNode(name="checkout"), StepNode(name="compile")]),
            JobNode(name="test", needs=["build"], steps=[StepNode(name="run_tests")]),
        ],
    )


@pytest.fixture
def block_payload():
    """Editor payload equivalent to ``ci_pipeline`` plus a trigger and env var."""
    return {
        "type": "pipeline",
        "name": "ci",
        "triggers": [{"type": "trigger", "event": "push", "branches": ["main"]}],
        "env": [{"type": "env_var", "key": "PYTHON_VERSION", "value": "3.11"}],
        "jobs": [
            {
                "type": "job",
                "name": "build",
                "steps": [
                    {"type": "step", "name": "checkout"},
                    {"type": "step", "name": "compile"},
                ],
            },
            {
                "type": "job",
                "name": "test",
                "needs": ["build"],
                "steps": [{"type": "step", "name": "run_tests"}],
            },
        ],
    }


@pytest.fixture
def fast_settings():
    """Settings with no waiting and a short poll window."""
    return Settings(
        registration_delay=0,
        poll_attempts=3,
        poll_interval=0,
        _env_file=None,
    )


class FakeGitHubClient:
    """Stand-in for GitHubClient with AsyncMock endpoints and a happy-path default."""

    def __init__(self):
        self.get_repository = AsyncMock(return_value=Repository(full_name=REPO, default_branch="main"))
        self.get_branch_head = AsyncMock(return_value="abc1234def5678")
        self.get_tree_sha = AsyncMock(return_value="tree000")
        self.create_blob = AsyncMock(return_value="blob111")
        self.create_tree = AsyncMock(return_value="tree222")
        self.create_commit = AsyncMock(return_value="commit333")
        self.update_ref = AsyncMock(return_value=None)
        self.find_workflow = AsyncMock(
            return_value=Workflow(id=7, name="ci", path=WORKFLOW_PATH)
        )
        self.dispatch_workflow = AsyncMock(return_value=None)
        self.latest_run = AsyncMock(side_effect=[
            WorkflowRun(id=99, status="queued"),
            WorkflowRun(id=99, status="completed", conclusion="success"),
        ])
        self.list_run_jobs = AsyncMock(return_value=[
            WorkflowJob(id=1, name="build", status="completed", conclusion="success"),
            WorkflowJob(id=2, name="test", status="completed", conclusion="success"),
        ])
        self.get_job_logs = AsyncMock(side_effect=lambda job_id: f"line one of {job_id}\n\nline two of {job_id}\n")
        self.entered = 0

    async def __aenter__(self):
        self.entered += 1
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return None


@pytest.fixture
def fake_client():
    return FakeGitHubClient()


@pytest.fixture
def client_factory(fake_client):
    """Factory handing out ``fake_client`` and recording the credentials used."""
    calls = []

    def factory(token, repository):
        calls.append((token, repository))
        return fake_client

    factory.calls = calls
    return factory


@pytest.fixture
def no_sleep():
    return AsyncMock(return_value=None)
