# core/deploy/client.py
"""Async GitHub REST client for workflow deployment."""

import asyncio
import base64
from datetime import datetime
from typing import Any, Dict, List, Optional

import aiohttp
import structlog

from core.config import get_settings
from core.deploy.credentials import parse_repository
from core.deploy.errors import RefConflictError, RemoteAPIError, TransportError
from core.deploy.models import Repository, Workflow, WorkflowJob, WorkflowRun

logger = structlog.get_logger(__name__)

ACCEPT_HEADER = "application/vnd.github.v3+json"


def _is_ref_conflict(status: int, payload: Any) -> bool:
    if status == 409:
        return True
    if status == 422:
        message = payload.get("message", "") if isinstance(payload, dict) else str(payload)
        return "fast forward" in message.lower()
    return False


class GitHubClient:
    """Client for the GitHub git-data and Actions endpoints of one repository.

    Use as an async context manager; a session passed in by the caller is
    left open on exit.
    """

    def __init__(
        self,
        token: str,
        repository: str,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        settings = get_settings()
        self.owner, self.name = parse_repository(repository)
        self.api_url = (api_url or settings.github_api_url).rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout or settings.request_timeout)
        self.headers = {
            "Authorization": f"Bearer {token}",
            "Accept": ACCEPT_HEADER,
            "User-Agent": "visual-cicd",
        }
        self._session = session
        self._owns_session = session is None

    @property
    def repository(self) -> str:
        return f"{self.owner}/{self.name}"

    async def __aenter__(self) -> "GitHubClient":
        if self._session is None:
            self._session = aiohttp.ClientSession(headers=self.headers, timeout=self.timeout)
            self._owns_session = True
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        expect_text: bool = False,
        accept: Optional[str] = None,
    ) -> Any:
        if self._session is None:
            raise RuntimeError("GitHubClient must be used as an async context manager")

        url = f"{self.api_url}/repos/{self.owner}/{self.name}{path}"
        headers = dict(self.headers, Accept=accept) if accept else self.headers
        logger.debug("github_request", method=method, path=path)
        try:
            async with self._session.request(
                method, url, json=json, params=params,
                headers=headers, timeout=self.timeout,
            ) as response:
                if response.status < 200 or response.status >= 300:
                    raise RemoteAPIError(
                        response.status, await self._read_payload(response),
                        method=method, path=path,
                    )
                if expect_text:
                    # Job logs are not guaranteed to be valid UTF-8
                    raw = await response.read()
                    return raw.decode("utf-8", errors="replace")
                if response.status == 204:
                    return None
                text = await response.text()
                if not text:
                    return None
                return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("github_transport_error", method=method, path=path, error=str(e))
            raise TransportError(str(e) or type(e).__name__, cause=e) from e

    @staticmethod
    async def _read_payload(response: aiohttp.ClientResponse) -> Any:
        text = (await response.read()).decode("utf-8", errors="replace")
        try:
            return await response.json(content_type=None)
        except ValueError:
            return text

    # Repository and git data

    async def get_repository(self) -> Repository:
        return Repository.model_validate(await self._request("GET", ""))

    async def get_branch_head(self, branch: str) -> str:
        """Return the SHA of the latest commit on ``branch``."""
        data = await self._request("GET", f"/branches/{branch}")
        return data["commit"]["sha"]

    async def get_tree_sha(self, commit_sha: str) -> str:
        data = await self._request("GET", f"/git/trees/{commit_sha}")
        return data["sha"]

    async def create_blob(self, content: str) -> str:
        encoded = base64.b64encode(content.encode("utf-8")).decode("ascii")
        data = await self._request("POST", "/git/blobs", json={
            "content": encoded,
            "encoding": "base64",
        })
        return data["sha"]

    async def create_tree(self, base_tree: str, path: str, blob_sha: str) -> str:
        data = await self._request("POST", "/git/trees", json={
            "base_tree": base_tree,
            "tree": [{
                "path": path,
                "mode": "100644",
                "type": "blob",
                "sha": blob_sha,
            }],
        })
        return data["sha"]

    async def create_commit(self, message: str, tree_sha: str, parent_sha: str) -> str:
        data = await self._request("POST", "/git/commits", json={
            "message": message,
            "tree": tree_sha,
            "parents": [parent_sha],
        })
        return data["sha"]

    async def update_ref(self, branch: str, commit_sha: str) -> None:
        """Advance ``branch`` to ``commit_sha`` without forcing.

        Raises:
            RefConflictError: the branch moved since its head was read
        """
        path = f"/git/refs/heads/{branch}"
        try:
            await self._request("PATCH", path, json={"sha": commit_sha, "force": False})
        except RemoteAPIError as e:
            if _is_ref_conflict(e.status, e.payload):
                raise RefConflictError(e.status, e.payload, branch, method="PATCH", path=path) from e
            raise

    # Actions

    async def list_workflows(self) -> List[Workflow]:
        data = await self._request("GET", "/actions/workflows")
        return [Workflow.model_validate(w) for w in (data or {}).get("workflows", [])]

    async def find_workflow(self, path: str) -> Optional[Workflow]:
        for workflow in await self.list_workflows():
            if workflow.path == path:
                return workflow
        return None

    async def dispatch_workflow(self, workflow_id: int, ref: str) -> None:
        await self._request("POST", f"/actions/workflows/{workflow_id}/dispatches", json={"ref": ref})

    async def list_workflow_runs(self, workflow_id: int, branch: str) -> List[WorkflowRun]:
        """Runs for a workflow on ``branch``, most recent first."""
        data = await self._request(
            "GET", f"/actions/workflows/{workflow_id}/runs", params={"branch": branch}
        )
        return [WorkflowRun.model_validate(r) for r in (data or {}).get("workflow_runs", [])]

    async def latest_run(self, workflow_id: int, branch: str,
                         since: Optional[datetime] = None) -> Optional[WorkflowRun]:
        """Most recent run on ``branch``.

        With ``since``, runs from other events or created before ``since`` are
        skipped so an earlier run of the same workflow is never picked up.
        """
        for run in await self.list_workflow_runs(workflow_id, branch):
            if since is None or run.is_dispatch_since(since):
                return run
        return None

    async def list_run_jobs(self, run_id: int) -> List[WorkflowJob]:
        data = await self._request("GET", f"/actions/runs/{run_id}/jobs")
        return [WorkflowJob.model_validate(j) for j in (data or {}).get("jobs", [])]

    async def get_job_logs(self, job_id: int) -> str:
        return await self._request(
            "GET", f"/actions/jobs/{job_id}/logs",
            expect_text=True, accept="application/octet-stream",
        )
