# core/deploy/orchestrator.py
"""Publish a workflow to GitHub, run it and relay its progress."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional, Tuple

import structlog

from core.config import Settings, get_settings
from core.deploy.client import GitHubClient
from core.deploy.credentials import parse_repository, validate_token
from core.deploy.errors import (
    DeploymentBusyError,
    DeploymentCancelledError,
    DeploymentError,
    JobLogsUnavailableError,
    RemoteAPIError,
    TransportError,
    WorkflowNotRegisteredError,
)
from core.deploy.session import (
    PASSING_CONCLUSIONS,
    DeploymentOutcome,
    DeploymentResult,
    DeploymentSession,
    DeploymentState,
    ProgressListener,
    ProgressLog,
)

logger = structlog.get_logger(__name__)

ClientFactory = Callable[[str, str], Any]
Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], datetime]

_STATUS_MESSAGES = {
    "queued": "Workflow run is queued and waiting to start...",
    "in_progress": "Workflow run is in progress...",
}


def _is_failing(conclusion: Optional[str]) -> bool:
    return conclusion is not None and conclusion not in PASSING_CONCLUSIONS


class DeploymentOrchestrator:
    """Drives one deployment at a time through the states of :class:`DeploymentState`.

    ``deploy`` never raises for remote, transport or validation problems: it
    always resolves with the progress captured so far. A second ``deploy``
    while one is running is rejected.

    Args:
        settings: Timing, path and endpoint configuration
        client_factory: ``(token, repository) -> async context manager`` yielding
            a :class:`GitHubClient`-like object
        sleep: Awaitable delay used for the registration wait and polling
        clock: Returns the current UTC time; runs created well before the
            dispatch are ignored
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client_factory: Optional[ClientFactory] = None,
        sleep: Sleep = asyncio.sleep,
        clock: Optional[Clock] = None,
    ):
        self.settings = settings or get_settings()
        self.client_factory = client_factory or self._default_client
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._active = False

    def _default_client(self, token: str, repository: str) -> GitHubClient:
        return GitHubClient(
            token,
            repository,
            api_url=self.settings.github_api_url,
            timeout=self.settings.request_timeout,
        )

    @property
    def is_running(self) -> bool:
        return self._active

    async def deploy(
        self,
        token: str,
        repository: str,
        workflow_yaml: str,
        on_progress: Optional[ProgressListener] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> DeploymentResult:
        """Commit ``workflow_yaml``, trigger it and follow the run to completion."""
        log = ProgressLog(listener=on_progress)
        session = DeploymentSession(repository=repository, workflow_yaml=workflow_yaml, log=log)

        if self._active:
            error = DeploymentBusyError()
            log.append(error.log_line())
            logger.warning("deployment_rejected", repository=repository, reason=error.kind)
            return session.result(DeploymentOutcome.FAILURE, error_kind=error.kind)

        self._active = True
        try:
            return await self._run(session, token, cancel_event or asyncio.Event())
        finally:
            self._active = False

    async def _run(self, session: DeploymentSession, token: str,
                   cancel: asyncio.Event) -> DeploymentResult:
        log = session.log
        log.append("Initializing GitHub Actions deployment...")
        logger.info("deployment_started", repository=session.repository)

        try:
            session.enter(DeploymentState.VALIDATING_CREDENTIALS)
            validate_token(token)
            parse_repository(session.repository)
            if not session.workflow_yaml or not session.workflow_yaml.strip():
                raise DeploymentError("Workflow content is required")
            self._checkpoint(cancel)

            async with self.client_factory(token, session.repository) as client:
                return await self._execute(session, client, cancel)

        except DeploymentCancelledError as e:
            log.append(e.log_line())
            logger.info("deployment_cancelled", repository=session.repository,
                        state=session.state.value)
            return session.result(DeploymentOutcome.INDETERMINATE, error_kind=e.kind)

        except WorkflowNotRegisteredError as e:
            log.append(e.log_line())
            logger.warning("workflow_not_registered", repository=session.repository, path=e.path)
            return session.result(DeploymentOutcome.INDETERMINATE, error_kind=e.kind)

        except DeploymentError as e:
            log.append(e.log_line())
            logger.error("deployment_failed", repository=session.repository,
                         state=session.state.value, kind=e.kind, error=str(e))
            return session.result(DeploymentOutcome.FAILURE, error_kind=e.kind)

        except (KeyError, TypeError, ValueError) as e:
            # Malformed response body
            log.append(f"❌ Error: unexpected response from GitHub ({type(e).__name__}: {e})")
            logger.exception("deployment_bad_response", repository=session.repository,
                             state=session.state.value)
            return session.result(DeploymentOutcome.FAILURE, error_kind="remote")

    async def _execute(self, session: DeploymentSession, client: Any,
                       cancel: asyncio.Event) -> DeploymentResult:
        log = session.log
        settings = self.settings

        session.enter(DeploymentState.FETCHING_REPO_METADATA)
        log.append("Fetching repository information...")
        repo = await client.get_repository()
        session.branch = repo.default_branch
        log.append(f"Using default branch: {session.branch}")

        self._checkpoint(cancel)
        session.enter(DeploymentState.RESOLVING_COMMIT_BASE)
        log.append("Getting latest commit information...")
        session.base_commit = await client.get_branch_head(session.branch)
        log.append(f"Latest commit SHA: {session.base_commit[:7]}")
        session.base_tree = await client.get_tree_sha(session.base_commit)

        self._checkpoint(cancel)
        session.enter(DeploymentState.PUBLISHING_WORKFLOW)
        log.append("Creating workflow file...")
        blob_sha = await client.create_blob(session.workflow_yaml)
        log.append("Setting up directory structure...")
        tree_sha = await client.create_tree(session.base_tree, settings.workflow_path, blob_sha)
        log.append("Committing workflow file to repository...")
        session.commit_sha = await client.create_commit(
            settings.commit_message, tree_sha, session.base_commit
        )
        log.append(f"Updating {session.branch} branch reference...")
        await client.update_ref(session.branch, session.commit_sha)
        log.append(f"✅ Workflow file committed successfully to {session.branch}")
        logger.info("workflow_published", repository=session.repository,
                    branch=session.branch, commit=session.commit_sha[:7])

        session.enter(DeploymentState.AWAITING_REGISTRATION)
        log.append("Waiting for GitHub to register the workflow...")
        await self._pause(settings.registration_delay, cancel)
        log.append("Fetching workflow information...")
        workflow = await client.find_workflow(settings.workflow_path)
        if workflow is None:
            raise WorkflowNotRegisteredError(settings.workflow_path)
        session.workflow_id = workflow.id
        session.workflow_name = workflow.name

        self._checkpoint(cancel)
        session.enter(DeploymentState.TRIGGERING_RUN)
        log.append(f'Triggering workflow run for "{workflow.name}"...')
        session.dispatched_at = self._clock()
        await client.dispatch_workflow(workflow.id, session.branch)
        log.append("✅ Workflow triggered successfully")

        session.enter(DeploymentState.POLLING_RUN)
        log.append("Waiting for workflow run to start...")
        await self._poll_run(session, client, cancel)

        if session.run_id is None:
            log.append(
                "Workflow was triggered but no run was detected after waiting. "
                "Check your GitHub Actions tab for status."
            )
            return session.result(DeploymentOutcome.INDETERMINATE)

        if session.run_status != "completed":
            log.append(f"Workflow run is still in progress. Status: {session.run_status}.")
            log.append(f"View run at: {session.run_url}")
            logger.info("run_still_in_progress", run_id=session.run_id, status=session.run_status)
            return session.result(DeploymentOutcome.INDETERMINATE)

        session.enter(DeploymentState.COLLECTING_RESULTS)
        failing = await self._collect_results(session, client, cancel)

        session.enter(DeploymentState.DONE)
        log.append(f"✅ View complete run at: {session.run_url}")
        outcome = DeploymentOutcome.FAILURE if failing else DeploymentOutcome.SUCCESS
        logger.info("deployment_finished", repository=session.repository,
                    run_id=session.run_id, outcome=outcome.value)
        return session.result(outcome)

    async def _poll_run(self, session: DeploymentSession, client: Any,
                        cancel: asyncio.Event) -> None:
        attempts = self.settings.poll_attempts
        since = None
        if session.dispatched_at is not None:
            since = session.dispatched_at - timedelta(seconds=self.settings.dispatch_clock_skew)
        for attempt in range(attempts):
            self._checkpoint(cancel)
            run = await client.latest_run(session.workflow_id, session.branch, since=since)
            if run is not None:
                if session.run_id is None:
                    logger.info("run_detected", run_id=run.id)
                session.run_id = run.id
                session.run_url = self._run_url(session.repository, run.id)

                if run.status != session.run_status:
                    session.run_status = run.status
                    session.conclusion = run.conclusion
                    session.log.append(self._status_line(run.status, run.conclusion))

                if run.status == "completed":
                    return

            if attempt < attempts - 1:
                await self._pause(self.settings.poll_interval, cancel)

    async def _collect_results(self, session: DeploymentSession, client: Any,
                               cancel: asyncio.Event) -> bool:
        """Relay per-job results and logs; return True if anything failed."""
        log = session.log
        log.append("Fetching job results...")
        jobs = await client.list_run_jobs(session.run_id)

        failing = _is_failing(session.conclusion)
        for job in jobs:
            self._checkpoint(cancel)
            log.append(f"Job: {job.name}")
            log.append(f"Status: {job.status}, Conclusion: {job.conclusion}")
            failing = failing or _is_failing(job.conclusion)

            log.append(f'Fetching logs for job "{job.name}"...')
            try:
                text = await client.get_job_logs(job.id)
            except (RemoteAPIError, TransportError, ValueError) as e:
                error = JobLogsUnavailableError(job.name, cause=e)
                log.append(error.log_line())
                logger.warning("job_logs_unavailable", job=job.name, error=str(e))
                continue

            for line in (text or "").splitlines():
                if line.strip():
                    log.append(line)

        return failing

    async def check_connection(self, token: str, repository: str) -> Tuple[bool, str]:
        """Validate credentials locally, then confirm the repository is reachable."""
        try:
            validate_token(token)
            parse_repository(repository)
            async with self.client_factory(token, repository) as client:
                repo = await client.get_repository()
        except RemoteAPIError as e:
            message = e.payload.get("message") if isinstance(e.payload, dict) else e.payload
            logger.warning("connection_check_failed", repository=repository, status=e.status)
            return False, f"GitHub returned HTTP {e.status}: {message}"
        except DeploymentError as e:
            return False, str(e)

        logger.info("connection_check_passed", repository=repository)
        return True, f"Connected to {repo.full_name or repository} (default branch: {repo.default_branch})"

    def _run_url(self, repository: str, run_id: int) -> str:
        return f"{self.settings.github_web_url.rstrip('/')}/{repository}/actions/runs/{run_id}"

    @staticmethod
    def _status_line(status: Optional[str], conclusion: Optional[str]) -> str:
        if status == "completed":
            return f"Workflow run completed with conclusion: {conclusion}"
        return _STATUS_MESSAGES.get(status, f"Workflow run status: {status}")

    @staticmethod
    def _checkpoint(cancel: asyncio.Event) -> None:
        if cancel.is_set():
            raise DeploymentCancelledError()

    async def _pause(self, seconds: float, cancel: asyncio.Event) -> None:
        """Sleep for ``seconds`` unless cancelled first."""
        self._checkpoint(cancel)
        sleeper = asyncio.ensure_future(self._sleep(seconds))
        waiter = asyncio.ensure_future(cancel.wait())
        done, pending = await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._checkpoint(cancel)
