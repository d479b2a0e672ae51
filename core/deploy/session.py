"""Deployment session types: states, outcome, progress log and result."""

import time
from datetime import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

import structlog

logger = structlog.get_logger(__name__)


class DeploymentState(str, Enum):
    """Orchestrator states, entered strictly in this order."""
    VALIDATING_CREDENTIALS = "validating-credentials"
    FETCHING_REPO_METADATA = "fetching-repo-metadata"
    RESOLVING_COMMIT_BASE = "resolving-commit-base"
    PUBLISHING_WORKFLOW = "publishing-workflow"
    AWAITING_REGISTRATION = "awaiting-registration"
    TRIGGERING_RUN = "triggering-run"
    POLLING_RUN = "polling-run"
    COLLECTING_RESULTS = "collecting-results"
    DONE = "done"


class DeploymentOutcome(str, Enum):
    """Terminal outcome of a deployment."""
    SUCCESS = "success"
    FAILURE = "failure"
    INDETERMINATE = "indeterminate"


# Job and run conclusions that do not fail a deployment
PASSING_CONCLUSIONS = frozenset({"success", "skipped", "neutral"})


@dataclass(frozen=True)
class ProgressEntry:
    """One timestamped progress line."""
    timestamp: float
    message: str


ProgressListener = Callable[[ProgressEntry], None]


class ProgressLog:
    """Append-only, ordered progress log.

    The optional listener sees every entry as it is appended; a listener
    that raises is logged and otherwise ignored.
    """

    def __init__(self, listener: Optional[ProgressListener] = None,
                 clock: Callable[[], float] = time.time):
        self._entries: List[ProgressEntry] = []
        self._listener = listener
        self._clock = clock

    def append(self, message: str) -> ProgressEntry:
        entry = ProgressEntry(timestamp=self._clock(), message=message)
        self._entries.append(entry)
        if self._listener is not None:
            try:
                self._listener(entry)
            except Exception as e:
                logger.warning("progress_listener_failed", error=str(e))
        return entry

    def extend(self, messages: List[str]) -> None:
        for message in messages:
            self.append(message)

    @property
    def entries(self) -> List[ProgressEntry]:
        return list(self._entries)

    @property
    def messages(self) -> List[str]:
        return [entry.message for entry in self._entries]

    def render(self) -> str:
        return "\n".join(self.messages)

    def __len__(self) -> int:
        return len(self._entries)


@dataclass
class DeploymentResult:
    """What a deployment hands back to its caller."""
    outcome: DeploymentOutcome
    entries: List[ProgressEntry] = field(default_factory=list)
    state: DeploymentState = DeploymentState.DONE
    run_id: Optional[int] = None
    run_url: Optional[str] = None
    conclusion: Optional[str] = None
    error_kind: Optional[str] = None

    @property
    def messages(self) -> List[str]:
        return [entry.message for entry in self.entries]

    @property
    def succeeded(self) -> bool:
        return self.outcome == DeploymentOutcome.SUCCESS


@dataclass
class DeploymentSession:
    """Mutable bookkeeping for one deployment call."""
    repository: str
    workflow_yaml: str
    log: ProgressLog
    state: DeploymentState = DeploymentState.VALIDATING_CREDENTIALS
    branch: Optional[str] = None
    base_commit: Optional[str] = None
    base_tree: Optional[str] = None
    commit_sha: Optional[str] = None
    workflow_id: Optional[int] = None
    workflow_name: Optional[str] = None
    dispatched_at: Optional[datetime] = None
    run_id: Optional[int] = None
    run_url: Optional[str] = None
    run_status: Optional[str] = None
    conclusion: Optional[str] = None

    def enter(self, state: DeploymentState) -> None:
        logger.debug("deployment_state", repository=self.repository, state=state.value)
        self.state = state

    def result(self, outcome: DeploymentOutcome, error_kind: Optional[str] = None) -> DeploymentResult:
        return DeploymentResult(
            outcome=outcome,
            entries=self.log.entries,
            state=self.state,
            run_id=self.run_id,
            run_url=self.run_url,
            conclusion=self.conclusion,
            error_kind=error_kind,
        )
