# core/deploy/errors.py
"""Deployment error taxonomy."""

import json
from typing import Any, Optional


class DeploymentError(Exception):
    """Base class for every deployment failure."""

    kind = "deployment"

    def log_line(self) -> str:
        """Single progress-log line describing this failure."""
        return f"❌ Error: {self}"


class CredentialValidationError(DeploymentError):
    """Malformed token or repository identifier; raised before any network call."""

    kind = "validation"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)

    def log_line(self) -> str:
        return f"❌ Invalid credentials: {self.reason}"


class RemoteAPIError(DeploymentError):
    """The API answered with a non-2xx status."""

    kind = "remote"

    def __init__(self, status: int, payload: Any, method: str = "", path: str = ""):
        self.status = status
        self.payload = payload
        self.method = method
        self.path = path
        super().__init__(f"{method} {path} failed with HTTP {status}".strip())

    def payload_text(self) -> str:
        if isinstance(self.payload, str):
            return json.dumps(self.payload)
        return json.dumps(self.payload, sort_keys=True, default=str)

    def log_line(self) -> str:
        return f"❌ Error {self.status}: {self.payload_text()}"


class RefConflictError(RemoteAPIError):
    """The branch moved while publishing; a non-force ref update was refused."""

    kind = "conflict"

    def __init__(self, status: int, payload: Any, branch: str, method: str = "", path: str = ""):
        self.branch = branch
        super().__init__(status, payload, method=method, path=path)

    def log_line(self) -> str:
        return (
            f"❌ Conflict {self.status}: branch '{self.branch}' moved while the workflow was being "
            f"published; run the deployment again to commit on top of the latest branch state."
        )


class TransportError(DeploymentError):
    """The request never produced a response."""

    kind = "transport"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)


class WorkflowNotRegisteredError(DeploymentError):
    """The committed workflow file is not yet visible as a runnable workflow."""

    kind = "registration"

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Workflow {path} is not registered yet")

    def log_line(self) -> str:
        return (
            "⚠️ Workflow file was created but workflow was not found. "
            "It may take a moment for GitHub to register the workflow."
        )


class JobLogsUnavailableError(DeploymentError):
    """Logs for a single job could not be fetched. Absorbed by the orchestrator."""

    kind = "partial"

    def __init__(self, job_name: str, cause: Optional[BaseException] = None):
        self.job_name = job_name
        self.cause = cause
        super().__init__(f"Logs unavailable for job {job_name}")

    def log_line(self) -> str:
        return "Logs unavailable for this job."


class DeploymentBusyError(DeploymentError):
    """A deployment is already running on this orchestrator."""

    kind = "busy"

    def __init__(self):
        super().__init__("A deployment is already in progress")

    def log_line(self) -> str:
        return "❌ A deployment is already in progress; wait for it to finish before starting another."


class DeploymentCancelledError(DeploymentError):
    """The caller signalled cancellation."""

    kind = "cancelled"

    def __init__(self):
        super().__init__("Deployment cancelled")

    def log_line(self) -> str:
        return "⏹️ Deployment cancelled; returning the progress captured so far."
