# core/deploy/__init__.py
"""GitHub Actions deployment: credentials, client, orchestrator and simulation."""

from .credentials import validate_credentials, parse_repository
from .errors import (
    DeploymentError,
    CredentialValidationError,
    RemoteAPIError,
    RefConflictError,
    TransportError,
    WorkflowNotRegisteredError,
    JobLogsUnavailableError,
    DeploymentBusyError,
    DeploymentCancelledError,
)
from .client import GitHubClient
from .session import (
    DeploymentState,
    DeploymentOutcome,
    DeploymentResult,
    ProgressEntry,
    ProgressLog,
)
from .orchestrator import DeploymentOrchestrator
from .simulation import PipelineSimulator

__all__ = [
    'validate_credentials',
    'parse_repository',
    'DeploymentError',
    'CredentialValidationError',
    'RemoteAPIError',
    'RefConflictError',
    'TransportError',
    'WorkflowNotRegisteredError',
    'JobLogsUnavailableError',
    'DeploymentBusyError',
    'DeploymentCancelledError',
    'GitHubClient',
    'DeploymentState',
    'DeploymentOutcome',
    'DeploymentResult',
    'ProgressEntry',
    'ProgressLog',
    'DeploymentOrchestrator',
    'PipelineSimulator',
]
