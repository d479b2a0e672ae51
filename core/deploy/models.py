"""Pydantic models for GitHub REST responses."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class _GitHubModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Repository(_GitHubModel):
    """Repository metadata."""
    full_name: str = ""
    default_branch: str
    private: bool = False


class Workflow(_GitHubModel):
    """Registered workflow."""
    id: int
    name: str
    path: str
    state: str = "active"


class WorkflowRun(_GitHubModel):
    """One execution of a workflow."""
    id: int
    status: Optional[str] = None
    conclusion: Optional[str] = None
    html_url: Optional[str] = None
    head_branch: Optional[str] = None
    event: Optional[str] = None
    created_at: Optional[datetime] = None

    def is_dispatch_since(self, since: datetime) -> bool:
        """Whether this run could be the one a dispatch at ``since`` started."""
        if self.event is not None and self.event != "workflow_dispatch":
            return False
        return self.created_at is None or self.created_at >= since


class WorkflowJob(_GitHubModel):
    """One job of a workflow run."""
    id: int
    name: str
    status: Optional[str] = None
    conclusion: Optional[str] = None
