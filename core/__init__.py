"""Visual CI/CD core: block graph, YAML generator and GitHub deployment."""

__version__ = "1.0.0"

from core.visual.nodes import PipelineNode, JobNode, StepNode
from core.generator.engine import PipelineGenerator, generate_pipeline_yaml
from core.deploy.orchestrator import DeploymentOrchestrator
from core.deploy.session import DeploymentOutcome, DeploymentResult

__all__ = [
    "PipelineNode",
    "JobNode",
    "StepNode",
    "PipelineGenerator",
    "generate_pipeline_yaml",
    "DeploymentOrchestrator",
    "DeploymentOutcome",
    "DeploymentResult",
]
