"""Local stand-in for a deployment when no repository is connected."""

import asyncio
from typing import Awaitable, Callable, Iterable, List, Optional

import structlog
import yaml

from core.deploy.session import DeploymentOutcome, DeploymentResult, ProgressListener, ProgressLog

logger = structlog.get_logger(__name__)

DEFAULT_JOBS = ["build", "test", "deploy"]


def job_names(workflow_yaml: str) -> List[str]:
    """Job names of a generated pipeline in document order."""
    try:
        document = yaml.safe_load(workflow_yaml or "")
    except yaml.YAMLError as e:
        logger.debug("simulation_yaml_unreadable", error=str(e))
        return []
    if not isinstance(document, dict) or not isinstance(document.get("jobs"), dict):
        return []
    return [str(name) for name in document["jobs"]]


class PipelineSimulator:
    """Walks the jobs of a pipeline and narrates a fake run.

    Each narrated line waits ``delay_scale`` times the step's nominal delay
    (in seconds) before it is appended. Jobs named in ``fail_jobs`` fail and
    stop the run.
    """

    def __init__(self, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
                 delay_scale: float = 1.0):
        self._sleep = sleep
        self.delay_scale = delay_scale

    async def run(self, workflow_yaml: str, fail_jobs: Iterable[str] = (),
                  on_progress: Optional[ProgressListener] = None) -> DeploymentResult:
        log = ProgressLog(listener=on_progress)
        failing = set(fail_jobs)
        jobs = job_names(workflow_yaml) or list(DEFAULT_JOBS)

        log.append("Initializing pipeline...")
        await self._say(log, "Running in simulation mode (no repository connected)", 0.3)

        for job in jobs:
            await self._say(log, f"[{job}] Started", 0.3)
            if job in failing:
                await self._say(log, f"[{job}] Running commands...", 0.5)
                await self._say(log, f"[{job}] ❌ Job failed: simulated failure", 0.7)
                await self._say(log, "❌ Pipeline execution failed.", 0.3)
                logger.info("simulation_finished", outcome="failure", job=job)
                return DeploymentResult(
                    outcome=DeploymentOutcome.FAILURE,
                    entries=log.entries,
                    conclusion="failure",
                )
            await self._say(log, f"[{job}] Processing...", 0.4)
            await self._say(log, f"[{job}] Running commands...", 0.5)
            await self._say(log, f"[{job}] Completed successfully", 0.6)

        await self._say(log, "✅ Pipeline execution completed successfully.", 0.3)
        logger.info("simulation_finished", outcome="success", jobs=len(jobs))
        return DeploymentResult(
            outcome=DeploymentOutcome.SUCCESS,
            entries=log.entries,
            conclusion="success",
        )

    async def _say(self, log: ProgressLog, message: str, delay: float) -> None:
        if self.delay_scale > 0:
            await self._sleep(delay * self.delay_scale)
        log.append(message)
