# core/generator/engine.py
"""Pipeline YAML generation from the block graph."""

from typing import Dict, Any, List, Optional

import structlog
import yaml

from core.config import get_settings
from core.visual.flow import validate_pipeline
from core.visual.nodes import (
    BlockNode,
    ConditionalNode,
    EnvVarNode,
    JobNode,
    PipelineNode,
    StepNode,
    TriggerNode,
)

logger = structlog.get_logger(__name__)


DEFAULT_HEADER = (
    "Generated CI/CD Pipeline YAML\n"
    "This YAML is compatible with GitHub Actions"
)


class PipelineValidationError(ValueError):
    """Raised in strict mode when the block graph has semantic problems."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__("Invalid pipeline: " + "; ".join(errors))


class _PipelineDumper(yaml.SafeDumper):
    """Safe dumper that indents block sequences under their key."""

    def increase_indent(self, flow: bool = False, indentless: bool = False):
        return super().increase_indent(flow, False)


def _join_conditions(outer: Optional[str], inner: str) -> str:
    if not outer:
        return inner
    if not inner:
        return outer
    return f"({outer}) && ({inner})"


class PipelineGenerator:
    """Render a block graph as a pipeline definition.

    The generator is a renderer, not a linter: dangling ``needs`` references
    and duplicate job names are emitted as authored unless ``strict`` is set.
    Unknown blocks are skipped. Output is stable: the same tree always yields
    the same text.
    """

    def __init__(self, strict: bool = False, header: Optional[str] = None,
                 default_name: Optional[str] = None):
        self.strict = strict
        self.header = header
        self.default_name = default_name or get_settings().default_pipeline_name

    def generate(self, root: Optional[PipelineNode]) -> str:
        """Generate YAML text for ``root`` (``None`` yields an empty pipeline)."""
        if self.strict:
            errors = validate_pipeline(root)
            if errors:
                raise PipelineValidationError(errors)

        document = self.build_document(root)
        body = yaml.dump(
            document,
            Dumper=_PipelineDumper,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
            width=4096,
        )

        if self.header:
            comment = "\n".join(f"# {line}".rstrip() for line in self.header.splitlines())
            return f"{comment}\n\n{body}"
        return body

    def build_document(self, root: Optional[PipelineNode]) -> Dict[str, Any]:
        """Build the ordered document mapping."""
        if root is None:
            root = PipelineNode(name=self.default_name)

        return {
            "name": root.name or self.default_name,
            "concurrent": bool(root.concurrent),
            "on": self._emit_triggers(root.triggers),
            "jobs": self._emit_jobs(root.jobs),
            "env": self._emit_env(root.env),
        }

    # ------------------------------------------------------------------
    # Emission templates
    # ------------------------------------------------------------------

    def _emit_triggers(self, nodes: List[BlockNode]) -> Dict[str, Any]:
        triggers: Dict[str, Any] = {}
        for node in nodes:
            if not isinstance(node, TriggerNode):
                self._skip(node, "triggers")
                continue

            if node.event == "schedule":
                if node.cron:
                    triggers.setdefault("schedule", []).append({"cron": node.cron})
                continue

            spec = triggers.setdefault(node.event, {})
            if node.branches:
                branches = spec.setdefault("branches", [])
                branches.extend(b for b in node.branches if b not in branches)
        return triggers

    def _emit_env(self, nodes: List[BlockNode]) -> Dict[str, Any]:
        env: Dict[str, Any] = {}
        for node in nodes:
            if isinstance(node, EnvVarNode) and node.key:
                env[node.key] = node.value
            else:
                self._skip(node, "env")
        return env

    def _emit_jobs(self, nodes: List[BlockNode], condition: Optional[str] = None) -> Dict[str, Any]:
        jobs: Dict[str, Any] = {}
        for node in nodes:
            if isinstance(node, ConditionalNode):
                nested = self._emit_jobs(node.children, _join_conditions(condition, node.expression))
                for name, spec in nested.items():
                    self._put_job(jobs, name, spec)
            elif isinstance(node, JobNode) and node.name:
                self._put_job(jobs, node.name, self._emit_job(node, condition))
            else:
                self._skip(node, "jobs")
        return jobs

    def _put_job(self, jobs: Dict[str, Any], name: str, spec: Dict[str, Any]) -> None:
        if name in jobs:
            logger.warning("duplicate_job_name", job=name)
        jobs[name] = spec

    def _emit_job(self, job: JobNode, condition: Optional[str]) -> Dict[str, Any]:
        spec: Dict[str, Any] = {
            "description": job.description,
            "continue-on-error": bool(job.continue_on_error),
        }
        if condition:
            spec["if"] = condition
        if job.runs_on:
            spec["runs-on"] = job.runs_on
        spec["steps"] = self._emit_steps(job.steps)
        if job.needs:
            spec["needs"] = list(job.needs)
        return spec

    def _emit_steps(self, nodes: List[BlockNode], condition: Optional[str] = None) -> List[Dict[str, Any]]:
        steps: List[Dict[str, Any]] = []
        for node in nodes:
            if isinstance(node, ConditionalNode):
                steps.extend(self._emit_steps(node.children, _join_conditions(condition, node.expression)))
            elif isinstance(node, StepNode) and node.name:
                step: Dict[str, Any] = {"name": node.name}
                if condition:
                    step["if"] = condition
                if node.arguments:
                    step["with"] = dict(node.arguments)
                steps.append(step)
            else:
                self._skip(node, "steps")
        return steps

    def _skip(self, node: Any, section: str) -> None:
        logger.debug("block_skipped", section=section, block=type(node).__name__)


def generate_pipeline_yaml(root: Optional[PipelineNode], strict: bool = False,
                           header: Optional[str] = None) -> str:
    """Generate pipeline YAML for a block graph."""
    return PipelineGenerator(strict=strict, header=header).generate(root)
