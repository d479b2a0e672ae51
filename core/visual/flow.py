# core/visual/flow.py
"""Build the block graph AST from editor payloads."""

import json
from pathlib import Path
from typing import Dict, Any, List, Optional, Iterator, Union

import structlog
import yaml

from core.visual.nodes import (
    BlockNode,
    ConditionalNode,
    EnvVarNode,
    JobNode,
    NodeLibrary,
    PipelineNode,
    StepNode,
    TriggerNode,
    UnknownNode,
)

logger = structlog.get_logger(__name__)


class BlockGraphError(ValueError):
    """Raised when an editor payload cannot be read as a block graph at all."""


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1", "on")
    return bool(value)


def _as_name_list(value: Any) -> List[str]:
    """Accept ``["a", "b"]`` or the editor's comma separated text field."""
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return [str(item).strip() for item in value if str(item).strip()]


class BlockGraphBuilder:
    """Turns nested block dicts into AST nodes.

    Each block is a mapping with a ``type`` key naming a block from the
    :class:`NodeLibrary`. Blocks of unknown type, or blocks nested where their
    parent does not accept them, become :class:`UnknownNode` placeholders.
    """

    def __init__(self, library: Optional[NodeLibrary] = None):
        self.library = library or NodeLibrary()
        self._builders = {
            "pipeline": self._build_pipeline,
            "job": self._build_job,
            "step": self._build_step,
            "trigger": self._build_trigger,
            "env_var": self._build_env_var,
            "conditional": self._build_conditional,
        }

    def build(self, block: Dict[str, Any], parent: Optional[str] = None) -> BlockNode:
        if not isinstance(block, dict):
            return UnknownNode(type=type(block).__name__, data={"value": block})

        block_type = block.get("type")
        node_type = self.library.get_node_type(block_type) if block_type else None
        builder = self._builders.get(block_type)
        if node_type is None or builder is None:
            logger.debug("unknown_block_skipped", block_type=block_type)
            return UnknownNode(type=str(block_type), data=dict(block))

        if parent is not None:
            parent_type = self.library.get_node_type(parent)
            if parent_type is not None and not parent_type.accepts(block_type):
                logger.debug("misplaced_block_skipped", block_type=block_type, parent=parent)
                return UnknownNode(type=block_type, data=dict(block))

        return builder(block)

    def _children(self, blocks: Any, parent: str) -> List[BlockNode]:
        if not blocks:
            return []
        if isinstance(blocks, dict):
            blocks = [blocks]
        return [self.build(child, parent=parent) for child in blocks]

    def _build_pipeline(self, block: Dict[str, Any]) -> PipelineNode:
        env = block.get("env") or []
        if isinstance(env, dict):
            # Shorthand: {"NODE_ENV": "production"}
            env = [{"type": "env_var", "key": k, "value": v} for k, v in env.items()]

        return PipelineNode(
            name=str(block.get("name") or "default_pipeline"),
            concurrent=_as_bool(block.get("concurrent", False)),
            triggers=self._children(block.get("triggers"), "pipeline"),
            env=self._children(env, "pipeline"),
            jobs=self._children(block.get("jobs"), "pipeline"),
        )

    def _build_job(self, block: Dict[str, Any]) -> JobNode:
        continue_on_error = block.get("continue_on_error", block.get("continue-on-error", False))
        return JobNode(
            name=str(block.get("name") or "").strip(),
            description=str(block.get("description") or ""),
            continue_on_error=_as_bool(continue_on_error),
            steps=self._children(block.get("steps"), "job"),
            needs=_as_name_list(block.get("needs")),
            runs_on=block.get("runs_on") or block.get("runs-on") or None,
        )

    def _build_step(self, block: Dict[str, Any]) -> StepNode:
        arguments = block.get("arguments") or block.get("with") or {}
        if not isinstance(arguments, dict):
            arguments = {"args": arguments}
        if block.get("args") not in (None, ""):
            arguments = {**arguments, "args": block["args"]}
        return StepNode(name=str(block.get("name") or "").strip(), arguments=dict(arguments))

    def _build_trigger(self, block: Dict[str, Any]) -> TriggerNode:
        return TriggerNode(
            event=str(block.get("event") or "push"),
            branches=_as_name_list(block.get("branches")),
            cron=block.get("cron") or None,
        )

    def _build_env_var(self, block: Dict[str, Any]) -> EnvVarNode:
        value = block.get("value", "")
        return EnvVarNode(key=str(block.get("key") or "").strip(), value="" if value is None else value)

    def _build_conditional(self, block: Dict[str, Any]) -> ConditionalNode:
        return ConditionalNode(
            expression=str(block.get("expression") or "").strip(),
            children=self._children(block.get("children"), "conditional"),
        )


def parse_block_graph(
    data: Union[Dict[str, Any], List[Any], None],
    library: Optional[NodeLibrary] = None,
) -> Optional[PipelineNode]:
    """Build a pipeline AST from an editor payload.

    ``data`` is either a single pipeline block, or a workspace of the form
    ``{"blocks": [...]}`` / a list of top level blocks, in which case the first
    pipeline block is used. Returns ``None`` when there is no pipeline.
    """
    if data is None or data == {} or data == []:
        return None

    if isinstance(data, dict) and "blocks" in data and "type" not in data:
        data = data["blocks"] or []

    if isinstance(data, list):
        top_level = [block for block in data if isinstance(block, dict) and block.get("type") == "pipeline"]
        if not top_level:
            logger.debug("no_pipeline_block", blocks=len(data))
            return None
        data = top_level[0]

    if not isinstance(data, dict):
        raise BlockGraphError(f"Block graph must be a mapping, got {type(data).__name__}")

    if data.get("type", "pipeline") != "pipeline":
        raise BlockGraphError(f"Root block must be a pipeline, got {data.get('type')!r}")

    root = BlockGraphBuilder(library).build({**data, "type": "pipeline"})
    logger.debug("block_graph_parsed", pipeline=root.name, jobs=len(root.jobs))
    return root


def load_block_graph(path: Path, library: Optional[NodeLibrary] = None) -> Optional[PipelineNode]:
    """Load a block graph saved as JSON or YAML."""
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise BlockGraphError(f"Could not read {path}: {e}")

    try:
        if path.suffix == ".json":
            data = json.loads(content) if content.strip() else None
        else:
            data = yaml.safe_load(content)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise BlockGraphError(f"Invalid block graph file {path}: {e}")

    return parse_block_graph(data, library)


def iter_jobs(root: PipelineNode) -> Iterator[JobNode]:
    """Yield jobs in authoring order, looking through conditionals."""
    yield from _flatten(root.jobs, JobNode)


def _flatten(nodes: List[BlockNode], kind: type) -> Iterator[Any]:
    for node in nodes:
        if isinstance(node, kind):
            yield node
        elif isinstance(node, ConditionalNode):
            yield from _flatten(node.children, kind)


def validate_pipeline(root: Optional[PipelineNode]) -> List[str]:
    """Validate a pipeline for problems the CI provider would reject."""
    errors: List[str] = []
    if root is None:
        return errors

    jobs = list(iter_jobs(root))
    seen: Dict[str, int] = {}
    for job in jobs:
        if not job.name:
            errors.append("Job with an empty name")
            continue
        seen[job.name] = seen.get(job.name, 0) + 1

    for name, count in seen.items():
        if count > 1:
            errors.append(f"Duplicate job name '{name}' ({count} definitions)")

    for job in jobs:
        for dependency in job.needs:
            if dependency == job.name:
                errors.append(f"Job '{job.name}' needs itself")
            elif dependency not in seen:
                errors.append(
                    f"Job '{job.name}' needs unknown job '{dependency}'. "
                    f"Known jobs: {sorted(seen)}"
                )

    for env_var in root.env:
        if isinstance(env_var, EnvVarNode) and not env_var.key:
            errors.append("Environment variable with an empty name")

    return errors
