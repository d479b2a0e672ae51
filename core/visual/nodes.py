# core/visual/nodes.py
"""Block types for the visual pipeline editor."""

from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Union
from enum import Enum


class NodeCategory(Enum):
    """Block categories for the editor palette."""
    PIPELINE = "pipeline"
    JOBS = "jobs"
    STEPS = "steps"
    TRIGGERS = "triggers"
    ENVIRONMENT = "environment"
    CONTROL = "control"


@dataclass
class NodeProperty:
    """Block field definition."""
    name: str
    type: str  # string, number, boolean, array, object
    required: bool = False
    default: Any = None
    description: str = ""
    options: Optional[List[str]] = None  # For enum-like fields


@dataclass
class NodeType:
    """Block type definition."""
    id: str
    name: str
    category: NodeCategory
    description: str
    color: str = "#3b82f6"
    children: List[str] = field(default_factory=list)  # block ids accepted as children
    config_schema: Dict[str, NodeProperty] = field(default_factory=dict)

    def accepts(self, child_type: str) -> bool:
        """Whether a block of ``child_type`` may be nested inside this one."""
        return child_type in self.children


# ---------------------------------------------------------------------------
# Block graph AST
# ---------------------------------------------------------------------------

@dataclass
class StepNode:
    """A single step; ``name`` is the command identifier."""
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)


@dataclass
class EnvVarNode:
    key: str
    value: Any = ""


@dataclass
class TriggerNode:
    """Pipeline trigger such as ``push`` on a set of branches."""
    event: str
    branches: List[str] = field(default_factory=list)
    cron: Optional[str] = None


@dataclass
class UnknownNode:
    """Placeholder for a block the library does not recognise.

    Kept in the tree so the editor payload survives a round trip; ignored by
    validation and generation.
    """
    type: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ConditionalNode:
    """Guards its children (jobs or steps) with an ``if`` expression."""
    expression: str
    children: List["BlockNode"] = field(default_factory=list)


@dataclass
class JobNode:
    name: str
    description: str = ""
    continue_on_error: bool = False
    steps: List["BlockNode"] = field(default_factory=list)
    needs: List[str] = field(default_factory=list)
    runs_on: Optional[str] = None


@dataclass
class PipelineNode:
    """Root of the block graph."""
    name: str = "default_pipeline"
    concurrent: bool = False
    triggers: List["BlockNode"] = field(default_factory=list)
    env: List["BlockNode"] = field(default_factory=list)
    jobs: List["BlockNode"] = field(default_factory=list)


BlockNode = Union[
    PipelineNode, JobNode, StepNode, TriggerNode, EnvVarNode, ConditionalNode, UnknownNode
]


class NodeLibrary:
    """Library of available block types."""

    def __init__(self):
        self._node_types: Dict[str, NodeType] = {}
        self._register_pipeline_blocks()
        self._register_control_blocks()

    def _register_pipeline_blocks(self):
        """Register the structural block types."""

        self.register_node_type(NodeType(
            id="pipeline",
            name="Pipeline",
            category=NodeCategory.PIPELINE,
            description="Root block holding triggers, environment and jobs",
            color="#0ea5e9",
            children=["trigger", "env_var", "job", "conditional"],
            config_schema={
                'name': NodeProperty(
                    "name", "string", required=True,
                    description="Pipeline name",
                    default="default_pipeline"
                ),
                'concurrent': NodeProperty(
                    "concurrent", "boolean",
                    description="Allow concurrent runs",
                    default=False
                ),
            }
        ))

        self.register_node_type(NodeType(
            id="job",
            name="Job",
            category=NodeCategory.JOBS,
            description="A job made of ordered steps",
            color="#22c55e",
            children=["step", "conditional"],
            config_schema={
                'name': NodeProperty(
                    "name", "string", required=True,
                    description="Job identifier, unique within the pipeline"
                ),
                'description': NodeProperty(
                    "description", "string",
                    description="Human readable description",
                    default=""
                ),
                'continue_on_error': NodeProperty(
                    "continue_on_error", "boolean",
                    description="Keep the pipeline going when this job fails",
                    default=False
                ),
                'needs': NodeProperty(
                    "needs", "array",
                    description="Names of jobs that must finish first"
                ),
                'runs_on': NodeProperty(
                    "runs_on", "string",
                    description="Runner label"
                ),
            }
        ))

        self.register_node_type(NodeType(
            id="step",
            name="Step",
            category=NodeCategory.STEPS,
            description="Run a command",
            color="#8b5cf6",
            config_schema={
                'name': NodeProperty(
                    "name", "string", required=True,
                    description="Command identifier"
                ),
                'arguments': NodeProperty(
                    "arguments", "object",
                    description="Arguments passed to the command (emitted under 'with')"
                ),
            }
        ))

        self.register_node_type(NodeType(
            id="trigger",
            name="Trigger",
            category=NodeCategory.TRIGGERS,
            description="Event that starts the pipeline",
            color="#f97316",
            config_schema={
                'event': NodeProperty(
                    "event", "string", required=True,
                    description="Triggering event",
                    default="push",
                    options=["push", "pull_request", "workflow_dispatch", "schedule", "release"]
                ),
                'branches': NodeProperty(
                    "branches", "array",
                    description="Branch filter"
                ),
                'cron': NodeProperty(
                    "cron", "string",
                    description="Cron expression for scheduled triggers"
                ),
            }
        ))

        self.register_node_type(NodeType(
            id="env_var",
            name="Environment Variable",
            category=NodeCategory.ENVIRONMENT,
            description="Pipeline-wide environment variable",
            color="#6b7280",
            config_schema={
                'key': NodeProperty("key", "string", required=True, description="Variable name"),
                'value': NodeProperty("value", "string", description="Variable value", default=""),
            }
        ))

    def _register_control_blocks(self):
        """Register control-flow block types."""

        self.register_node_type(NodeType(
            id="conditional",
            name="If",
            category=NodeCategory.CONTROL,
            description="Run the nested jobs or steps only when the expression holds",
            color="#f59e0b",
            children=["job", "step", "conditional"],
            config_schema={
                'expression': NodeProperty(
                    "expression", "string", required=True,
                    description="Condition expression",
                    default="success()"
                )
            }
        ))

    def register_node_type(self, node_type: NodeType):
        """Register a new block type."""
        self._node_types[node_type.id] = node_type

    def get_node_type(self, type_id: str) -> Optional[NodeType]:
        """Get block type by ID."""
        return self._node_types.get(type_id)

    def get_node_types_by_category(self, category: NodeCategory) -> List[NodeType]:
        """Get all block types in a category."""
        return [
            node_type for node_type in self._node_types.values()
            if node_type.category == category
        ]

    def search_node_types(self, query: str,
                          category: Optional[NodeCategory] = None) -> List[NodeType]:
        """Blocks whose id, name or description contains ``query`` (case-insensitive)."""
        needle = query.strip().lower()
        candidates = (
            self.get_node_types_by_category(category) if category
            else list(self._node_types.values())
        )
        return [
            node_type for node_type in candidates
            if needle in node_type.id.lower()
            or needle in node_type.name.lower()
            or needle in node_type.description.lower()
        ]
