"""Block graph model and editor adapter."""

from core.visual.nodes import (
    NodeLibrary,
    NodeCategory,
    NodeType,
    PipelineNode,
    JobNode,
    StepNode,
    TriggerNode,
    EnvVarNode,
    ConditionalNode,
    UnknownNode,
)
from core.visual.flow import (
    BlockGraphError,
    parse_block_graph,
    load_block_graph,
    validate_pipeline,
)

__all__ = [
    "NodeLibrary",
    "NodeCategory",
    "NodeType",
    "PipelineNode",
    "JobNode",
    "StepNode",
    "TriggerNode",
    "EnvVarNode",
    "ConditionalNode",
    "UnknownNode",
    "BlockGraphError",
    "parse_block_graph",
    "load_block_graph",
    "validate_pipeline",
]
