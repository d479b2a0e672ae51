# core/generator/__init__.py
"""Block-graph-to-YAML generation."""

from .engine import (
    PipelineGenerator,
    PipelineValidationError,
    generate_pipeline_yaml,
    DEFAULT_HEADER,
)

__all__ = [
    'PipelineGenerator',
    'PipelineValidationError',
    'generate_pipeline_yaml',
    'DEFAULT_HEADER',
]
