"""
Tests for the block graph adapter (core.visual.flow) and block library (core.visual.nodes).
"""

import json

import pytest

from core.generator.engine import generate_pipeline_yaml
from core.visual.flow import (
    BlockGraphError,
    iter_jobs,
    load_block_graph,
    parse_block_graph,
    validate_pipeline,
)
from core.visual.nodes import (
    ConditionalNode,
    EnvVarNode,
    JobNode,
    NodeCategory,
    NodeLibrary,
    NodeType,
    PipelineNode,
    StepNode,
    TriggerNode,
    UnknownNode,
)


# ============================================================================
# NodeLibrary
# ============================================================================

class TestNodeLibrary:

    def test_core_blocks_registered(self):
        library = NodeLibrary()
        registered = {t.id for c in NodeCategory for t in library.get_node_types_by_category(c)}
        assert registered == {"pipeline", "job", "step", "trigger", "env_var", "conditional"}

    def test_nesting_rules(self):
        library = NodeLibrary()
        assert library.get_node_type("pipeline").accepts("job")
        assert library.get_node_type("job").accepts("step")
        assert not library.get_node_type("job").accepts("job")
        assert not library.get_node_type("step").accepts("step")

    def test_by_category(self):
        library = NodeLibrary()
        assert [t.id for t in library.get_node_types_by_category(NodeCategory.TRIGGERS)] == ["trigger"]

    def test_search_matches_id_name_and_description(self):
        library = NodeLibrary()
        assert [t.id for t in library.search_node_types("ENV_VAR")] == ["env_var"]
        assert [t.id for t in library.search_node_types("if")] == ["conditional"]
        assert {t.id for t in library.search_node_types("environment")} == {"pipeline", "env_var"}
        assert library.search_node_types("matrix") == []

    def test_search_within_category(self):
        library = NodeLibrary()
        found = library.search_node_types("environment", category=NodeCategory.ENVIRONMENT)
        assert [t.id for t in found] == ["env_var"]

    def test_register_custom_block(self):
        library = NodeLibrary()
        library.register_node_type(NodeType(
            id="matrix", name="Matrix", category=NodeCategory.CONTROL, description="Build matrix",
        ))
        assert library.get_node_type("matrix").name == "Matrix"


# ============================================================================
# parse_block_graph
# ============================================================================

class TestParseBlockGraph:

    def test_full_payload(self, block_payload):
        root = parse_block_graph(block_payload)

        assert root.name == "ci"
        assert root.triggers == [TriggerNode(event="push", branches=["main"])]
        assert root.env == [EnvVarNode(key="PYTHON_VERSION", value="3.11")]
        assert [job.name for job in root.jobs] == ["build", "test"]
        assert root.jobs[1].needs == ["build"]
        assert root.jobs[0].steps == [StepNode("checkout"), StepNode("compile")]

    def test_payload_matches_hand_built_tree(self, block_payload, ci_pipeline):
        block_payload.pop("triggers")
        block_payload.pop("env")
        assert generate_pipeline_yaml(parse_block_graph(block_payload)) == generate_pipeline_yaml(ci_pipeline)

    @pytest.mark.parametrize("empty", [None, {}, [], {"blocks": []}])
    def test_empty_input(self, empty):
        assert parse_block_graph(empty) is None

    def test_workspace_picks_first_pipeline(self):
        workspace = {"blocks": [
            {"type": "step", "name": "stray"},
            {"type": "pipeline", "name": "first"},
            {"type": "pipeline", "name": "second"},
        ]}
        assert parse_block_graph(workspace).name == "first"

    def test_workspace_without_pipeline(self):
        assert parse_block_graph([{"type": "job", "name": "orphan"}]) is None

    def test_missing_type_means_pipeline(self):
        assert parse_block_graph({"name": "implicit"}).name == "implicit"

    def test_non_pipeline_root_rejected(self):
        with pytest.raises(BlockGraphError, match="Root block must be a pipeline"):
            parse_block_graph({"type": "job", "name": "build"})

    def test_non_mapping_rejected(self):
        with pytest.raises(BlockGraphError):
            parse_block_graph("pipeline: ci")

    def test_unknown_and_misplaced_blocks(self):
        root = parse_block_graph({
            "type": "pipeline",
            "jobs": [
                {"type": "sparkle"},
                {"type": "step", "name": "not-a-job"},
                "garbage",
                {"type": "job", "name": "build"},
            ],
        })

        assert all(isinstance(node, UnknownNode) for node in root.jobs[:3])
        assert root.jobs[3] == JobNode(name="build")

    def test_editor_field_spellings(self):
        root = parse_block_graph({
            "type": "pipeline",
            "concurrent": "true",
            "env": {"CI": "1"},
            "jobs": [{
                "type": "job",
                "name": " deploy ",
                "continue-on-error": "yes",
                "runs-on": "ubuntu-latest",
                "needs": "build, test",
                "steps": [
                    {"type": "step", "name": "sh", "args": "make deploy"},
                    {"type": "step", "name": "upload", "with": {"path": "dist"}},
                ],
            }],
        })
        job = root.jobs[0]

        assert root.concurrent is True
        assert root.env == [EnvVarNode("CI", "1")]
        assert job.name == "deploy"
        assert job.continue_on_error is True
        assert job.runs_on == "ubuntu-latest"
        assert job.needs == ["build", "test"]
        assert job.steps == [StepNode("sh", {"args": "make deploy"}), StepNode("upload", {"path": "dist"})]

    def test_conditional_children(self):
        root = parse_block_graph({
            "type": "pipeline",
            "jobs": [{
                "type": "conditional",
                "expression": "github.event_name == 'push'",
                "children": [{"type": "job", "name": "deploy"}],
            }],
        })

        assert root.jobs == [ConditionalNode("github.event_name == 'push'", [JobNode(name="deploy")])]
        assert [job.name for job in iter_jobs(root)] == ["deploy"]


# ============================================================================
# load_block_graph
# ============================================================================

class TestLoadBlockGraph:

    def test_json_file(self, tmp_path, block_payload):
        path = tmp_path / "blocks.json"
        path.write_text(json.dumps(block_payload))
        assert load_block_graph(path).name == "ci"

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "blocks.yaml"
        path.write_text("type: pipeline\nname: nightly\njobs:\n  - type: job\n    name: build\n")
        root = load_block_graph(path)

        assert root.name == "nightly"
        assert root.jobs == [JobNode(name="build")]

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "blocks.json"
        path.write_text("{not json")
        with pytest.raises(BlockGraphError, match="Invalid block graph file"):
            load_block_graph(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(BlockGraphError, match="Could not read"):
            load_block_graph(tmp_path / "nope.json")


# ============================================================================
# validate_pipeline
# ============================================================================

class TestValidatePipeline:

    def test_valid(self, ci_pipeline):
        assert validate_pipeline(ci_pipeline) == []

    def test_none_is_valid(self):
        assert validate_pipeline(None) == []

    def test_problems_reported(self):
        root = PipelineNode(
            env=[EnvVarNode("", "x")],
            jobs=[
                JobNode(name="build"),
                JobNode(name="build"),
                JobNode(name="loop", needs=["loop"]),
                JobNode(name="test", needs=["compile"]),
                JobNode(name=""),
            ],
        )
        errors = validate_pipeline(root)

        assert "Job with an empty name" in errors
        assert "Duplicate job name 'build' (2 definitions)" in errors
        assert "Job 'loop' needs itself" in errors
        assert any(e.startswith("Job 'test' needs unknown job 'compile'") for e in errors)
        assert "Environment variable with an empty name" in errors

    def test_needs_resolved_through_conditionals(self):
        root = PipelineNode(jobs=[
            ConditionalNode("always()", [JobNode(name="build")]),
            JobNode(name="test", needs=["build"]),
        ])
        assert validate_pipeline(root) == []
