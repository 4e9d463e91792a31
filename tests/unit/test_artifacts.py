"""
tests/unit/test_artifacts.py — Routing table and compose manifest emission.
"""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from gateway_bootstrap.artifacts import (
    canonical_artifacts,
    content_digest,
    emit_artifacts,
    manifest_document,
    require_artifact,
    routing_document,
)
from gateway_bootstrap.exceptions import ConfigMissingError
from gateway_bootstrap.models import StepStatus


class TestEmitArtifacts:
    def test_writes_both_files_when_absent(self, make_config) -> None:
        config = make_config()

        result = emit_artifacts(canonical_artifacts(config))

        assert result.status is StepStatus.APPLIED
        assert set(result.writes) == {config.routing_path, config.manifest_path}
        assert yaml.safe_load(config.routing_path.read_text()) == routing_document(config)
        assert yaml.safe_load(config.manifest_path.read_text()) == manifest_document(config)

    def test_existing_files_are_skipped_without_warning(self, make_config) -> None:
        config = make_config()
        emit_artifacts(canonical_artifacts(config))

        result = emit_artifacts(canonical_artifacts(config))

        assert result.status is StepStatus.SKIPPED
        assert result.writes == ()
        assert result.warnings == ()

    def test_corrupted_file_is_left_untouched(self, make_config) -> None:
        config = make_config()
        corrupted = "model_list: [unclosed\n  : : :\n"
        config.routing_path.write_text(corrupted, encoding="utf-8")

        result = emit_artifacts(canonical_artifacts(config))

        assert config.routing_path.read_text(encoding="utf-8") == corrupted
        assert result.writes == (config.manifest_path,)
        assert len(result.warnings) == 1
        assert "config.yaml" in result.warnings[0]

    def test_unreadable_file_is_a_warning(self, make_config) -> None:
        config = make_config()
        config.routing_path.mkdir()

        result = emit_artifacts(canonical_artifacts(config))

        assert config.routing_path.is_dir()
        assert result.writes == (config.manifest_path,)
        assert len(result.warnings) == 1
        assert "config.yaml could not be read" in result.warnings[0]

    def test_hand_edited_file_reports_drift(self, make_config) -> None:
        config = make_config()
        emit_artifacts(canonical_artifacts(config))
        edited = config.routing_path.read_text().replace("num_retries: 2", "num_retries: 5")
        config.routing_path.write_text(edited, encoding="utf-8")

        result = emit_artifacts(canonical_artifacts(config))

        assert config.routing_path.read_text() == edited
        assert result.warnings and "differs from the default" in result.warnings[0]

    def test_reformatted_file_is_not_drift(self, make_config) -> None:
        config = make_config()
        emit_artifacts(canonical_artifacts(config))
        document = yaml.safe_load(config.manifest_path.read_text())
        config.manifest_path.write_text(yaml.safe_dump(document, sort_keys=True))

        result = emit_artifacts(canonical_artifacts(config))

        assert result.warnings == ()


class TestManifest:
    def test_container_runtime_runs_in_the_stack(self, make_config) -> None:
        config = make_config(runtime="container")

        manifest = manifest_document(config)

        assert set(manifest["services"]) == {"ollama", "litellm"}
        assert manifest["volumes"] == {"ollama_data": {}}
        assert manifest["services"]["ollama"]["volumes"] == ["ollama_data:/root/.ollama"]
        gateway = manifest["services"]["litellm"]
        assert gateway["depends_on"] == {"ollama": {"condition": "service_healthy"}}
        assert gateway["ports"] == ["4000:4000"]
        api_base = routing_document(config)["model_list"][0]["litellm_params"]["api_base"]
        assert api_base == "http://ollama:11434"

    def test_native_runtime_reaches_the_host(self, make_config) -> None:
        config = make_config(runtime="native")

        manifest = manifest_document(config)

        assert set(manifest["services"]) == {"litellm"}
        assert "volumes" not in manifest
        gateway = manifest["services"]["litellm"]
        assert gateway["extra_hosts"] == ["host.docker.internal:host-gateway"]
        api_base = routing_document(config)["model_list"][0]["litellm_params"]["api_base"]
        assert api_base == "http://host.docker.internal:11434"

    def test_routing_table_falls_back_to_claude(self, make_config) -> None:
        routing = routing_document(make_config(model="llama3.2"))

        primary, fallback = routing["model_list"]
        assert primary["model_name"] == "qwen-coder"
        assert primary["litellm_params"]["model"] == "ollama_chat/llama3.2"
        assert fallback["litellm_params"]["api_key"] == "os.environ/ANTHROPIC_API_KEY"
        assert routing["litellm_settings"]["fallbacks"] == [{"qwen-coder": ["claude-fallback"]}]
        assert routing["general_settings"]["master_key"] == "os.environ/LITELLM_MASTER_KEY"


def test_content_digest_ignores_formatting() -> None:
    assert content_digest("a: 1\nb: 2\n") == content_digest("# comment\nb: 2\na: 1\n")
    assert content_digest("a: 1\n") != content_digest("a: 2\n")
    assert len(content_digest("a: 1\n") or "") == 16
    assert content_digest("a: [\n") is None


def test_require_artifact_names_setup(make_config) -> None:
    manifest = canonical_artifacts(make_config())[1]

    with pytest.raises(ConfigMissingError) as exc_info:
        require_artifact(manifest)

    assert "setup" in (exc_info.value.hint or "")


def test_routing_path_is_in_project_dir(make_config, tmp_path: Path) -> None:
    config = make_config()

    assert config.routing_path.parent == tmp_path.resolve()
