"""Tests for configuration loading and wiring in main.py."""

import configparser
import textwrap

import pytest

from backends import BackendType
from catalog import DEFAULT_VARIANT_ID, ModelFamily, ReasoningLevel
from core.errors import ConfigurationError
from main import build_catalog, create_backends, create_dispatcher, load_config, parse_settings

LOCAL_ONLY = """
[DISPATCH]
default_variant = llama3-local
default_timeout = 12
fallback_variant = llama3-local
random_seed = 3

[PROVIDER_CONFIGS]
local_endpoint = http://gpu-box:11434
local_format = ollama

[BACKENDS]
llama3-local = local
llama3-local.model = llama3:8b
"""


def parse(text: str) -> configparser.ConfigParser:
    config = configparser.ConfigParser(interpolation=None)
    config.read_string(textwrap.dedent(text))
    return config


def write_config(tmp_path, text: str) -> str:
    path = tmp_path / "config.ini"
    path.write_text(textwrap.dedent(text))
    return str(path)


class TestParseSettings:

    def test_defaults_for_empty_config(self):
        settings = parse_settings(parse(""))
        assert settings["DISPATCH"]["default_variant"] == DEFAULT_VARIANT_ID
        assert settings["DISPATCH"]["default_timeout"] == 30.0
        assert settings["DISPATCH"]["fallback_variant"] is None
        assert settings["PROVIDER_CONFIGS"]["local_format"] == "ollama"
        assert settings["LOGGING"]["level"] == "INFO"

    def test_all_errors_reported_together(self):
        config = parse("""
            [DISPATCH]
            default_timeout = -1
            max_concurrency = many

            [PROVIDER_CONFIGS]
            temperature = 5
            local_format = grpc
        """)

        with pytest.raises(ConfigurationError) as exc_info:
            parse_settings(config)

        message = str(exc_info.value)
        for field_name in ("default_timeout", "max_concurrency", "temperature", "local_format"):
            assert field_name in message


class TestBuildCatalog:

    def test_new_variant_from_section(self):
        catalog = build_catalog(parse("""
            [VARIANT:qwen-local]
            family = local
            tier = mini
            api_identifier = qwen2.5
            reasoning_level = Advanced
            max_tokens = 4096
            context_window = 32768
            avg_latency_ms = 900
            p95_latency_ms = 2500
            streaming = yes
            recommended_for = privacy, offline
        """))

        qwen = catalog.get("qwen-local")
        assert qwen.family is ModelFamily.LOCAL
        assert qwen.capabilities.reasoning_level is ReasoningLevel.ADVANCED
        assert qwen.capabilities.supports_streaming is True
        assert qwen.recommended_for == ("privacy", "offline")
        assert qwen.pricing.input_cost_per_1k == 0.0
        assert "gpt-4o" in catalog

    def test_section_overrides_only_keys_it_sets(self):
        builtin = build_catalog(parse("")).get("gpt-4o")
        catalog = build_catalog(parse("""
            [VARIANT:gpt-4o]
            input_cost_per_1k = 9.5
        """))

        overridden = catalog.get("gpt-4o")
        assert overridden.pricing.input_cost_per_1k == 9.5
        assert overridden.pricing.output_cost_per_1k == builtin.pricing.output_cost_per_1k
        assert overridden.capabilities == builtin.capabilities
        assert overridden.name == builtin.name

    def test_new_variant_missing_required_keys(self):
        with pytest.raises(ConfigurationError) as exc_info:
            build_catalog(parse("""
                [VARIANT:mystery]
                name = Mystery
                max_tokens = lots
            """))

        message = str(exc_info.value)
        assert "missing family" in message
        assert "invalid max_tokens" in message
        assert "missing avg_latency_ms" in message


class TestCreateBackends:

    def test_local_backend_with_model_override(self):
        config = parse(LOCAL_ONLY)
        catalog = build_catalog(config)

        manager = create_backends(config, catalog)

        backend = manager.get_backend("llama3-local")
        assert manager.list_backends() == ["llama3-local"]
        assert backend.get_backend_type() is BackendType.LOCAL
        assert backend.model_name == "llama3:8b"
        assert backend.endpoint == "http://gpu-box:11434"
        assert backend.timeout == 12.0
        assert backend.descriptor is catalog.get("llama3-local")

    def test_unknown_variant_rejected(self):
        config = parse("""
            [BACKENDS]
            llama3-local = local
            no-such-model = local
        """)
        with pytest.raises(ConfigurationError, match="unknown variant: no-such-model"):
            create_backends(config, build_catalog(config))

    def test_unknown_backend_type_rejected(self):
        config = parse("""
            [BACKENDS]
            llama3-local = carrier-pigeon
        """)
        with pytest.raises(ConfigurationError, match="Unsupported backend type"):
            create_backends(config, build_catalog(config))

    def test_missing_section_rejected(self):
        config = parse("")
        with pytest.raises(ConfigurationError, match="BACKENDS"):
            create_backends(config, build_catalog(config))


class TestCreateDispatcher:

    def test_wires_components(self, tmp_path):
        dispatcher = create_dispatcher(write_config(tmp_path, LOCAL_ONLY))

        assert dispatcher.tracker.default_variant == "llama3-local"
        assert dispatcher.tracker.catalog is dispatcher.catalog
        assert dispatcher.fallback_variant_id == "llama3-local"
        assert dispatcher.default_timeout == 12.0
        assert "llama3-local" in dispatcher.backends

    def test_unknown_default_variant(self, tmp_path):
        path = write_config(tmp_path, LOCAL_ONLY.replace("default_variant = llama3-local", "default_variant = gpt-9"))
        with pytest.raises(ConfigurationError, match="gpt-9"):
            create_dispatcher(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "absent.ini"))
        with pytest.raises(FileNotFoundError):
            create_dispatcher(str(tmp_path / "absent.ini"))
