#!/usr/bin/env python3
"""
Multi-backend LLM dispatch - bootstrap.

Reads config.ini, builds the variant catalog, the backends, the experiment
tracker and the dispatcher as explicit instances, and wires them together.
Running this module reports which configured backends are reachable.
"""

import asyncio
import configparser
import logging
from datetime import date
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from backends import BackendFactory, BackendManager, BackendType
from catalog import (
    DEFAULT_VARIANT_ID, ModelFamily, ModelTier, PerformanceProfile, PricingTier, ReasoningLevel,
    SpeedTier, VariantCapabilities, VariantCatalog, VariantDescriptor
)
from core.errors import ConfigurationError
from routers import Dispatcher, ExperimentTracker
from routers.multishot import DEFAULT_MAX_CONCURRENCY

logger = logging.getLogger(__name__)

VARIANT_SECTION_PREFIX = "VARIANT:"
MODEL_OVERRIDE_SUFFIX = ".model"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOCAL_FORMATS = ("ollama", "llamacpp", "custom")

# Marks [VARIANT:<id>] keys a new variant must set
REQUIRED = object()

# Configuration schema for automatic parsing and validation
CONFIG_SCHEMA = {
    "DISPATCH": {
        "default_variant": {
            "required": False,
            "type": str,
            "default": DEFAULT_VARIANT_ID,
            "description": "Variant used when no experiment or preference applies",
        },
        "default_timeout": {
            "required": False,
            "type": float,
            "default": 30.0,
            "description": "Per-call timeout in seconds",
            "validation": lambda x: x > 0,
        },
        "fallback_variant": {
            "required": False,
            "type": str,
            "description": "Variant tried once when the primary fails",
        },
        "random_seed": {
            "required": False,
            "type": int,
            "description": "Seed for experiment traffic splitting",
        },
        "max_concurrency": {
            "required": False,
            "type": int,
            "default": DEFAULT_MAX_CONCURRENCY,
            "description": "Concurrent calls in a multi-shot run",
            "validation": lambda x: 1 <= x <= 100,
        },
    },
    "PROVIDER_CONFIGS": {
        "openai_api_key": {"required": False, "type": str, "description": "OpenAI API key"},
        "openai_base_url": {
            "required": False,
            "type": str,
            "description": "Alternative OpenAI-compatible base URL",
            "validation": lambda x: x.startswith(("http://", "https://")),
        },
        "azure_openai_api_key": {"required": False, "type": str, "description": "Azure OpenAI API key"},
        "azure_openai_endpoint": {
            "required": False,
            "type": str,
            "description": "Azure OpenAI Service endpoint URL",
            "validation": lambda x: x.startswith("https://"),
        },
        "azure_openai_api_version": {
            "required": False,
            "type": str,
            "default": "2024-02-01",
            "description": "Azure OpenAI API version",
        },
        "aws_region": {"required": False, "type": str, "default": "us-east-1", "description": "Bedrock region"},
        "aws_access_key_id": {"required": False, "type": str, "description": "AWS access key id"},
        "aws_secret_access_key": {"required": False, "type": str, "description": "AWS secret access key"},
        "local_endpoint": {
            "required": False,
            "type": str,
            "default": "http://localhost:11434",
            "description": "Base URL of the local model daemon",
            "validation": lambda x: x.startswith(("http://", "https://")),
        },
        "local_format": {
            "required": False,
            "type": str,
            "default": "ollama",
            "description": "Local daemon wire format",
            "validation": lambda x: x in LOCAL_FORMATS,
        },
        "temperature": {
            "required": False,
            "type": float,
            "default": 0.7,
            "description": "Response temperature (0.0-2.0)",
            "validation": lambda x: 0.0 <= x <= 2.0,
        },
    },
    "LOGGING": {
        "level": {
            "required": False,
            "type": str,
            "default": "INFO",
            "description": "Root log level",
            "validation": lambda x: x.upper() in LOG_LEVELS,
        },
    },
}


def load_config(config_file: str = "config.ini") -> configparser.ConfigParser:
    """Load configuration from INI file.

    Raises:
        FileNotFoundError: If the file does not exist
    """
    config_path = Path(config_file)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    config = configparser.ConfigParser(interpolation=None)
    config.read(config_path)
    return config


def _convert(raw_value: str, value_type: type) -> Any:
    if value_type is bool:
        lowered = raw_value.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
        raise ValueError(raw_value)
    if value_type in (int, float):
        return value_type(raw_value)
    return str(raw_value).strip()


def _validate_section(
    config: configparser.ConfigParser,
    section: str,
    schema: Dict[str, Dict[str, Any]],
    errors: List[str],
) -> Dict[str, Any]:
    """Parse one section against its schema, appending problems to ``errors``"""
    values = config[section] if config.has_section(section) else {}
    parsed: Dict[str, Any] = {}

    for field_name, field_schema in schema.items():
        raw_value = values.get(field_name)

        if field_schema["required"] and (not raw_value or not str(raw_value).strip()):
            errors.append(f"Missing required field: {field_schema['description']} ([{section}] {field_name})")
            continue

        if raw_value is None or not str(raw_value).strip():
            parsed[field_name] = field_schema.get("default")
            continue

        try:
            value = _convert(raw_value, field_schema["type"])
        except (ValueError, TypeError):
            errors.append(f"Invalid {field_schema['type'].__name__} value for [{section}] {field_name}: {raw_value}")
            continue

        validation = field_schema.get("validation")
        if validation and not validation(value):
            errors.append(f"Invalid value for [{section}] {field_name}: {raw_value}")
            continue

        parsed[field_name] = value

    return parsed


def parse_settings(config: configparser.ConfigParser) -> Dict[str, Dict[str, Any]]:
    """
    Validate every schema section at once.

    Raises:
        ConfigurationError: listing every problem found
    """
    errors: List[str] = []
    settings = {
        section: _validate_section(config, section, schema, errors)
        for section, schema in CONFIG_SCHEMA.items()
    }
    if errors:
        raise ConfigurationError(
            "Configuration errors:\n" + "\n".join(f"  • {error}" for error in errors)
        )
    return settings


def configure_logging(config: configparser.ConfigParser) -> None:
    """Set up root logging from the [LOGGING] section"""
    errors: List[str] = []
    level = _validate_section(config, "LOGGING", CONFIG_SCHEMA["LOGGING"], errors).get("level") or "INFO"
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    for error in errors:
        logger.warning(error)


def _descriptor_from_section(
    variant_id: str,
    section: configparser.SectionProxy,
    base: Optional[VariantDescriptor],
    errors: List[str],
) -> Optional[VariantDescriptor]:
    """Build a descriptor from a [VARIANT:<id>] section, overlaying ``base`` when present"""
    problems: List[str] = []

    def get(key: str, default: Any, cast: Callable[[str], Any]) -> Any:
        raw_value = section.get(key)
        if raw_value is None or not raw_value.strip():
            if default is REQUIRED:
                problems.append(f"[{VARIANT_SECTION_PREFIX}{variant_id}] missing {key}")
            return default
        try:
            return cast(raw_value.strip())
        except (ValueError, TypeError):
            problems.append(f"[{VARIANT_SECTION_PREFIX}{variant_id}] invalid {key}: {raw_value}")
            return default

    def tags(raw: str):
        return tuple(tag.strip() for tag in raw.split(",") if tag.strip())

    def flag(raw: str) -> bool:
        return _convert(raw, bool)

    caps = base.capabilities if base else None
    pricing = base.pricing if base else None
    perf = base.performance if base else None

    descriptor = VariantDescriptor(
        id=variant_id,
        name=get("name", base.name if base else variant_id, str),
        family=get("family", base.family if base else REQUIRED, ModelFamily),
        tier=get("tier", base.tier if base else ModelTier.FLAGSHIP, ModelTier),
        api_identifier=get("api_identifier", base.api_identifier if base else variant_id, str),
        capabilities=VariantCapabilities(
            max_tokens=get("max_tokens", caps.max_tokens if caps else REQUIRED, int),
            context_window=get("context_window", caps.context_window if caps else REQUIRED, int),
            reasoning_level=get(
                "reasoning_level", caps.reasoning_level if caps else ReasoningLevel.BASIC, ReasoningLevel.coerce
            ),
            speed=get("speed", caps.speed if caps else SpeedTier.MEDIUM, SpeedTier),
            supports_vision=get("vision", caps.supports_vision if caps else False, flag),
            supports_function_calling=get(
                "function_calling", caps.supports_function_calling if caps else False, flag
            ),
            supports_streaming=get("streaming", caps.supports_streaming if caps else False, flag),
            specializations=get("specializations", caps.specializations if caps else (), tags),
        ),
        pricing=PricingTier(
            input_cost_per_1k=get("input_cost_per_1k", pricing.input_cost_per_1k if pricing else 0.0, float),
            output_cost_per_1k=get("output_cost_per_1k", pricing.output_cost_per_1k if pricing else 0.0, float),
            batch_discount=get("batch_discount", pricing.batch_discount if pricing else 0.0, float) or None,
        ),
        performance=PerformanceProfile(
            avg_latency_ms=get("avg_latency_ms", perf.avg_latency_ms if perf else REQUIRED, float),
            p95_latency_ms=get("p95_latency_ms", perf.p95_latency_ms if perf else REQUIRED, float),
            throughput_rps=get("throughput_rps", perf.throughput_rps if perf else 1.0, float),
            reliability=get("reliability", perf.reliability if perf else 1.0, float),
        ),
        release_date=get("release_date", base.release_date if base else date.today(), date.fromisoformat),
        deprecated=get("deprecated", base.deprecated if base else False, flag),
        recommended_for=get("recommended_for", base.recommended_for if base else (), tags),
        not_recommended_for=get("not_recommended_for", base.not_recommended_for if base else (), tags),
    )

    if problems:
        errors.extend(problems)
        return None
    return descriptor


def build_catalog(config: configparser.ConfigParser) -> VariantCatalog:
    """
    Create the catalog from the built-in table plus [VARIANT:<id>] sections.

    A section for a built-in id overrides only the keys it sets.
    """
    catalog = VariantCatalog.with_defaults()
    errors: List[str] = []

    for section_name in config.sections():
        if not section_name.startswith(VARIANT_SECTION_PREFIX):
            continue
        variant_id = section_name[len(VARIANT_SECTION_PREFIX):].strip()
        if not variant_id:
            errors.append(f"Section [{section_name}] has no variant id")
            continue
        descriptor = _descriptor_from_section(variant_id, config[section_name], catalog.get(variant_id), errors)
        if descriptor is not None:
            catalog.register(descriptor)

    if errors:
        raise ConfigurationError(
            "Variant configuration errors:\n" + "\n".join(f"  • {error}" for error in errors)
        )

    logger.info("Catalog ready with %d variants", len(catalog))
    return catalog


def _backend_kwargs(backend_type: BackendType, providers: Dict[str, Any]) -> Dict[str, Any]:
    if backend_type is BackendType.OPENAI:
        if providers.get("azure_openai_endpoint"):
            return {
                "api_key": providers.get("azure_openai_api_key"),
                "azure_endpoint": providers["azure_openai_endpoint"],
                "api_version": providers.get("azure_openai_api_version"),
            }
        return {"api_key": providers.get("openai_api_key"), "base_url": providers.get("openai_base_url")}
    if backend_type is BackendType.ANTHROPIC:
        return {
            "aws_region": providers.get("aws_region"),
            "aws_access_key_id": providers.get("aws_access_key_id"),
            "aws_secret_access_key": providers.get("aws_secret_access_key"),
        }
    return {"endpoint": providers.get("local_endpoint"), "format": providers.get("local_format")}


def create_backends(
    config: configparser.ConfigParser,
    catalog: VariantCatalog,
    settings: Optional[Dict[str, Dict[str, Any]]] = None,
) -> BackendManager:
    """
    Create one backend per entry of the [BACKENDS] section.

    Raises:
        ConfigurationError: If any entry is invalid; every problem is listed
    """
    settings = settings or parse_settings(config)
    providers = settings["PROVIDER_CONFIGS"]
    timeout = settings["DISPATCH"]["default_timeout"]
    manager = BackendManager()
    errors: List[str] = []

    if not config.has_section("BACKENDS"):
        raise ConfigurationError("BACKENDS section not found in config. Map at least one variant to a backend type.")

    section = config["BACKENDS"]
    for key, value in section.items():
        if key.endswith(MODEL_OVERRIDE_SUFFIX):
            continue
        variant_id = key
        descriptor = catalog.get(variant_id)
        if descriptor is None:
            errors.append(f"Backend configured for unknown variant: {variant_id}")
            continue

        try:
            backend_type = BackendFactory.coerce_type(value, variant_id)
            model_name = section.get(variant_id + MODEL_OVERRIDE_SUFFIX) or descriptor.api_identifier
            manager.create_backend(
                backend_type,
                variant_id,
                model_name,
                timeout=timeout,
                temperature=providers["temperature"],
                descriptor=descriptor,
                **_backend_kwargs(backend_type, providers),
            )
        except (ConfigurationError, ValueError) as e:
            errors.append(f"Failed to create backend for {variant_id}: {e}")

    if errors:
        raise ConfigurationError(
            "Backend initialization failed with the following errors:\n" + "\n".join(f"  • {e}" for e in errors)
        )
    if not len(manager):
        raise ConfigurationError("No backends were created. Map at least one variant in [BACKENDS].")

    logger.info("Created %d backend(s): %s", len(manager), manager.list_backends())
    return manager


def create_dispatcher(config_file: str = "config.ini") -> Dispatcher:
    """
    Create and return a fully wired Dispatcher.

    The catalog, tracker and backend manager are reachable as attributes of
    the returned instance.

    Raises:
        FileNotFoundError: If the config file is missing
        ConfigurationError: If the configuration is invalid
    """
    config = load_config(config_file)
    settings = parse_settings(config)
    dispatch = settings["DISPATCH"]

    catalog = build_catalog(config)
    for key in ("default_variant", "fallback_variant"):
        variant_id = dispatch.get(key)
        if variant_id and variant_id not in catalog:
            raise ConfigurationError(f"[DISPATCH] {key} references unknown variant: {variant_id}", variant_id)

    backends = create_backends(config, catalog, settings)
    tracker = ExperimentTracker(
        catalog=catalog,
        default_variant=dispatch["default_variant"],
        seed=dispatch.get("random_seed"),
    )
    return Dispatcher(
        catalog=catalog,
        tracker=tracker,
        backends=backends,
        default_timeout=dispatch["default_timeout"],
        fallback_variant_id=dispatch.get("fallback_variant"),
    )


async def report_availability(dispatcher: Dispatcher) -> Dict[str, bool]:
    """Health-check every backend, print a summary and close network resources"""
    try:
        availability = await dispatcher.backends.check_availability_all()
    finally:
        await dispatcher.backends.aclose_all()

    print("\n=== Backend Availability ===")
    for variant_id, available in availability.items():
        backend = dispatcher.backends.get_backend(variant_id)
        print(f"  {'✓' if available else '✗'} {backend}")
    return availability


def main(config_file: str = "config.ini") -> None:
    """Load configuration, build the dispatcher and report backend availability"""
    config = load_config(config_file)
    configure_logging(config)

    dispatcher = create_dispatcher(config_file)
    print(f"Default variant: {dispatcher.tracker.default_variant}")
    print(f"Fallback variant: {dispatcher.fallback_variant_id or 'none'}")
    print(f"Catalog: {len(dispatcher.catalog)} variants, {len(dispatcher.catalog.active())} active")

    asyncio.run(report_availability(dispatcher))


if __name__ == "__main__":
    main()
