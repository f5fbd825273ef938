"""YAML configuration loader for releasegate.yaml.

This module loads, parses and validates the pipeline file. It enforces a
strict schema and provides precise error messages for common
misconfigurations.

Key functions:
- load_pipeline_config: Load and validate releasegate.yaml from a path
- parse_pipeline_config: Parse YAML text into a PipelineConfig
- dump_pipeline_config: Render a PipelineConfig back to YAML
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import yaml

from releasegate.core.models import (
    GatePolicy,
    RetryPolicy,
    Severity,
    StageDefinition,
    StageKind,
)
from releasegate.domain.pipeline_config import (
    ConfigError,
    ConfigMissingError,
    PipelineConfig,
    validate_pipeline,
)

if TYPE_CHECKING:
    from pathlib import Path

CONFIG_FILENAME = "releasegate.yaml"

_ALLOWED_TOP_LEVEL_FIELDS = frozenset({"stages", "policies", "notify"})
_ALLOWED_STAGE_FIELDS = frozenset(
    {"name", "kind", "gating", "timeout", "retry", "options"}
)
_ALLOWED_RETRY_FIELDS = frozenset({"max_attempts", "backoff", "multiplier", "max_backoff"})
_ALLOWED_NOTIFY_FIELDS = frozenset({"webhook_url"})


def load_pipeline_config(path: Path) -> PipelineConfig:
    """Load and validate a pipeline file.

    Args:
        path: The releasegate.yaml file, or a directory containing one.

    Returns:
        Validated PipelineConfig.

    Raises:
        ConfigMissingError: If the file does not exist.
        ConfigError: If the file cannot be read or is invalid.
    """
    config_file = path / CONFIG_FILENAME if path.is_dir() else path
    if not config_file.exists():
        raise ConfigMissingError(config_file)

    try:
        content = config_file.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read {config_file}: {e}") from e
    except UnicodeDecodeError as e:
        raise ConfigError(f"Failed to decode {config_file}: {e}") from e
    return parse_pipeline_config(content)


def parse_pipeline_config(content: str) -> PipelineConfig:
    """Parse YAML text into a validated PipelineConfig.

    Raises:
        ConfigError: On invalid syntax, unknown fields, wrong types, or a
            pipeline that fails validation.
    """
    data = _parse_yaml(content)
    unknown = set(data) - _ALLOWED_TOP_LEVEL_FIELDS
    if unknown:
        first = sorted(str(k) for k in unknown)[0]
        raise ConfigError(f"Unknown field '{first}' in {CONFIG_FILENAME}")

    raw_stages = data.get("stages")
    if not isinstance(raw_stages, list):
        raise ConfigError("'stages' must be a list of stage mappings")
    stages = tuple(_parse_stage(raw, index) for index, raw in enumerate(raw_stages))
    policies = _parse_policies(data.get("policies"))
    webhook_url = _parse_notify(data.get("notify"))

    validate_pipeline(stages, policies)
    return PipelineConfig(stages=stages, policies=policies, webhook_url=webhook_url)


def _parse_yaml(content: str) -> dict[str, Any]:
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax in {CONFIG_FILENAME}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"{CONFIG_FILENAME} must be a YAML mapping, got {type(data).__name__}"
        )
    return data


def _parse_kind(value: object, where: str) -> StageKind:
    if not isinstance(value, str):
        raise ConfigError(f"'kind' must be a string in {where}")
    try:
        return StageKind(value.strip().lower())
    except ValueError:
        valid = ", ".join(k.value for k in StageKind)
        raise ConfigError(
            f"Unknown stage kind '{value}' in {where}. Valid kinds: {valid}"
        ) from None


def _parse_number(value: object, name: str, where: str) -> float:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise ConfigError(
            f"'{name}' must be a number in {where}, got {type(value).__name__}"
        )
    return float(value)


def _parse_retry(data: object, where: str) -> RetryPolicy:
    if data is None:
        return RetryPolicy()
    if not isinstance(data, dict):
        raise ConfigError(f"'retry' must be a mapping in {where}")
    unknown = set(data) - _ALLOWED_RETRY_FIELDS
    if unknown:
        first = sorted(str(k) for k in unknown)[0]
        raise ConfigError(f"Unknown retry field '{first}' in {where}")

    max_attempts = data.get("max_attempts", 1)
    if isinstance(max_attempts, bool) or not isinstance(max_attempts, int):
        raise ConfigError(f"'max_attempts' must be an integer in {where}")
    kwargs: dict[str, Any] = {"max_attempts": max_attempts}
    if "backoff" in data:
        kwargs["backoff_seconds"] = _parse_number(data["backoff"], "backoff", where)
    if "multiplier" in data:
        kwargs["backoff_multiplier"] = _parse_number(data["multiplier"], "multiplier", where)
    if "max_backoff" in data:
        kwargs["max_backoff_seconds"] = _parse_number(
            data["max_backoff"], "max_backoff", where
        )
    try:
        return RetryPolicy(**kwargs)
    except ValueError as e:
        raise ConfigError(f"Invalid retry policy in {where}: {e}") from e


def _parse_stage(data: object, index: int) -> StageDefinition:
    where = f"stage {index}"
    if not isinstance(data, dict):
        raise ConfigError(f"{where} must be a mapping")
    unknown = set(data) - _ALLOWED_STAGE_FIELDS
    if unknown:
        first = sorted(str(k) for k in unknown)[0]
        raise ConfigError(f"Unknown field '{first}' in {where}")

    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ConfigError(f"'name' is required and must be a non-empty string in {where}")
    where = f"stage '{name}'"

    if "kind" not in data:
        raise ConfigError(f"'kind' is required in {where}")
    kind = _parse_kind(data["kind"], where)

    gating = data.get("gating", False)
    if not isinstance(gating, bool):
        raise ConfigError(f"'gating' must be a boolean in {where}")

    timeout = _parse_number(data.get("timeout", 600), "timeout", where)

    options = data.get("options") or {}
    if not isinstance(options, dict):
        raise ConfigError(f"'options' must be a mapping in {where}")

    return StageDefinition(
        name=name.strip(),
        kind=kind,
        gating=gating,
        timeout_seconds=timeout,
        retry=_parse_retry(data.get("retry"), where),
        options=dict(options),
    )


def _parse_policies(data: object) -> dict[StageKind, GatePolicy]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("'policies' must be a mapping of stage kind to severity")
    policies: dict[StageKind, GatePolicy] = {}
    for raw_kind, raw_threshold in data.items():
        kind = _parse_kind(raw_kind, "policies")
        if not isinstance(raw_threshold, str):
            raise ConfigError(f"Threshold for '{kind.value}' must be a severity name")
        try:
            threshold = Severity.parse(raw_threshold)
        except ValueError as e:
            raise ConfigError(f"Invalid threshold for '{kind.value}': {e}") from e
        policies[kind] = GatePolicy(kind=kind, threshold=threshold)
    return policies


def _parse_notify(data: object) -> str | None:
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ConfigError("'notify' must be a mapping")
    unknown = set(data) - _ALLOWED_NOTIFY_FIELDS
    if unknown:
        first = sorted(str(k) for k in unknown)[0]
        raise ConfigError(f"Unknown field '{first}' in notify")
    url = data.get("webhook_url")
    if url is not None and not isinstance(url, str):
        raise ConfigError("'webhook_url' must be a string")
    return url or None


def dump_pipeline_config(config: PipelineConfig) -> str:
    """Render a PipelineConfig as releasegate.yaml content."""
    stages: list[dict[str, Any]] = []
    for stage in config.stages:
        entry: dict[str, Any] = {"name": stage.name, "kind": stage.kind.value}
        if stage.gating:
            entry["gating"] = True
        entry["timeout"] = stage.timeout_seconds
        if stage.retry.max_attempts > 1:
            entry["retry"] = {
                "max_attempts": stage.retry.max_attempts,
                "backoff": stage.retry.backoff_seconds,
                "multiplier": stage.retry.backoff_multiplier,
                "max_backoff": stage.retry.max_backoff_seconds,
            }
        if stage.options:
            entry["options"] = dict(stage.options)
        stages.append(entry)

    data: dict[str, Any] = {
        "stages": stages,
        "policies": {
            kind.value: policy.threshold.value.lower()
            for kind, policy in config.policies.items()
        },
    }
    if config.webhook_url:
        data["notify"] = {"webhook_url": config.webhook_url}
    return yaml.safe_dump(data, sort_keys=False, default_flow_style=False)
