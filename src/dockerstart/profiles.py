from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml

from dockerstart.models import (
    MEM_UNIT_KB,
    MEM_UNIT_MB,
    MEM_UNITS,
    ConfigError,
    EnvironmentProfile,
)

SYSTEMS_FILE_ENV = "DOCKERSTART_SYSTEMS_FILE"
DEFAULT_SYSTEM = "docker"
SYSTEM_ALLOWED_KEYS = {
    "batch",
    "queue",
    "interactive_queue",
    "mem_limit_unit",
    "runtime_command",
    "submit_command",
}

_log = logging.getLogger("dockerstart.profiles")


@dataclass(frozen=True)
class SystemSpec:
    """Static description of a target system, before interactivity is known."""

    name: str
    batch: bool
    queue: str | None = None
    interactive_queue: str | None = None
    mem_limit_unit: str | None = None
    runtime_command: str = "docker"
    submit_command: str = "bsub"

    def profile(self, *, interactive: bool) -> EnvironmentProfile:
        queue = self.queue
        if interactive and self.interactive_queue:
            queue = self.interactive_queue
        return EnvironmentProfile(
            name=self.name,
            is_batch_scheduled=self.batch,
            default_queue=queue if self.batch else None,
            mem_limit_unit=self.mem_limit_unit if self.batch else None,
            runtime_command=self.runtime_command,
            submit_command=self.submit_command,
        )


# -M takes kilobytes at MGI and megabytes on compute1.
BUILTIN_SYSTEMS: dict[str, SystemSpec] = {
    "docker": SystemSpec(name="docker", batch=False),
    "MGI": SystemSpec(
        name="MGI",
        batch=True,
        queue="research-hpc",
        mem_limit_unit=MEM_UNIT_KB,
    ),
    "compute1": SystemSpec(
        name="compute1",
        batch=True,
        queue="general",
        interactive_queue="general-interactive",
        mem_limit_unit=MEM_UNIT_MB,
    ),
}


def _require_mapping(value: Any, *, label: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ConfigError(f"{label} must be a mapping")
    return {str(k): v for k, v in value.items()}


def _coerce_optional_str(value: Any, *, label: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigError(f"{label} must be a string")
    trimmed = value.strip()
    return trimmed or None


def _coerce_command(value: Any, *, label: str, default: str) -> str:
    return _coerce_optional_str(value, label=label) or default


def _coerce_bool(value: Any, *, label: str) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"{label} must be a boolean")
    return value


def _coerce_mem_limit_unit(value: Any, *, label: str) -> str | None:
    text = _coerce_optional_str(value, label=label)
    if text is None:
        return None
    unit = text.upper()
    if unit not in MEM_UNITS:
        raise ConfigError(f"{label} must be one of {list(MEM_UNITS)}")
    return unit


def _parse_system(name: str, payload: Any) -> SystemSpec:
    data = _require_mapping(payload, label=f"systems.{name}")
    unknown = sorted(set(data.keys()) - SYSTEM_ALLOWED_KEYS)
    if unknown:
        raise ConfigError(
            f"systems.{name} has unknown keys: {unknown}. "
            f"Allowed keys: {sorted(SYSTEM_ALLOWED_KEYS)}"
        )
    if "batch" not in data:
        raise ConfigError(f"systems.{name}.batch is required")
    batch = _coerce_bool(data["batch"], label=f"systems.{name}.batch")
    mem_limit_unit = _coerce_mem_limit_unit(
        data.get("mem_limit_unit"), label=f"systems.{name}.mem_limit_unit"
    )
    if batch and mem_limit_unit is None:
        mem_limit_unit = MEM_UNIT_MB
    return SystemSpec(
        name=name,
        batch=batch,
        queue=_coerce_optional_str(data.get("queue"), label=f"systems.{name}.queue"),
        interactive_queue=_coerce_optional_str(
            data.get("interactive_queue"), label=f"systems.{name}.interactive_queue"
        ),
        mem_limit_unit=mem_limit_unit,
        runtime_command=_coerce_command(
            data.get("runtime_command"),
            label=f"systems.{name}.runtime_command",
            default="docker",
        ),
        submit_command=_coerce_command(
            data.get("submit_command"),
            label=f"systems.{name}.submit_command",
            default="bsub",
        ),
    )


def systems_file_from_env() -> str | None:
    raw = os.environ.get(SYSTEMS_FILE_ENV, "").strip()
    return raw or None


def load_systems(path: str | Path | None) -> dict[str, SystemSpec]:
    """Return the built-in systems, extended or overridden by a YAML file.

    The file has a top-level ``systems`` mapping keyed by system name. With no
    *path*, only the built-in ``docker``, ``MGI`` and ``compute1`` are known.
    """
    systems = dict(BUILTIN_SYSTEMS)
    if path is None:
        return systems

    resolved_path = Path(path).expanduser().resolve()
    if not resolved_path.is_file():
        raise ConfigError(f"Systems file not found: {resolved_path}")
    try:
        loaded = yaml.safe_load(resolved_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Unable to parse systems file {resolved_path}: {exc}") from exc
    if loaded is None:
        loaded = {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"Systems file root must be a mapping: {resolved_path}")

    raw_systems = loaded.get("systems", {})
    if raw_systems is None:
        raw_systems = {}
    if not isinstance(raw_systems, dict):
        raise ConfigError(f"'systems' must be a mapping in {resolved_path}")

    for raw_name in sorted(raw_systems.keys(), key=str):
        if not isinstance(raw_name, str) or not raw_name.strip():
            raise ConfigError(f"System names must be non-empty strings: {resolved_path}")
        name = raw_name.strip()
        if name in BUILTIN_SYSTEMS:
            _log.info("system_override name=%s file=%s", name, resolved_path)
        systems[name] = _parse_system(name, raw_systems[raw_name])
    return systems


def select_profile(
    system: str,
    *,
    interactive: bool,
    systems: Mapping[str, SystemSpec] | None = None,
) -> EnvironmentProfile:
    known = BUILTIN_SYSTEMS if systems is None else systems
    entry = known.get(system)
    if entry is None:
        available = ", ".join(sorted(known.keys()))
        raise ConfigError(f"Unknown SYSTEM: {system}. Available: {available}")
    return entry.profile(interactive=interactive)


def resolve_queue(profile: EnvironmentProfile, override: str | None) -> str | None:
    if override:
        return override
    if not profile.is_batch_scheduled:
        return None
    return profile.default_queue
