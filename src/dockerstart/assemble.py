"""Build the docker or bsub command line for one launch."""

from __future__ import annotations

import shlex
from pathlib import Path
from typing import Sequence

from dockerstart.models import (
    AssembledCommand,
    EnvironmentProfile,
    LaunchConfig,
    LogTargets,
    PathMapping,
)
from dockerstart.profiles import resolve_queue

NETWORK_EXPORT = "export LSF_DOCKER_NETWORK=host"
NO_PRESERVE_EXPORT = "export LSF_DOCKER_PRESERVE_ENVIRONMENT=false"


def _join(parts: Sequence[str | None]) -> str:
    return " ".join(part for part in parts if part)


def log_targets(config: LaunchConfig) -> LogTargets | None:
    if not config.logging_enabled:
        return None
    log_dir = Path(config.log_dir)
    return LogTargets(
        log_dir=log_dir,
        out_path=log_dir / f"{config.run_name}.out",
        err_path=log_dir / f"{config.run_name}.err",
    )


def volume_string(mappings: Sequence[PathMapping]) -> str:
    return " ".join(mapping.volume for mapping in mappings)


def runtime_command(
    config: LaunchConfig,
    mappings: Sequence[PathMapping],
    profile: EnvironmentProfile,
    logs: LogTargets | None,
) -> str:
    parts: list[str | None] = [profile.runtime_command, "run"]
    for entry in config.env_vars:
        parts.extend(["--env", shlex.quote(entry)])
    if config.interactive:
        parts.append("-it")
    for mapping in mappings:
        parts.extend(["-v", shlex.quote(mapping.volume)])
    parts.extend([config.image, config.command])
    if logs is not None:
        parts.extend(
            [
                ">",
                shlex.quote(str(logs.out_path)),
                "2>",
                shlex.quote(str(logs.err_path)),
            ]
        )
    return _join(parts)


def preamble_command(
    config: LaunchConfig, mappings: Sequence[PathMapping]
) -> str:
    exports = [
        NETWORK_EXPORT,
        f"export LSF_DOCKER_VOLUMES={shlex.quote(volume_string(mappings))}",
    ]
    if not config.preserve_environment:
        exports.append(NO_PRESERVE_EXPORT)
    for entry in config.env_vars:
        name, _, value = entry.partition("=")
        exports.append(f"export {name}={shlex.quote(value)}")
    return " && ".join(exports)


def submission_command(
    config: LaunchConfig,
    profile: EnvironmentProfile,
    mem_args: str,
    logs: LogTargets | None,
) -> str:
    queue = resolve_queue(profile, config.queue)
    parts: list[str | None] = [profile.submit_command]
    if queue:
        parts.extend(["-q", queue])
    parts.extend(config.scheduler_args)
    if logs is not None:
        parts.extend(
            [
                "-e",
                shlex.quote(str(logs.err_path)),
                "-o",
                shlex.quote(str(logs.out_path)),
            ]
        )
    parts.append(mem_args)
    parts.extend(["-a", shlex.quote(f"docker({config.image})")])
    if config.interactive:
        parts.append("-Is")
    parts.append(config.command)
    return _join(parts)


def assemble(
    config: LaunchConfig,
    mappings: Sequence[PathMapping],
    profile: EnvironmentProfile,
    mem_args: str,
    logs: LogTargets | None = None,
) -> AssembledCommand:
    """Compose the command(s) for *profile*.

    Direct runtime yields a single ``docker run``. Batch profiles yield the
    environment preamble followed by the submission command; the preamble
    must succeed before the submission runs. The result does not depend on
    ``config.dry_run``.
    """
    if not profile.is_batch_scheduled:
        return AssembledCommand(
            commands=(runtime_command(config, mappings, profile, logs),)
        )
    return AssembledCommand(
        commands=(
            preamble_command(config, mappings),
            submission_command(config, profile, mem_args, logs),
        )
    )
