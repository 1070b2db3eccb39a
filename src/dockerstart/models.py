from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator


class LauncherError(RuntimeError):
    """Base error for launcher failures."""

    exit_code = 1


class ConfigError(LauncherError):
    """Raised for an unknown system, a missing image, or a bad option."""


class ValidationError(LauncherError):
    """Raised when a data path does not name an existing host directory."""


class ExecutionError(LauncherError):
    """Raised when an invoked external command exits non-zero."""

    def __init__(self, command: str, returncode: int):
        super().__init__(f"Command failed with exit code {returncode}: {command}")
        self.command = command
        self.returncode = returncode

    @property
    def exit_code(self) -> int:  # type: ignore[override]
        return self.returncode


MEM_UNIT_KB = "KB"
MEM_UNIT_MB = "MB"
MEM_UNITS = (MEM_UNIT_KB, MEM_UNIT_MB)


@dataclass(frozen=True)
class PathMapping:
    host_path: str
    container_path: str

    @property
    def volume(self) -> str:
        return f"{self.host_path}:{self.container_path}"


@dataclass(frozen=True)
class EnvironmentProfile:
    name: str
    is_batch_scheduled: bool
    default_queue: str | None = None
    mem_limit_unit: str | None = None  # KB | MB, batch profiles only
    runtime_command: str = "docker"
    submit_command: str = "bsub"


@dataclass(frozen=True)
class LaunchConfig:
    image: str
    command: str = "/bin/bash"
    interactive: bool = True
    system: str = "docker"
    mem_gb: float | None = None
    log_dir: str = "./logs"
    run_name: str = "start_docker"
    write_logs: bool | None = None
    scheduler_args: tuple[str, ...] = ()
    queue: str | None = None
    preserve_environment: bool = True
    env_vars: tuple[str, ...] = ()
    data_paths: tuple[str, ...] = ()
    no_absolute: bool = False
    remap: bool = False
    dry_run: bool = False

    @property
    def logging_enabled(self) -> bool:
        # Non-interactive runs write logs unless -l forced them off.
        if self.write_logs is None:
            return not self.interactive
        return self.write_logs


@dataclass(frozen=True)
class LogTargets:
    log_dir: Path
    out_path: Path
    err_path: Path


@dataclass(frozen=True)
class AssembledCommand:
    commands: tuple[str, ...]

    def __iter__(self) -> Iterator[str]:
        return iter(self.commands)

    def __len__(self) -> int:
        return len(self.commands)

    @property
    def preamble(self) -> str | None:
        return self.commands[0] if len(self.commands) > 1 else None

    @property
    def final(self) -> str:
        return self.commands[-1]
