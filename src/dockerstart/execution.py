from __future__ import annotations

import logging
import os
import shlex
import subprocess
import tempfile
import time
from pathlib import Path
from typing import Iterable, Mapping

from dockerstart._console import diagnostic
from dockerstart.models import ExecutionError, LogTargets

_log = logging.getLogger("dockerstart.execution")

# First non-zero stage of the last pipeline decides the status.
_PIPESTATUS_CHECK = (
    '__ds_rcs=("${PIPESTATUS[@]}"); '
    'for __ds_rc in "${__ds_rcs[@]}"; do '
    'if [ "$__ds_rc" != 0 ]; then exit "$__ds_rc"; fi; '
    "done"
)


def _parse_env_dump(raw: bytes) -> dict[str, str]:
    env: dict[str, str] = {}
    for entry in raw.split(b"\0"):
        if not entry:
            continue
        key, sep, value = entry.partition(b"=")
        if not sep:
            continue
        env[os.fsdecode(key)] = os.fsdecode(value)
    return env


def run_shell(
    command: str, *, env: Mapping[str, str] | None = None
) -> tuple[int, dict[str, str]]:
    """Run *command* with bash and return ``(status, environment_after)``.

    The status is the worst pipeline status, not only the last stage. On
    success the shell's exported environment is returned so a following
    command sees variables the previous one exported.
    """
    base_env = dict(os.environ if env is None else env)
    with tempfile.TemporaryDirectory(prefix="dockerstart-") as scratch:
        env_dump = Path(scratch) / "env"
        script = "\n".join(
            [
                command,
                _PIPESTATUS_CHECK,
                f"env -0 > {shlex.quote(str(env_dump))}",
            ]
        )
        completed = subprocess.run(["bash", "-c", script], env=base_env, check=False)
        if completed.returncode != 0:
            return completed.returncode, base_env
        if not env_dump.exists():
            return 0, base_env
        return 0, _parse_env_dump(env_dump.read_bytes())


def trigger(commands: Iterable[str], *, dry_run: bool) -> int:
    """Print (dry run) or execute *commands* in order.

    Raises :class:`ExecutionError` on the first command that exits non-zero;
    later commands are not run.
    """
    env: dict[str, str] | None = None
    for command in commands:
        if dry_run:
            diagnostic(f"Dryrun: {command}")
            continue

        diagnostic(f"Running: {command}")
        started = time.perf_counter()
        returncode, env = run_shell(command, env=env)
        _log.info(
            "command_end exit_code=%s duration_sec=%.3f command=%s",
            returncode,
            time.perf_counter() - started,
            command,
        )
        if returncode != 0:
            diagnostic(f"Fatal ERROR ({returncode}).  Exiting.")
            raise ExecutionError(command, returncode)
        diagnostic("Completed successfully")
    return 0


def prepare_log_files(logs: LogTargets | None, *, dry_run: bool) -> None:
    """Create the log directory and clear stale logs from an earlier run."""
    if logs is None:
        return
    if dry_run:
        diagnostic(f"Dryrun: mkdir -p {shlex.quote(str(logs.log_dir))}")
    else:
        diagnostic(f"Running: mkdir -p {shlex.quote(str(logs.log_dir))}")
        logs.log_dir.mkdir(parents=True, exist_ok=True)
        diagnostic("Completed successfully")
    diagnostic(
        f"Output logs written to: {logs.out_path} and {logs.err_path}",
        timestamped=False,
    )
    if dry_run:
        return
    for path in (logs.err_path, logs.out_path):
        path.unlink(missing_ok=True)
        _log.info("log_cleared path=%s", path)
