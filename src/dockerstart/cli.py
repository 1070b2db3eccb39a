from __future__ import annotations

import argparse
import datetime as dt
import getopt
import re
import sys
import time
from typing import NoReturn, Sequence

from dockerstart._console import diagnostic
from dockerstart._logging import get_logger, setup_logging
from dockerstart.assemble import assemble, log_targets
from dockerstart.execution import prepare_log_files, trigger
from dockerstart.memory import build_memory_args
from dockerstart.models import (
    ConfigError,
    ExecutionError,
    LaunchConfig,
    LauncherError,
)
from dockerstart.paths import resolve_path_mappings
from dockerstart.profiles import (
    DEFAULT_SYSTEM,
    load_systems,
    select_profile,
    systems_file_from_env,
)

PROG = "start-docker"
RUN_NAME_PREFIX = "start_docker"
_ENV_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# getopt letters; a trailing colon marks an option that takes a value.
_SHORT_OPTIONS = "I:hdM:m:L:c:g:q:R:Pe:lAr"
_LONG_OPTIONS = ["systems-file="]
_VALUE_OPTIONS = frozenset(
    ["-I", "-M", "-m", "-L", "-c", "-g", "-q", "-R", "-e", "--systems-file"]
)

USAGE = f"""\
Start a docker container directly or through LSF, with optional mounted volumes
Usage: {PROG} [options] [ data_path_1 [ data_path_2 ...] ]

Required options:
-I DOCKER_IMAGE: docker image to start.

Options:
-h: show this help and exit
-d: dry run.  Print the docker or bsub command but do not execute it
-M SYSTEM: target system: docker, MGI, compute1, or a name from the systems file.  Default: docker
-m MEM_GB: memory to request at launch, in GB.  Ignored with a warning for SYSTEM=docker
-c DOCKER_CMD: run DOCKER_CMD non-interactively.  Default: /bin/bash in interactive mode
-L LOGD: host log directory.  Non-interactive runs write LOGD/RUN_NAME.err and LOGD/RUN_NAME.out.  Default: ./logs
-l: do not write log files; output goes to stderr/stdout
-R RUN_NAME: base name of the log files.  Default: {RUN_NAME_PREFIX}.TIMESTAMP
-g LSF_ARGS: arguments passed verbatim to bsub.  Repeatable.  LSF systems only
-q LSFQ: LSF queue.  Defaults: research-hpc for MGI; general-interactive or general
   for interactive and non-interactive jobs on compute1
-P: export LSF_DOCKER_PRESERVE_ENVIRONMENT=false so LSF does not map host paths
-e VAR=VALUE: environment variable for the container (docker --env, exported before bsub).  Repeatable
-A: use host data paths as given instead of resolving absolute paths
-r: remap paths /rdcw/fs1 to /storage1/fs1
--systems-file PATH: YAML file defining extra systems.  Default: $DOCKERSTART_SYSTEMS_FILE

Each data_path maps a host directory into the container.  PATH_H:PATH_C mounts
host PATH_H at container PATH_C; a single PATH_H is mounted at the same path.

Remapping /rdcw/fs1 to /storage1/fs1 lets paths obtained with `readlink` on a
compute client be used on cache layer machines.
"""

_cli_log = get_logger("cli")


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> NoReturn:
        raise ConfigError(message)


def _positive_float(raw: str) -> float:
    try:
        value = float(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid MEM_GB value: {raw!r}") from exc
    if value <= 0:
        raise argparse.ArgumentTypeError(f"MEM_GB must be positive: {raw!r}")
    return value


def _validate_env_entry(item: str) -> str:
    if "=" not in item:
        raise ConfigError(f"Invalid -e '{item}'. Expected VAR=VALUE.")
    key = item.split("=", 1)[0].strip()
    if not key:
        raise ConfigError(f"-e '{item}': environment variable name cannot be empty.")
    if not _ENV_NAME_RE.match(key):
        raise ConfigError(f"-e '{item}': invalid environment variable name '{key}'.")
    return item


def _default_run_name() -> str:
    return f"{RUN_NAME_PREFIX}.{dt.datetime.now().strftime('%Y.%m.%d-%H.%M.%S')}"


def _build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(prog=PROG, add_help=False, usage=argparse.SUPPRESS)
    parser.add_argument("-I", dest="image", default=None)
    parser.add_argument("-d", dest="dry_run", action="store_true")
    parser.add_argument("-M", dest="system", default=DEFAULT_SYSTEM)
    parser.add_argument("-m", dest="mem_gb", type=_positive_float, default=None)
    parser.add_argument("-c", dest="command", default=None)
    parser.add_argument("-L", dest="log_dir", default="./logs")
    parser.add_argument("-l", dest="no_logs", action="store_true")
    parser.add_argument("-R", dest="run_name", default=None)
    parser.add_argument("-g", dest="scheduler_args", action="append", default=[])
    parser.add_argument("-q", dest="queue", default=None)
    parser.add_argument("-P", dest="no_preserve", action="store_true")
    parser.add_argument("-e", dest="env_vars", action="append", default=[])
    parser.add_argument("-A", dest="no_absolute", action="store_true")
    parser.add_argument("-r", dest="remap", action="store_true")
    parser.add_argument("--systems-file", dest="systems_file", default=None)
    return parser


def build_launch_config(args: argparse.Namespace) -> LaunchConfig:
    if not args.image:
        raise ConfigError("Docker image (-I) not specified")
    interactive = args.command is None
    return LaunchConfig(
        image=args.image,
        command=args.command if args.command is not None else "/bin/bash",
        interactive=interactive,
        system=args.system,
        mem_gb=args.mem_gb,
        log_dir=args.log_dir,
        run_name=args.run_name or _default_run_name(),
        write_logs=False if args.no_logs else None,
        scheduler_args=tuple(args.scheduler_args),
        queue=args.queue,
        preserve_environment=not args.no_preserve,
        env_vars=tuple(_validate_env_entry(item) for item in args.env_vars),
        data_paths=tuple(args.data_paths),
        no_absolute=args.no_absolute,
        remap=args.remap,
        dry_run=args.dry_run,
    )


def launch(config: LaunchConfig, *, systems_file: str | None = None) -> int:
    systems = load_systems(systems_file)
    profile = select_profile(
        config.system, interactive=config.interactive, systems=systems
    )
    mem_args = build_memory_args(config.mem_gb, profile)
    mappings = resolve_path_mappings(
        config.data_paths, no_absolute=config.no_absolute, remap=config.remap
    )
    logs = log_targets(config)
    prepare_log_files(logs, dry_run=config.dry_run)
    command = assemble(config, mappings, profile, mem_args, logs)
    _cli_log.info(
        "launch system=%s batch=%s mappings=%d dry_run=%s",
        profile.name,
        profile.is_batch_scheduled,
        len(mappings),
        config.dry_run,
    )
    return trigger(command, dry_run=config.dry_run)


def _split_argv(raw_argv: list[str]) -> tuple[list[str], list[str]]:
    """Bind option values the way getopt does, then hand them to argparse.

    An option that takes a value consumes the next word even when it starts
    with ``-``, so ``-g -Is`` reaches bsub unchanged. Each option comes back as
    ``-X=value`` so argparse cannot mistake the value for another flag.
    """
    try:
        opts, positionals = getopt.gnu_getopt(raw_argv, _SHORT_OPTIONS, _LONG_OPTIONS)
    except getopt.GetoptError as exc:
        raise ConfigError(str(exc)) from exc
    option_argv = [
        f"{flag}={value}" if flag in _VALUE_OPTIONS else flag for flag, value in opts
    ]
    return option_argv, positionals


def _run(raw_argv: list[str]) -> int:
    option_argv, positionals = _split_argv(raw_argv)
    if "-h" in option_argv:
        print(USAGE)
        return 0
    args = _build_parser().parse_args(option_argv)
    args.data_paths = positionals
    config = build_launch_config(args)
    return launch(config, systems_file=args.systems_file or systems_file_from_env())


def main(argv: Sequence[str] | None = None) -> int:
    setup_logging()
    raw_argv = list(argv) if argv is not None else sys.argv[1:]
    argv_text = " ".join(raw_argv)
    started = time.perf_counter()
    _cli_log.info("cli_command_start argv=%s", argv_text)

    exit_code = 1
    try:
        exit_code = _run(raw_argv)
    except ConfigError as exc:
        _cli_log.info("cli_command_error kind=config error=%s", exc)
        diagnostic(f"ERROR: {exc}")
        print(USAGE, file=sys.stderr)
        exit_code = exc.exit_code
    except ExecutionError as exc:
        _cli_log.info(
            "cli_command_error kind=execution exit=%s cmd=%s",
            exc.returncode,
            exc.command,
        )
        exit_code = exc.exit_code
    except LauncherError as exc:
        _cli_log.info("cli_command_error kind=%s error=%s", type(exc).__name__, exc)
        diagnostic(f"ERROR: {exc}")
        exit_code = exc.exit_code
    except KeyboardInterrupt:
        _cli_log.info("cli_command_error kind=interrupted")
        print("\n[interrupted]", file=sys.stderr)
        exit_code = 130
    except OSError as exc:
        _cli_log.info(
            "cli_command_error kind=%s error=%s", type(exc).__name__, exc
        )
        diagnostic(f"ERROR: {type(exc).__name__}: {exc}")
        exit_code = 1
    finally:
        _cli_log.info(
            "cli_command_end exit_code=%s duration_sec=%.3f",
            exit_code,
            time.perf_counter() - started,
        )

    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
