"""Launch docker containers directly or through an LSF submission."""

from dockerstart.assemble import assemble
from dockerstart.execution import trigger
from dockerstart.memory import build_memory_args
from dockerstart.paths import resolve_path_mapping
from dockerstart.profiles import select_profile

__all__ = [
    "assemble",
    "build_memory_args",
    "resolve_path_mapping",
    "select_profile",
    "trigger",
]
