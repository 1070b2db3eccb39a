from __future__ import annotations

import logging
import shlex

from dockerstart._console import diagnostic
from dockerstart.models import MEM_UNIT_KB, EnvironmentProfile

_log = logging.getLogger("dockerstart.memory")

_LIMIT_SCALE = {MEM_UNIT_KB: 1_000_000}
_DEFAULT_LIMIT_SCALE = 1_000


def _scaled(mem_gb: float, factor: int) -> int:
    return int(round(mem_gb * factor))


def memory_limit(mem_gb: float, profile: EnvironmentProfile) -> int:
    scale = _LIMIT_SCALE.get(profile.mem_limit_unit or "", _DEFAULT_LIMIT_SCALE)
    return _scaled(mem_gb, scale)


def build_memory_args(mem_gb: float | None, profile: EnvironmentProfile) -> str:
    """Scheduler resource request for *mem_gb* gigabytes, or ``""``."""
    if mem_gb is None:
        return ""
    if not profile.is_batch_scheduled:
        diagnostic(
            f"WARNING: MEM_GB not implemented yet for system = {profile.name}.  Ignoring",
            timestamped=False,
        )
        _log.info("mem_ignored system=%s mem_gb=%s", profile.name, mem_gb)
        return ""

    megabytes = _scaled(mem_gb, 1_000)
    select = f"select[mem>{megabytes}] rusage[mem={megabytes}]"
    return f"-M {memory_limit(mem_gb, profile)} -R {shlex.quote(select)}"
