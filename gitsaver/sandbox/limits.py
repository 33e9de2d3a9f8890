"""Resource limits for git subprocesses.

Clones run inside FastAPI's worker threadpool, where ``preexec_fn`` is not
safe to use. Limits are therefore applied to the child from the parent with
``resource.prlimit()`` right after spawn. On platforms without ``prlimit``
(macOS, Windows) this is a no-op and the wall-clock timeout on the clone is
the only guard.

Environment overrides:
  - GITSAVER_CLONE_RLIMIT_AS_BYTES: address-space cap in bytes.
    Unset or <= 0 means no cap, the default; index-pack maps whole
    packfiles and needs address space proportional to the repository.
  - GITSAVER_CLONE_RLIMIT_CPU_SECONDS: CPU-time cap in seconds
"""

import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)

_DEFAULT_CPU_LIMIT_SECONDS = 600

_MEM_LIMIT_ENV = "GITSAVER_CLONE_RLIMIT_AS_BYTES"
_CPU_LIMIT_ENV = "GITSAVER_CLONE_RLIMIT_CPU_SECONDS"


def _resolve_memory_limit_bytes() -> Optional[int]:
    raw = os.environ.get(_MEM_LIMIT_ENV)
    if raw is None or not raw.strip():
        return None
    value = int(raw.strip())
    return value if value > 0 else None


def _resolve_cpu_limit_seconds() -> int:
    raw = os.environ.get(_CPU_LIMIT_ENV)
    if not raw or not raw.strip():
        return _DEFAULT_CPU_LIMIT_SECONDS
    parsed = int(raw.strip())
    if parsed <= 0:
        return _DEFAULT_CPU_LIMIT_SECONDS
    return parsed


def apply_resource_limits(pid: int) -> None:
    """Cap CPU time and address space of the running process ``pid``.

    Failures are logged and swallowed: a clone without limits is still
    bounded by its timeout.
    """
    try:
        import resource
    except ImportError:
        return

    prlimit = getattr(resource, "prlimit", None)
    if prlimit is None:
        return

    try:
        mem_limit = _resolve_memory_limit_bytes()
        if mem_limit:
            prlimit(pid, resource.RLIMIT_AS, (mem_limit, resource.RLIM_INFINITY))

        cpu_limit = _resolve_cpu_limit_seconds()
        prlimit(pid, resource.RLIMIT_CPU, (cpu_limit, resource.RLIM_INFINITY))

        logger.debug(
            "Resource limits applied to pid %d: mem=%s cpu=%ds",
            pid,
            f"{mem_limit / (1024**3):.1f}GB" if mem_limit else "unlimited",
            cpu_limit,
        )
    except (ValueError, OSError) as exc:
        logger.warning("Failed to apply resource limits to pid %d: %s", pid, exc)
