"""Windows killer — taskkill, escalating to taskkill /F.

There are no signals to send, so the outcome is read from taskkill's
output and exit status. The output language follows the system locale
and is often decoded with the wrong code page, hence the multilingual
patterns and the exit-code fallbacks.
"""

from __future__ import annotations

import errno
import logging
import re

import psutil

from kkp.errors import CommandSpawnError, CommandTimeoutError, ToolNotFoundError
from kkp.finder.parsers import scrub_text
from kkp.models import KillOptions, KillResult
from kkp.runner import CommandResult, run_command

logger = logging.getLogger(__name__)

_TASKKILL_TIMEOUT_MS = 5000

# taskkill exit status when the PID does not exist.
_EXIT_NOT_FOUND = 128

_DENIED_RE = re.compile(
    r"access.+denied|拒绝访问|zugriff verweigert|acc[eè]s refus[eé]"
    r"|acceso denegado|accesso negato|acesso negado|отказано в доступе",
    re.IGNORECASE,
)
_NOT_FOUND_RE = re.compile(
    r"not found|找不到|没有找到|nicht gefunden|introuvable|no se encontr"
    r"|non trovato|não foi encontrado|не найден",
    re.IGNORECASE,
)
_SUCCESS_RE = re.compile(
    r"SUCCESS|成功|ERFOLGREICH|SUCC[EÈ]S|CORRECTO|[ÉE]XITO|RIUSCITO|УСПЕШНО",
    re.IGNORECASE,
)


class WindowsKiller:
    def is_alive(self, pid: int) -> bool:
        # os.kill on Windows terminates the target, so it cannot be a probe.
        return psutil.pid_exists(pid)

    async def kill(self, pid: int, options: KillOptions) -> KillResult:
        if not self.is_alive(pid):
            return KillResult(pid, True, "already-exited")

        # /T always: taskkill walks the tree itself.
        base_args = ["/PID", str(pid), "/T"]

        first = await run_taskkill(pid, base_args)
        if first.ok:
            return first

        # Most console processes ignore the polite request.
        logger.debug("taskkill without /F failed for %d: %s", pid, first.message)
        forced = await run_taskkill(pid, [*base_args, "/F"])
        if forced.ok and forced.method == "taskkill":
            return KillResult(pid, True, "taskkill /F")
        return forced


async def run_taskkill(pid: int, args: list[str]) -> KillResult:
    try:
        result = await run_command("taskkill", args, timeout_ms=_TASKKILL_TIMEOUT_MS)
    except ToolNotFoundError as exc:
        return KillResult(pid, False, "taskkill", message=scrub_text(str(exc)), error_code="ENOENT")
    except CommandTimeoutError as exc:
        return KillResult(pid, False, "taskkill", message=scrub_text(str(exc)), error_code="ETIMEDOUT")
    except CommandSpawnError as exc:
        code = errno.errorcode.get(exc.errno) if exc.errno else None
        return KillResult(pid, False, "taskkill", message=scrub_text(str(exc)) or "failed", error_code=code)
    return classify_taskkill(pid, result)


def classify_taskkill(pid: int, result: CommandResult) -> KillResult:
    """Map taskkill output and exit status onto a KillResult."""
    out = result.output

    if _DENIED_RE.search(out):
        return KillResult(pid, False, "taskkill", message="access denied", error_code="EPERM")
    if _NOT_FOUND_RE.search(out) or result.returncode == _EXIT_NOT_FOUND:
        return KillResult(pid, True, "already-exited")
    if _SUCCESS_RE.search(out) or result.returncode == 0:
        return KillResult(pid, True, "taskkill")

    return KillResult(pid, False, "taskkill", message=scrub_text(out) or "failed")
