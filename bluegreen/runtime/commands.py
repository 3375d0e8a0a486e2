"""Bounded subprocess execution shared by the runtime and proxy adapters."""

import logging
import shlex
import subprocess
from typing import Callable, Mapping, Optional, Sequence, Union

from bluegreen.errors import RuntimeUnavailable

logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]


def run_command(
    command: Union[str, Sequence[str]],
    timeout: float,
    runner: Runner = subprocess.run,
    env: Optional[Mapping[str, str]] = None,
    cwd: Optional[str] = None,
) -> subprocess.CompletedProcess:
    """Run ``command`` and return the completed process.

    Missing binaries, timeouts and non-zero exits all raise RuntimeUnavailable.
    """
    args = shlex.split(command) if isinstance(command, str) else list(command)
    if not args:
        raise RuntimeUnavailable("Empty command")
    logger.debug("Running: %s", " ".join(shlex.quote(a) for a in args))
    try:
        completed = runner(
            args,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=dict(env) if env is not None else None,
            cwd=cwd,
            check=False,
        )
    except FileNotFoundError as exc:
        raise RuntimeUnavailable(f"Command not found: {args[0]}") from exc
    except subprocess.TimeoutExpired as exc:
        raise RuntimeUnavailable(
            f"Command timed out after {timeout:.0f}s: {' '.join(args)}"
        ) from exc

    if completed.returncode != 0:
        stderr = (completed.stderr or "").strip()
        raise RuntimeUnavailable(
            f"Command failed with exit code {completed.returncode}: "
            f"{' '.join(args)}" + (f": {stderr}" if stderr else "")
        )
    return completed
