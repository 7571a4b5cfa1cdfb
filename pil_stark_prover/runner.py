"""Stage runner - executes one external command and maps its outcome.

Two modes:
- run_to_completion: inherit stdio, wait, map a non-zero exit to the stage error
- run_and_capture_last_line: pipe stdout, echo each line as it arrives and
  keep only the final one for the caller to judge

There is no timeout unless one is configured. With a timeout the child runs
in its own process group and a watchdog tears the whole group down at the
deadline; the stage then fails with returncode=None and timed_out=True.
"""

from __future__ import annotations

import logging
import os
import shlex
import signal
import subprocess
import threading
from collections import deque
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, Optional, Sequence

from .errors import ProverIOError
from .stages import Stage

logger = logging.getLogger(__name__)

_PROCESS_GROUP_TERMINATION_GRACE_SECONDS = 0.5


@dataclass(frozen=True)
class ProcessOutcome:
    """Exit status of a streamed stage plus the last stdout line ("" if none)."""

    returncode: int
    last_line: str

    @property
    def success(self) -> bool:
        return self.returncode == 0


def format_command(argv: Sequence[str]) -> str:
    return "→ " + " ".join(shlex.quote(str(arg)) for arg in argv)


def _echo_stdout(line: str) -> None:
    print(line, flush=True)


def iter_lines(stream: Iterable[str]) -> Iterator[str]:
    """Lazily yield lines from a text stream without their line terminator."""
    for raw in stream:
        yield raw.rstrip("\r\n")


def last_line(lines: Iterable[str]) -> str:
    """Consume ``lines`` to exhaustion, keeping only the final element."""
    tail = deque(lines, maxlen=1)
    return tail[0] if tail else ""


def _terminate_process_group(proc: subprocess.Popen) -> None:
    if proc.poll() is not None:
        return

    for sig in (signal.SIGTERM, signal.SIGKILL):
        try:
            os.killpg(proc.pid, sig)
        except ProcessLookupError:
            return
        try:
            proc.wait(timeout=_PROCESS_GROUP_TERMINATION_GRACE_SECONDS)
            return
        except subprocess.TimeoutExpired:
            continue


class _Watchdog:
    """Kills a process group once ``timeout`` seconds elapse."""

    def __init__(self, proc: subprocess.Popen, timeout: Optional[float]):
        self.fired = False
        self._proc = proc
        self._timer: Optional[threading.Timer] = None
        if timeout is not None:
            self._timer = threading.Timer(timeout, self._fire)
            self._timer.daemon = True

    def _fire(self) -> None:
        if self._proc.poll() is not None:
            return
        self.fired = True
        _terminate_process_group(self._proc)

    def __enter__(self) -> "_Watchdog":
        if self._timer is not None:
            self._timer.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        if self._timer is not None:
            self._timer.cancel()


class StageRunner:
    """Runs Stage descriptors as blocking subprocesses.

    Args:
        timeout: Optional per-stage bound in seconds (None waits forever)
        echo: Sink for streamed stdout lines (defaults to our own stdout)
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        echo: Optional[Callable[[str], None]] = None,
    ):
        if timeout is not None and timeout <= 0:
            raise ValueError("timeout must be > 0")
        self.timeout = timeout
        self.echo = echo or _echo_stdout

    def _spawn(self, stage: Stage, *, capture_stdout: bool) -> subprocess.Popen:
        logger.info(format_command(stage.argv))
        if stage.cwd is not None:
            logger.debug("  (cwd: %s)", stage.cwd)
        try:
            return subprocess.Popen(
                list(stage.argv),
                cwd=str(stage.cwd) if stage.cwd is not None else None,
                stdout=subprocess.PIPE if capture_stdout else None,
                text=capture_stdout,
                errors="replace" if capture_stdout else None,
                start_new_session=self.timeout is not None,
            )
        except OSError as exc:
            logger.error("Could not start %s: %s", stage.program, exc)
            raise ProverIOError.from_os_error(exc, stage=stage.name) from exc

    def _timed_out(self, stage: Stage, **details: object):
        logger.error("Stage %s timed out after %ss", stage.name, self.timeout)
        return stage.fail(None, timed_out=True, stage=stage.name, **details)

    def run_to_completion(self, stage: Stage) -> None:
        """Run ``stage`` and raise its error kind unless it exits with 0."""
        proc = self._spawn(stage, capture_stdout=False)
        with _Watchdog(proc, self.timeout) as watchdog:
            returncode = proc.wait()

        if watchdog.fired:
            raise self._timed_out(stage)
        if returncode != 0:
            logger.error("Stage %s failed with exit status %s", stage.name, returncode)
            raise stage.fail(returncode, stage=stage.name)

    def run_and_capture_last_line(self, stage: Stage) -> ProcessOutcome:
        """Stream stdout of ``stage``, echoing each line, and return the last one.

        The exit status is returned rather than judged: the caller decides
        what counts as success.
        """
        proc = self._spawn(stage, capture_stdout=True)

        def echoed(lines: Iterable[str]) -> Iterator[str]:
            for line in lines:
                self.echo(line)
                yield line

        with _Watchdog(proc, self.timeout) as watchdog:
            with proc:
                final = last_line(echoed(iter_lines(proc.stdout)))
            returncode = proc.returncode

        if watchdog.fired:
            raise self._timed_out(stage, last_line=final)
        return ProcessOutcome(returncode=returncode, last_line=final)
