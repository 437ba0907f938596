"""External process execution with bounded waits and escalating termination.

Every engine invocation (decompiler, FFmpeg probes, fallback audio) goes
through a :class:`ProcessRunner`.  The production implementation,
:class:`SubprocessRunner`, drains stdout and stderr on reader threads so a
chatty child can never fill a pipe buffer and deadlock, and hands
termination to :class:`ProcessSupervisor`, an explicit state machine::

    RUNNING ──exit──────────────────────────────▶ EXITED
       │
       └─timeout──▶ SIGNALED_TERM ──grace expired──▶ KILLED

Tests substitute a fake runner, or drive ``ProcessSupervisor`` against a
fake process object, without spawning anything.
"""

from __future__ import annotations

import logging
import subprocess
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import IO, Callable, Protocol, Sequence

logger = logging.getLogger(__name__)

# Seconds between SIGTERM and SIGKILL once a timeout has fired.
TERMINATE_GRACE_S: float = 5.0

LineCallback = Callable[[str], None]


class ProcessState(str, Enum):
    RUNNING = "running"
    EXITED = "exited"
    SIGNALED_TERM = "signaled_term"
    KILLED = "killed"


@dataclass
class ProcessResult:
    """Outcome of one external process invocation."""

    returncode: int | None
    stdout: list[str] = field(default_factory=list)
    stderr: list[str] = field(default_factory=list)
    state: ProcessState = ProcessState.EXITED

    @property
    def timed_out(self) -> bool:
        return self.state in (ProcessState.SIGNALED_TERM, ProcessState.KILLED)

    @property
    def stderr_text(self) -> str:
        return "\n".join(self.stderr)


class ProcessRunner(Protocol):
    def run(
        self,
        args: Sequence[str],
        timeout_s: float | None = None,
        on_stdout: LineCallback | None = None,
        on_stderr: LineCallback | None = None,
    ) -> ProcessResult:
        """Run *args* to completion or until *timeout_s* elapses.

        Raises ``OSError`` (usually ``FileNotFoundError``) when the
        executable cannot be started.
        """
        ...


class ProcessSupervisor:
    """Wait on a process and escalate SIGTERM → SIGKILL when the budget runs out.

    *process* only needs the ``wait``/``poll``/``terminate``/``kill`` subset of
    :class:`subprocess.Popen`.
    """

    def __init__(self, process, grace_s: float = TERMINATE_GRACE_S) -> None:
        self.process = process
        self.grace_s = grace_s
        self.state = ProcessState.RUNNING

    def wait(self, timeout_s: float | None) -> ProcessState:
        try:
            self.process.wait(timeout=timeout_s)
        except subprocess.TimeoutExpired:
            self._escalate()
        else:
            self.state = ProcessState.EXITED
        return self.state

    def _escalate(self) -> None:
        # The child may have exited between the timeout firing and now.
        if self.process.poll() is not None:
            self.state = ProcessState.EXITED
            return

        logger.debug("timeout reached; sending SIGTERM to pid %s", getattr(self.process, "pid", "?"))
        self.state = ProcessState.SIGNALED_TERM
        self.process.terminate()
        try:
            self.process.wait(timeout=self.grace_s)
        except subprocess.TimeoutExpired:
            logger.debug("process ignored SIGTERM for %.1fs; sending SIGKILL", self.grace_s)
            self.state = ProcessState.KILLED
            self.process.kill()
            self.process.wait()


def _pump(stream: IO[str], sink: list[str], callback: LineCallback | None) -> None:
    for raw in stream:
        line = raw.rstrip("\r\n")
        sink.append(line)
        if callback is not None:
            callback(line)
    stream.close()


class SubprocessRunner:
    """:class:`ProcessRunner` backed by :class:`subprocess.Popen`."""

    def __init__(self, grace_s: float = TERMINATE_GRACE_S) -> None:
        self.grace_s = grace_s

    def run(
        self,
        args: Sequence[str],
        timeout_s: float | None = None,
        on_stdout: LineCallback | None = None,
        on_stderr: LineCallback | None = None,
    ) -> ProcessResult:
        cmd = [str(a) for a in args]
        logger.debug("running: %s", " ".join(cmd))

        process = subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
        )

        result = ProcessResult(returncode=None)
        readers = [
            threading.Thread(target=_pump, args=(process.stdout, result.stdout, on_stdout), daemon=True),
            threading.Thread(target=_pump, args=(process.stderr, result.stderr, on_stderr), daemon=True),
        ]
        for reader in readers:
            reader.start()

        supervisor = ProcessSupervisor(process, grace_s=self.grace_s)
        result.state = supervisor.wait(timeout_s)

        for reader in readers:
            reader.join()

        result.returncode = process.returncode
        return result
