"""Process execution with timeout enforcement and process-tree control."""

import os
import signal
import subprocess
import time
from typing import Optional, Dict, List, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import psutil

from .errors import ProcessError, ProcessTimeoutError
from .log import get_logger, log_process_event

logger = get_logger(__name__)


@dataclass(frozen=True)
class CommandSpec:
    """A structured external command: program, arguments and a declared timeout."""

    program: str
    args: Sequence[str] = field(default_factory=tuple)
    timeout: Optional[float] = 30.0
    cwd: Optional[Path] = None
    env: Optional[Dict[str, str]] = None

    @property
    def argv(self) -> List[str]:
        return [self.program, *self.args]

    def __str__(self) -> str:
        return " ".join(self.argv)


@dataclass
class ProcessResult:
    """Result of process execution."""

    returncode: int
    stdout: str
    stderr: str
    duration: float

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ProcessExecutor:
    """Executes one-shot commands with timeout enforcement."""

    def run(
        self,
        spec: CommandSpec,
        input_data: Optional[str] = None,
        capture_output: bool = True,
    ) -> ProcessResult:
        """Execute a command and return its result.

        A non-zero exit status is reported through the result, not raised.
        Raises ProcessTimeoutError when the declared timeout expires and
        ProcessError when the program cannot be launched.
        """
        command = spec.argv
        start_time = time.time()
        log_process_event(logger, "exec.start", command=command, timeout=spec.timeout)
        logger.debug("Executing: %s (cwd=%s)", spec, spec.cwd or Path.cwd())
        try:
            process = subprocess.Popen(
                command,
                cwd=spec.cwd,
                env=self._merged_env(spec.env),
                stdin=subprocess.PIPE if input_data else None,
                stdout=subprocess.PIPE if capture_output else None,
                stderr=subprocess.PIPE if capture_output else None,
                text=True,
            )
        except (OSError, subprocess.SubprocessError, ValueError) as e:
            duration = time.time() - start_time
            log_process_event(logger, "exec.error", duration=duration, error=str(e))
            raise ProcessError(f"Failed to execute command {command[0]}: {e}") from e

        try:
            stdout, stderr = process.communicate(input=input_data, timeout=spec.timeout)
        except subprocess.TimeoutExpired as e:
            duration = time.time() - start_time
            log_process_event(logger, "exec.timeout", duration=duration)
            process.kill()
            process.communicate()
            raise ProcessTimeoutError(
                f"Command {command[0]} timed out after {spec.timeout}s",
                timeout=spec.timeout or 0.0,
                details={"command": command, "duration": duration},
            ) from e

        duration = time.time() - start_time
        result = ProcessResult(
            returncode=process.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
            duration=duration,
        )
        if result.ok:
            log_process_event(logger, "exec.ok", duration=duration)
        else:
            log_process_event(
                logger,
                "exec.failed",
                return_code=process.returncode,
                duration=duration,
                stderr=result.stderr.strip()[-500:],
            )
        return result

    def stream(self, spec: CommandSpec) -> int:
        """Run a command attached to the caller's terminal and return its exit code.

        No timeout applies; used for following logs until the user interrupts.
        """
        logger.debug("Streaming: %s", spec)
        try:
            process = subprocess.Popen(
                spec.argv, cwd=spec.cwd, env=self._merged_env(spec.env)
            )
        except (OSError, subprocess.SubprocessError, ValueError) as e:
            raise ProcessError(f"Failed to execute command {spec.program}: {e}") from e
        try:
            return process.wait()
        except KeyboardInterrupt:
            process.terminate()
            process.wait()
            raise

    def spawn_detached(
        self,
        command: List[str],
        log_file: Path,
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> int:
        """Start a long-running process in its own session and return its PID.

        stdout and stderr are appended to log_file; the process outlives the CLI.
        """
        log_file.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(log_file, "ab") as log_handle:
                process = subprocess.Popen(
                    command,
                    cwd=cwd,
                    env=self._merged_env(env),
                    stdin=subprocess.DEVNULL,
                    stdout=log_handle,
                    stderr=subprocess.STDOUT,
                    start_new_session=True,
                )
        except (OSError, subprocess.SubprocessError, ValueError) as e:
            raise ProcessError(f"Failed to start {command[0]}: {e}") from e
        log_process_event(logger, "spawned", pid=process.pid, command=command)
        return process.pid

    @staticmethod
    def _merged_env(env: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
        if env is None:
            return None
        merged = dict(os.environ)
        merged.update(env)
        return merged


def is_process_alive(pid: int) -> bool:
    """True if pid exists and is not a zombie."""
    try:
        process = psutil.Process(pid)
        return process.is_running() and process.status() != psutil.STATUS_ZOMBIE
    except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
        return False


def process_create_time(pid: int) -> Optional[float]:
    """Start time of pid in seconds since the epoch, or None if it is gone."""
    try:
        return psutil.Process(pid).create_time()
    except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
        return None


def terminate_process_tree(root_pid: int, timeout: float = 10.0) -> bool:
    """Gracefully stop a process and its children, escalating to SIGKILL.

    Returns:
        True if no process in the tree is left alive
    """
    try:
        parent = psutil.Process(root_pid)
        procs = [parent] + parent.children(recursive=True)
    except psutil.NoSuchProcess:
        return True
    except psutil.Error as e:
        logger.error("Cannot inspect process tree rooted at %s: %s", root_pid, e)
        return False

    for proc in procs:
        try:
            proc.send_signal(signal.SIGTERM)
        except psutil.NoSuchProcess:
            pass
        except psutil.AccessDenied as e:
            logger.warning("Not permitted to signal PID %s: %s", proc.pid, e)

    _, alive = psutil.wait_procs(procs, timeout=timeout)
    if alive:
        logger.warning(
            "%d process(es) in tree %s ignored SIGTERM, sending SIGKILL",
            len(alive),
            root_pid,
        )
        for proc in alive:
            try:
                proc.kill()
            except psutil.NoSuchProcess:
                pass
            except psutil.AccessDenied as e:
                logger.error("Not permitted to kill PID %s: %s", proc.pid, e)
        _, alive = psutil.wait_procs(alive, timeout=timeout)

    log_process_event(logger, "terminated", pid=root_pid, survivors=len(alive))
    return not alive
