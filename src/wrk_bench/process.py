import logging
import os
import shutil
import subprocess  # nosec B404 - runs the external load generator
import tempfile
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import psutil

from .errors import ProcessExitError, ProcessLaunchError, ProcessTimeoutError
from .logging import log_process_exit, log_process_start, log_process_timeout
from .models import RawOutput, RunConfig, ScriptText

logger = logging.getLogger(__name__)

# Seconds to wait for pipes to drain once the process tree is killed
_DRAIN_TIMEOUT_SECONDS = 5.0


def resolve_executable(executable: str) -> str:
    if any(sep in executable for sep in (os.sep, "/", "\\")):
        path = Path(executable)
        if path.is_file():
            return str(path)
        raise ProcessLaunchError(executable, "file not found")

    resolved = shutil.which(executable)
    if resolved:
        return resolved
    raise ProcessLaunchError(executable, "not found on PATH")


def build_command(executable: str, script_path: Path, config: RunConfig, url: str) -> list[str]:
    command = [
        executable,
        "-t",
        str(config.threads),
        "-c",
        str(config.connections),
        "-d",
        config.duration_arg,
        "-s",
        str(script_path),
    ]
    if config.latency:
        command.append("--latency")
    command.append(url)
    return command


def kill_process_tree(pid: int) -> None:
    try:
        parent = psutil.Process(pid)
    except psutil.Error:
        return

    for child in parent.children(recursive=True):
        try:
            child.kill()
        except psutil.Error:
            pass
    try:
        parent.kill()
    except psutil.Error:
        pass


def close_process_streams(process: subprocess.Popen[str]) -> None:
    for stream in (process.stdin, process.stdout, process.stderr):
        try:
            if stream:
                stream.close()
        except OSError:
            pass


@contextmanager
def script_file(script: ScriptText, directory: str | Path | None = None) -> Iterator[Path]:
    """Materialize ``script`` as a temporary .lua file, removed on exit."""
    fd, name = tempfile.mkstemp(prefix="wrk-bench-", suffix=".lua", dir=directory)
    path = Path(name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(script.text)
        yield path
    finally:
        path.unlink(missing_ok=True)


def _process_env() -> dict[str, str]:
    env = dict(os.environ)
    # Keep numeric output locale-invariant
    env["LANG"] = "C.UTF-8"
    env["LC_ALL"] = "C.UTF-8"
    return env


def _collect_after_kill(process: subprocess.Popen[str]) -> tuple[str, str]:
    try:
        stdout, stderr = process.communicate(timeout=_DRAIN_TIMEOUT_SECONDS)
    except subprocess.TimeoutExpired:
        logger.warning("Process %d did not release its pipes after kill", process.pid)
        close_process_streams(process)
        process.wait()
        return "", ""
    return stdout or "", stderr or ""


class ProcessRunner:
    """Runs the external load generator under a wall-clock timeout.

    Holds no per-run state; one instance can serve concurrent runs.
    """

    def __init__(self, *, temp_dir: str | Path | None = None) -> None:
        self._temp_dir = temp_dir

    def run(self, script: ScriptText, config: RunConfig) -> RawOutput:
        executable = resolve_executable(config.executable)
        timeout_s = float(config.timeout_s or 0)

        with script_file(script, self._temp_dir) as script_path:
            command = build_command(executable, script_path, config, script.url)
            logger.debug("Starting benchmark process: %s", " ".join(command))
            log_process_start(command, timeout_s)

            started = time.monotonic()
            try:
                process = subprocess.Popen(  # nosec B603 - trusted command
                    command,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                    env=_process_env(),
                )
            except OSError as exc:
                raise ProcessLaunchError(executable, str(exc)) from exc

            timed_out = False
            try:
                stdout, stderr = process.communicate(timeout=timeout_s)
            except subprocess.TimeoutExpired:
                timed_out = True
                kill_process_tree(process.pid)
                stdout, stderr = _collect_after_kill(process)
            except BaseException:
                kill_process_tree(process.pid)
                close_process_streams(process)
                process.wait()
                raise

            elapsed_s = time.monotonic() - started
            stdout = stdout or ""
            stderr = stderr or ""

            if timed_out:
                logger.error("Benchmark process killed after %.1fs timeout", timeout_s)
                log_process_timeout(timeout_s, elapsed_s * 1000)
                raise ProcessTimeoutError(timeout_s, stdout=stdout, stderr=stderr)

            exit_code = process.returncode
            log_process_exit(exit_code, elapsed_s * 1000, stderr)
            if exit_code != 0:
                logger.error("Benchmark process exited with status %d", exit_code)
                raise ProcessExitError(exit_code, stdout=stdout, stderr=stderr)

            logger.debug("Benchmark process finished in %.2fs", elapsed_s)
            return RawOutput(stdout=stdout, stderr=stderr, exit_code=exit_code, elapsed_s=elapsed_s)


__all__ = [
    "ProcessRunner",
    "build_command",
    "close_process_streams",
    "kill_process_tree",
    "resolve_executable",
    "script_file",
]
