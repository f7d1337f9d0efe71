"""
Executor: single-shot supervisor around the external build tool.

Behavior:
- Create a pipe for the tool's JSON progress monitor and render its records
  from a background thread (progress is simply disabled if the pipe fails)
- Run the tool with the manifest on stdin, stderr routed to a caller sink
- With want_result, capture stdout and decode it as the tool's JSON result

The tool exits non-zero when the pipeline fails. When a result was requested
and decoded, that exit status is not an error: the failure is reported
through the result itself.
"""

from __future__ import annotations

import codecs
import io
import logging
import os
import shlex
import subprocess
import threading
from typing import IO, Dict, List, Optional, Sequence

from pydantic import ValidationError

from .configuration import SupervisorConfig
from .errors import (
    NoOutputError,
    ResultDecodeError,
    RunError,
    SetupError,
    TransportError,
)
from .models import ExecutionResult
from .monitor import ProgressMonitor

logger = logging.getLogger(__name__)

# (want_result, exit_ok) -> outcome. A requested result has already been
# decoded by the time this table is consulted.
_RETURN = "return"
_FAIL = "fail"
EXIT_RECONCILIATION: Dict[tuple, str] = {
    (True, True): _RETURN,
    (True, False): _RETURN,
    (False, True): _RETURN,
    (False, False): _FAIL,
}


def _open_progress_pipe() -> tuple:
    return os.pipe()


def _build_env(extra_env: Optional[Sequence[str]]) -> Optional[Dict[str, str]]:
    """Return os.environ layered with KEY=VALUE entries, or None to inherit."""
    if not extra_env:
        return None
    env = os.environ.copy()
    for entry in extra_env:
        key, sep, value = entry.partition("=")
        if not sep or not key:
            raise SetupError(f"invalid environment entry (expected KEY=VALUE): {entry!r}")
        env[key] = value
    return env


def _sink_fileno(sink: Optional[IO]) -> Optional[int]:
    """Return the descriptor behind `sink`, or None when it has none."""
    if sink is None:
        return None
    try:
        fd = sink.fileno()
    except (AttributeError, OSError, ValueError):
        return None
    sink.flush()
    return fd


def _is_binary_sink(sink: IO) -> bool:
    """True for byte streams; any other writer is fed decoded text."""
    if isinstance(sink, (io.RawIOBase, io.BufferedIOBase)):
        return True
    if isinstance(sink, io.TextIOBase):
        return False
    return "b" in (getattr(sink, "mode", "") or "")


class _StreamDrain(threading.Thread):
    """Copy a child's output pipe into an in-memory or caller-supplied stream.

    The pipe is read to the end even if the sink fails, so the child never
    writes into a closed pipe.
    """

    def __init__(self, source: IO[bytes], sink: IO, name: str):
        super().__init__(name=name, daemon=True)
        self.source = source
        self.sink = sink
        # incremental so multi-byte characters split across reads survive
        self._decoder = None if _is_binary_sink(sink) else codecs.getincrementaldecoder("utf-8")(errors="replace")
        self.sink_failed = False

    def run(self) -> None:
        try:
            with self.source:
                for chunk in iter(lambda: self.source.read1(8192), b""):
                    self._write(self._decoder.decode(chunk) if self._decoder is not None else chunk)
            if self._decoder is not None:
                tail = self._decoder.decode(b"", final=True)
                if tail:
                    self._write(tail)
        except (OSError, ValueError) as ex:
            logger.error(f"{self.name}: reading child output failed: {ex}")

    def _write(self, data) -> None:
        if self.sink_failed:
            return
        try:
            self.sink.write(data)
        except (OSError, ValueError, TypeError) as ex:
            self.sink_failed = True
            logger.error(f"{self.name}: copying child output failed, discarding the rest: {ex}")


class Executor:
    """Run the build tool once and reconcile its exit status with its output.

    Public API:
      - Executor(config: SupervisorConfig|None = None, progress_sink=None)
      - build_command(...) -> list[str]
      - execute(...) -> ExecutionResult|None
      - query_version() -> str
    """

    def __init__(self, config: Optional[SupervisorConfig] = None, progress_sink: Optional[IO[str]] = None):
        self.config = config or SupervisorConfig.from_env()
        self.progress_sink = progress_sink
        # monitor of the most recent run; never joined here
        self.monitor: Optional[ProgressMonitor] = None

    @property
    def tool_name(self) -> str:
        return os.path.basename(self.config.executable)

    def build_command(
        self,
        store_dir: str,
        output_dir: str,
        exports: Sequence[str] = (),
        checkpoints: Sequence[str] = (),
        want_result: bool = False,
        monitor_fd: Optional[int] = None,
    ) -> List[str]:
        cmd = [
            self.config.executable,
            "--store", str(store_dir),
            "--output-directory", str(output_dir),
            "-",
        ]
        if monitor_fd is not None:
            cmd += ["--monitor", self.config.monitor, "--monitor-fd", str(monitor_fd)]
        for export in exports or ():
            cmd += ["--export", export]
        for checkpoint in checkpoints or ():
            cmd += ["--checkpoint", checkpoint]
        if want_result:
            cmd.append("--json")
        return cmd

    def _start_monitor(self, read_fd: int) -> ProgressMonitor:
        monitor = ProgressMonitor(
            read_fd,
            sink=self.progress_sink,
            prefix=self.config.progress_prefix,
            chunk_size=self.config.read_chunk_size,
        )
        monitor.start()
        self.monitor = monitor
        return monitor

    def execute(
        self,
        manifest: bytes,
        store_dir: str,
        output_dir: str,
        exports: Sequence[str] = (),
        checkpoints: Sequence[str] = (),
        extra_env: Sequence[str] = (),
        want_result: bool = False,
        error_sink: Optional[IO] = None,
    ) -> Optional[ExecutionResult]:
        """Run the tool on `manifest` and return its decoded result.

        Returns None when `want_result` is False and the tool succeeded.
        Raises SetupError, TransportError, NoOutputError, ResultDecodeError
        or RunError; progress problems are only logged.
        """
        read_fd: Optional[int] = None
        write_fd: Optional[int] = None
        try:
            read_fd, write_fd = _open_progress_pipe()
        except OSError as ex:
            logger.warning(f"Error creating pipe for {self.config.monitor}: {ex} (just disabling progress)")

        try:
            if read_fd is not None:
                try:
                    self._start_monitor(read_fd)
                    # the monitor thread owns and closes the read end now
                    read_fd = None
                except RuntimeError as ex:
                    logger.warning(f"Error starting progress monitor: {ex} (just disabling progress)")
                    os.close(read_fd)
                    os.close(write_fd)
                    read_fd = write_fd = None

            cmd = self.build_command(store_dir, output_dir, exports, checkpoints, want_result, monitor_fd=write_fd)
            return self._run(cmd, manifest, extra_env, want_result, error_sink, write_fd)
        finally:
            # the child inherited its own copy; ours must go for the monitor to see EOF
            if write_fd is not None:
                os.close(write_fd)
            if read_fd is not None:
                os.close(read_fd)

    def _run(
        self,
        cmd: List[str],
        manifest: bytes,
        extra_env: Sequence[str],
        want_result: bool,
        error_sink: Optional[IO],
        monitor_fd: Optional[int],
    ) -> Optional[ExecutionResult]:
        name = self.tool_name
        env = _build_env(extra_env)
        stderr_fd = _sink_fileno(error_sink)
        drain_stderr = error_sink is not None and stderr_fd is None
        logger.debug(f"Running {' '.join(shlex.quote(x) for x in cmd)}")

        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE if want_result else None,
                stderr=subprocess.PIPE if drain_stderr else stderr_fd,
                env=env,
                pass_fds=(monitor_fd,) if monitor_fd is not None else (),
            )
        except (OSError, ValueError) as ex:
            raise SetupError(f"error starting {name}: {ex}") from ex

        stdout_buffer = io.BytesIO()
        drains: List[_StreamDrain] = []
        if want_result:
            drains.append(_StreamDrain(proc.stdout, stdout_buffer, name=f"{name}-stdout"))
        if drain_stderr:
            drains.append(_StreamDrain(proc.stderr, error_sink, name=f"{name}-stderr"))
        for drain in drains:
            drain.start()

        try:
            proc.stdin.write(manifest)
        except OSError as ex:
            try:
                proc.stdin.close()
            except OSError:
                # already reported as the write failure
                pass
            raise TransportError(f"error writing {name} manifest: {ex}") from ex
        try:
            proc.stdin.close()
        except OSError as ex:
            raise TransportError(f"error closing {name}'s stdin: {ex}") from ex

        returncode = proc.wait()
        for drain in drains:
            drain.join()
        logger.debug(f"{name} exited rc={returncode}")

        result: Optional[ExecutionResult] = None
        if want_result:
            # decode even though the job could have failed
            raw = stdout_buffer.getvalue()
            if not raw:
                raise NoOutputError(f"{name} did not return any output")
            try:
                result = ExecutionResult.model_validate_json(raw)
            except ValidationError as ex:
                raise ResultDecodeError(f"error decoding {name} output: {ex}", raw.decode(errors="replace")) from ex

        if EXIT_RECONCILIATION[(want_result, returncode == 0)] == _FAIL:
            raise RunError(f"running {name} failed: exit status {returncode}", returncode)
        if returncode != 0:
            logger.info(f"{name} exited rc={returncode}; failure reported through its result")
        return result

    def query_version(self) -> str:
        """Return the tool's version, e.g. "124" from "osbuild 124\\n"."""
        cmd = [self.config.executable, "--version"]
        try:
            res = subprocess.run(cmd, stdout=subprocess.PIPE, check=True)
        except subprocess.CalledProcessError as ex:
            raise RunError(f"running {self.tool_name} failed: {ex}", ex.returncode) from ex
        except OSError as ex:
            raise RunError(f"running {self.tool_name} failed: {ex}") from ex

        version = res.stdout.decode(errors="replace")
        prefix = self.config.version_prefix or ""
        if prefix and version.startswith(prefix):
            version = version[len(prefix):]
        return version.strip()


def run_pipeline(
    manifest: bytes,
    store_dir: str,
    output_dir: str,
    exports: Sequence[str] = (),
    checkpoints: Sequence[str] = (),
    extra_env: Sequence[str] = (),
    want_result: bool = False,
    error_sink: Optional[IO] = None,
) -> Optional[ExecutionResult]:
    """Compatibility wrapper executing through the Executor class."""
    return Executor().execute(
        manifest,
        store_dir,
        output_dir,
        exports=exports,
        checkpoints=checkpoints,
        extra_env=extra_env,
        want_result=want_result,
        error_sink=error_sink,
    )


def tool_version() -> str:
    return Executor().query_version()
