"""Supervisor for one search server process, from spawn to termination."""

import asyncio
import os
import signal
import subprocess
from collections import deque
from typing import AsyncIterator, Deque, List, Optional

import psutil

from ..core.binary import BinaryResolver, SystemBinaryResolver
from ..core.errors import (
    KilledBeforeReadyError,
    LaunchError,
    PrematureExitError,
    ReadinessTimeoutError,
    SpawnError,
)
from ..core.log import Logger, get_logger, log_process_event
from ..core.process import get_child_processes, reap_processes, signal_process_group
from ..core.types import InstanceConfig
from .command_builder import CommandBuilder, ServerCommandBuilder
from .readiness import (
    SOURCE_HTTP,
    SOURCE_STDOUT,
    HttpReadinessProbe,
    ReadinessProbe,
    ReadinessSignal,
    is_ready_line,
)
from .registry import InstanceRegistry

STREAM_LIMIT = 1024 * 1024
STDERR_TAIL_LINES = 20
STREAM_DRAIN_TIMEOUT = 0.5
EXIT_POLL_INTERVAL = 0.05
SIGKILL = getattr(signal, "SIGKILL", signal.SIGTERM)


class ElasticInstance:
    """Owns exactly one server child process.

    ``run()`` resolves the binary, spawns it, and waits until either the
    stdout marker or the HTTP probe reports readiness. ``kill()`` terminates
    the whole process group and waits for every process to exit.
    """

    def __init__(
        self,
        config: InstanceConfig,
        *,
        binary_resolver: Optional[BinaryResolver] = None,
        command_builder: Optional[CommandBuilder] = None,
        probe: Optional[ReadinessProbe] = None,
        registry: Optional[InstanceRegistry] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        self.config = config
        self._logger = logger or get_logger(__name__)
        self._binary_resolver = binary_resolver or SystemBinaryResolver()
        self._command_builder = command_builder or ServerCommandBuilder(self._logger)
        self._probe = probe or HttpReadinessProbe(
            config.timeouts.probe_request_timeout, logger=self._logger
        )
        self._registry = registry

        self.process: Optional[asyncio.subprocess.Process] = None
        self.probe_attempts = 0
        self._stopping = False
        self._readiness: Optional[ReadinessSignal] = None
        self._stream_tasks: List[asyncio.Task] = []
        self._exit_task: Optional[asyncio.Task] = None
        self._probe_task: Optional[asyncio.Task] = None
        self._stderr_tail: Deque[str] = deque(maxlen=STDERR_TAIL_LINES)

    @classmethod
    async def launch(cls, config: InstanceConfig, **kwargs) -> "ElasticInstance":
        """Create an instance and run it until ready."""
        instance = cls(config, **kwargs)
        return await instance.run()

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process else None

    @property
    def returncode(self) -> Optional[int]:
        return self.process.returncode if self.process else None

    @property
    def is_ready(self) -> bool:
        return self._readiness is not None and self._readiness.is_ready

    @property
    def ready_source(self) -> Optional[str]:
        """Which detector won the readiness race ("stdout" or "http")."""
        return self._readiness.source if self._readiness else None

    def is_running(self) -> bool:
        return self.process is not None and self.process.returncode is None

    async def run(self) -> "ElasticInstance":
        """Spawn the server and wait for readiness.

        Raises:
            BinaryResolutionError: propagated unchanged from the resolver
            SpawnError: the binary could not be executed
            PrematureExitError: the process exited before becoming ready
            ReadinessTimeoutError: the probe budget ran out
        """
        if self.process is not None:
            raise LaunchError(f"Instance already launched (pid {self.pid})")

        binary = await self._binary_resolver.resolve(self.config)
        command = self._command_builder.build_command(binary, self.config)

        self._readiness = ReadinessSignal()
        self.process = await self._spawn(command)
        self._attach_observers()
        self._probe_task = asyncio.create_task(
            self._poll_http(), name=f"readiness-probe-{self.pid}"
        )

        try:
            source = await self._readiness.wait()
        except (LaunchError, asyncio.CancelledError) as e:
            log_process_event(
                self._logger, "start_failed", pid=self.pid, error=str(e) or type(e).__name__
            )
            await self._cleanup_on_failure()
            raise
        finally:
            await self._stop_tasks([self._probe_task])

        log_process_event(
            self._logger,
            "ready",
            pid=self.pid,
            source=source,
            endpoint=self.config.endpoint,
        )
        return self

    async def kill(self) -> "ElasticInstance":
        """Terminate the process group and wait until everything has exited.

        No-op when nothing was spawned or the process already exited.
        """
        process = self.process
        if process is None or process.returncode is not None:
            self._logger.debug("kill(): no running process for pid %s", self.pid)
            self._abandon_readiness()
            await self._finish()
            return self

        pid = process.pid
        timeouts = self.config.timeouts
        self._stopping = True
        log_process_event(self._logger, "stopping", pid=pid)

        children = get_child_processes(pid)
        signal_process_group(process, signal.SIGTERM)
        try:
            await asyncio.wait_for(process.wait(), timeout=timeouts.shutdown_graceful)
        except asyncio.TimeoutError:
            self._logger.warning(
                "Process %s did not exit within %ss after SIGTERM, escalating to SIGKILL",
                pid,
                timeouts.shutdown_graceful,
            )
            signal_process_group(process, SIGKILL)
            await reap_processes(children, timeouts.shutdown_force)
            try:
                await asyncio.wait_for(process.wait(), timeout=timeouts.shutdown_force)
            except asyncio.TimeoutError:
                self._logger.error(
                    "CRITICAL: Process %s did not die even after SIGKILL", pid
                )

        await reap_processes(children, timeouts.shutdown_force)
        self._abandon_readiness()
        await self._finish()
        log_process_event(
            self._logger, "stopped", pid=pid, exit_code=process.returncode
        )
        return self

    async def _spawn(self, command: List[str]) -> asyncio.subprocess.Process:
        env = {**os.environ, **self.config.env}
        log_process_event(self._logger, "spawning", command=command)
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                start_new_session=True,
                limit=STREAM_LIMIT,
            )
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            log_process_event(self._logger, "spawn_failed", command=command, error=str(e))
            raise SpawnError(
                f"Failed to spawn {command[0]}: {e}", details={"command": command}
            ) from e

        if self._registry is not None:
            self._registry.register(process.pid, self)
        log_process_event(self._logger, "spawned", pid=process.pid)
        return process

    def _attach_observers(self) -> None:
        assert self.process is not None
        self._stream_tasks = [
            asyncio.create_task(
                self._watch_stdout(self.process.stdout), name=f"stdout-{self.pid}"
            ),
            asyncio.create_task(
                self._watch_stderr(self.process.stderr), name=f"stderr-{self.pid}"
            ),
        ]
        self._exit_task = asyncio.create_task(self._watch_exit(), name=f"exit-{self.pid}")

    async def _read_lines(self, stream: asyncio.StreamReader) -> AsyncIterator[str]:
        while True:
            try:
                raw = await stream.readline()
            except ValueError as e:
                # Line longer than STREAM_LIMIT; the reader already dropped it
                self._logger.debug("Skipping oversized output line from %s: %s", self.pid, e)
                continue
            if not raw:
                return
            yield raw.decode("utf-8", errors="replace").rstrip()

    async def _watch_stdout(self, stream: asyncio.StreamReader) -> None:
        async for line in self._read_lines(stream):
            self._logger.debug("[%s stdout] %s", self.pid, line)
            if self._readiness.done:
                continue
            if is_ready_line(line, self.config.ready_marker):
                self._readiness.set_ready(SOURCE_STDOUT)

    async def _watch_stderr(self, stream: asyncio.StreamReader) -> None:
        async for line in self._read_lines(stream):
            self._stderr_tail.append(line)
            self._logger.warning("[%s stderr] %s", self.pid, line)

    async def _wait_for_exit(self) -> int:
        """Wait for the direct child to exit.

        ``process.wait()`` only returns once the child's pipes are closed,
        and a descendant that inherited them can hold them open long after
        the child itself is gone. While starting, the child is also polled
        directly; once it has exited, a process group still holding the
        pipes is killed.
        """
        waiter = asyncio.ensure_future(self.process.wait())
        poller = asyncio.ensure_future(self._poll_exited())
        try:
            await asyncio.wait({waiter, poller}, return_when=asyncio.FIRST_COMPLETED)
            if not waiter.done() and poller.done() and poller.result():
                await asyncio.wait({waiter}, timeout=EXIT_POLL_INTERVAL)
                if not waiter.done():
                    self._logger.debug(
                        "Process %s exited but its pipes are still open, killing its group",
                        self.pid,
                    )
                    signal_process_group(self.process, SIGKILL)
            return await waiter
        finally:
            await self._stop_tasks([waiter, poller])

    async def _poll_exited(self) -> bool:
        """True once the child has exited, False if startup settled first."""
        while not (self._readiness.done or self._stopping):
            if self.process.returncode is not None or self._is_zombie():
                return True
            await asyncio.sleep(EXIT_POLL_INTERVAL)
        return False

    def _is_zombie(self) -> bool:
        try:
            return psutil.Process(self.pid).status() == psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return True
        except psutil.Error:
            return False

    async def _watch_exit(self) -> None:
        returncode = await self._wait_for_exit()
        if self._readiness.done or self._stopping:
            log_process_event(self._logger, "exited", pid=self.pid, exit_code=returncode)
            return

        # Pipes are closed by now; let the readers catch up so the error has the tail
        await asyncio.wait(self._stream_tasks, timeout=STREAM_DRAIN_TIMEOUT)
        message = f"Server process {self.pid} exited with code {returncode} before it was ready"
        if self._stderr_tail:
            message += "\nLast stderr lines:\n" + "\n".join(self._stderr_tail)
        error = PrematureExitError(
            message,
            exit_code=returncode,
            signal=-returncode if returncode is not None and returncode < 0 else None,
            stderr_tail=list(self._stderr_tail),
        )
        if self._readiness.set_failed(error):
            log_process_event(
                self._logger, "exited_before_ready", pid=self.pid, exit_code=returncode
            )

    async def _poll_http(self) -> None:
        timeouts = self.config.timeouts
        url = f"{self.config.endpoint}/"
        for attempt in range(1, timeouts.probe_max_attempts + 1):
            await asyncio.sleep(timeouts.probe_interval)
            if self._readiness.done:
                return

            self.probe_attempts = attempt
            status = await self._probe.check(url)
            if status.is_healthy:
                self._readiness.set_ready(SOURCE_HTTP)
                return
            self._logger.debug(
                "Readiness probe %s/%s for %s failed: %s",
                attempt,
                timeouts.probe_max_attempts,
                url,
                status.error_message,
            )

        self._readiness.set_failed(
            ReadinessTimeoutError(
                f"Timeout waiting for server at {url} after "
                f"{timeouts.probe_max_attempts} probes ({timeouts.readiness_deadline:.1f}s)",
                timeout=timeouts.readiness_deadline,
                attempts=timeouts.probe_max_attempts,
            )
        )

    def _abandon_readiness(self) -> None:
        if self._readiness is None or self._readiness.done:
            return
        self._readiness.set_failed(
            KilledBeforeReadyError(
                f"Server process {self.pid} was killed before it became ready",
                details={"pid": self.pid},
            )
        )

    async def _cleanup_on_failure(self) -> None:
        """Make sure a failed launch leaves no process behind."""
        try:
            await self.kill()
        except (OSError, ProcessLookupError, psutil.Error) as e:
            self._logger.debug("Cleanup error for %s: %s", self.pid, e)

    async def _finish(self) -> None:
        await self._stop_tasks([self._probe_task, self._exit_task, *self._stream_tasks])
        if self._registry is not None and self.process is not None:
            self._registry.unregister(self.process.pid)

    @staticmethod
    async def _stop_tasks(tasks: List[Optional[asyncio.Task]]) -> None:
        pending = [task for task in tasks if task is not None and not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.wait(pending)
