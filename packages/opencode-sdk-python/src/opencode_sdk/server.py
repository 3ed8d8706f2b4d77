"""Supervisor for a local ``opencode serve`` process."""

from __future__ import annotations

import asyncio
import contextlib
import enum
import os
from pathlib import Path
import shutil
import time
from typing import TYPE_CHECKING, Any

import httpx

from .client import OpencodeAsyncClient, build_url
from .config import OpencodeConfig
from .exceptions import (
    AlreadyRunningError,
    NotReadyError,
    OpencodeError,
    SpawnError,
    StopError,
)
from .log import get_logger
from .ports import allocate_port
from .staging import build_environment, stage_config


if TYPE_CHECKING:
    from typing import Self


logger = get_logger(__name__)

HEALTH_PATH = "/global/health"
POLL_INTERVAL = 0.5
DEFAULT_READY_TIMEOUT = 15.0


class ServerState(enum.Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class OpencodeServer:
    """Starts, watches and stops one OpenCode server process.

    ``start()`` and ``stop()`` are serialized by a lock. ``wait_for_ready()``
    and the clients returned by ``client()`` only read the address and
    directory, so they can run alongside each other.

    Example:
        async with OpencodeServer(OpencodeConfig(config_files=files)) as server:
            await server.wait_for_ready(timeout=15)
            async with server.client() as client:
                session = await client.create_session("demo")
    """

    def __init__(self, config: OpencodeConfig | None = None) -> None:
        self.config = config or OpencodeConfig()
        self._addr = self.config.addr
        self._process: asyncio.subprocess.Process | None = None
        self._reaper: asyncio.Task[None] | None = None
        self._exited = asyncio.Event()
        self._returncode: int | None = None
        self._staged_dir: Path | None = None
        self._state = ServerState.IDLE
        self._lock = asyncio.Lock()

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(self, *_args: object) -> None:
        try:
            await self.stop()
        finally:
            await self.cleanup()

    # --- Accessors ---

    @property
    def addr(self) -> str:
        return self._addr

    @property
    def directory(self) -> str | None:
        """The isolated config directory in effect, if any."""
        if self._staged_dir is not None:
            return str(self._staged_dir)
        return self.config.config_dir or None

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def returncode(self) -> int | None:
        """Exit code of the last process, once it has been reaped."""
        return self._returncode

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    def client(self, **kwargs: Any) -> OpencodeAsyncClient:
        """Return an API client for this server's address and directory."""
        return OpencodeAsyncClient(self.addr, directory=self.directory, **kwargs)

    async def wait_exited(self) -> int | None:
        """Wait until the current process has exited and return its exit code."""
        await self._exited.wait()
        return self._returncode

    # --- Lifecycle ---

    async def start(self) -> None:
        """Spawn the server process and confirm it stays up.

        Raises:
            AlreadyRunningError: A live process is already supervised
            PortAllocationError: No free port could be found
            ConfigStagingError: The config file set could not be written
            SpawnError: The process could not be started or exited at once
        """
        async with self._lock:
            if self._process is not None:
                if self._process.returncode is None:
                    raise AlreadyRunningError(
                        f"opencode is already running (pid {self._process.pid})"
                    )
                logger.warning(
                    "Discarding exited OpenCode process",
                    pid=self._process.pid,
                    returncode=self._process.returncode,
                )
                self._process = None

            self._state = ServerState.STARTING
            try:
                await self._spawn()
            except BaseException:
                self._state = ServerState.IDLE
                self._addr = self.config.addr
                raise
            self._state = ServerState.RUNNING

    async def _spawn(self) -> None:
        cfg = self.config
        addr = cfg.addr
        if addr:
            try:
                port = int(addr.rsplit(":", 1)[-1])
            except ValueError as exc:
                raise SpawnError(f"invalid server address {addr!r}") from exc
        else:
            port = allocate_port(cfg.hostname)
            addr = f"{cfg.hostname}:{port}"

        staged: Path | None = None
        if cfg.config_files is not None:
            if self._staged_dir is not None:
                shutil.rmtree(self._staged_dir, ignore_errors=True)
                self._staged_dir = None
            staged = stage_config(cfg.config_files)
        config_dir = str(staged) if staged is not None else cfg.config_dir

        process: asyncio.subprocess.Process | None = None
        try:
            env = build_environment(os.environ, config_dir=config_dir, api_key=cfg.api_key)
            args = [
                *cfg.command,
                "serve",
                "--hostname",
                cfg.hostname,
                "--port",
                str(port),
            ]
            if cfg.cwd:
                logger.info("Set working directory for opencode process", cwd=cfg.cwd)
            logger.info("Starting opencode", args=args)
            try:
                process = await asyncio.create_subprocess_exec(
                    *args, env=env, cwd=cfg.cwd or None
                )
            except OSError as exc:
                raise SpawnError(f"failed to start opencode: {exc}") from exc
            logger.info("OpenCode process started", pid=process.pid)

            self._exited = asyncio.Event()
            self._returncode = None
            self._reaper = asyncio.create_task(self._reap(process, self._exited))

            await asyncio.sleep(cfg.start_grace)
            if process.returncode is not None:
                raise SpawnError(
                    f"opencode process exited immediately with code {process.returncode}"
                )
        except BaseException:
            if process is not None and process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
            if staged is not None:
                shutil.rmtree(staged, ignore_errors=True)
            raise

        self._process = process
        self._staged_dir = staged
        self._addr = addr
        logger.info("OpenCode process confirmed running", pid=process.pid)

    async def _reap(self, process: asyncio.subprocess.Process, exited: asyncio.Event) -> None:
        returncode = await process.wait()
        if exited is self._exited:
            self._returncode = returncode
        exited.set()
        if returncode == 0:
            logger.info("OpenCode process exited", pid=process.pid, returncode=returncode)
        else:
            logger.error(
                "OpenCode process exited with error", pid=process.pid, returncode=returncode
            )

    async def stop(self) -> None:
        """Terminate the process. Does nothing when no process is running.

        Raises:
            StopError: The process could not be signalled
        """
        async with self._lock:
            process = self._process
            if process is None:
                logger.info("OpenCode not running, nothing to stop")
                return

            self._state = ServerState.STOPPING
            logger.info("Stopping OpenCode", pid=process.pid)
            try:
                if process.returncode is None:
                    with contextlib.suppress(ProcessLookupError):
                        process.terminate()
            except OSError as exc:
                self._state = ServerState.RUNNING
                raise StopError(f"failed to stop opencode: {exc}") from exc

            self._process = None
            try:
                await asyncio.wait_for(process.wait(), timeout=self.config.stop_timeout)
            except TimeoutError:
                logger.warning("OpenCode did not exit in time, killing it", pid=process.pid)
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                await process.wait()
            finally:
                self._state = ServerState.IDLE
            logger.info("OpenCode stopped", pid=process.pid)

    async def wait_for_ready(
        self,
        max_attempts: int | None = None,
        *,
        timeout: float | None = None,
        interval: float = POLL_INTERVAL,
    ) -> None:
        """Poll the health endpoint until the server answers.

        Any HTTP response counts as ready. The budget is ``max_attempts``
        polls, a ``timeout`` in seconds, or both; without either a 15 second
        timeout applies. Cancelling the calling task stops the polling.

        Raises:
            NotReadyError: The budget ran out or the process died
        """
        if max_attempts is None and timeout is None:
            timeout = DEFAULT_READY_TIMEOUT
        deadline = time.monotonic() + timeout if timeout is not None else None
        url = build_url(self.addr, HEALTH_PATH)
        logger.info(
            "Waiting for OpenCode to be ready",
            addr=self.addr,
            max_attempts=max_attempts,
            timeout=timeout,
        )
        if not url:
            raise NotReadyError("OpenCode server address is not set")

        attempt = 0
        async with httpx.AsyncClient(timeout=2.0) as http:
            while max_attempts is None or attempt < max_attempts:
                attempt += 1
                try:
                    remaining = None if deadline is None else deadline - time.monotonic()
                    await asyncio.wait_for(http.get(url), timeout=remaining)
                except (httpx.TransportError, TimeoutError) as exc:
                    if attempt % 10 == 1:
                        logger.debug("Waiting for OpenCode...", attempt=attempt, err=str(exc))
                else:
                    logger.info("OpenCode is ready", addr=self.addr, attempt=attempt)
                    return

                process = self._process
                if process is not None and process.returncode is not None:
                    raise NotReadyError(
                        f"opencode exited with code {process.returncode} before becoming ready"
                    )
                if max_attempts is not None and attempt >= max_attempts:
                    break
                if deadline is not None and time.monotonic() + interval > deadline:
                    break
                await asyncio.sleep(interval)

        if deadline is not None and (max_attempts is None or attempt < max_attempts):
            raise NotReadyError(f"OpenCode not ready after {timeout}s")
        raise NotReadyError(f"OpenCode not ready after {attempt} attempts")

    async def cleanup(self) -> None:
        """Remove the staged config directory. Safe to call any number of times."""
        async with self._lock:
            if self._staged_dir is None:
                return
            path = self._staged_dir
            logger.info("Cleaning up config directory", path=str(path))
            try:
                await asyncio.to_thread(shutil.rmtree, path)
            except FileNotFoundError:
                pass
            except OSError as exc:
                raise OpencodeError(f"failed to remove config directory: {exc}") from exc
            self._staged_dir = None
            logger.info("Config directory removed")
