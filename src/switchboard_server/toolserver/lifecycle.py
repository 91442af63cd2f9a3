"""Lifecycle management of the tool server helper process.

ToolServerLifecycle is the single owner of the helper process. Every state
transition happens under one asyncio.Lock; asynchronous inputs (process exit,
catalog changes) are queued and handled by one event task, so the process
handle is never touched from two places at once.

    stopped -> starting -> running -> stopping -> stopped
    starting | running -> crashed     (unsolicited exit, probe timeout)
    crashed -> starting | stopped
    stopped -> running                (healthy server adopted out-of-band)
"""

import asyncio
import contextlib
import logging
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Sequence

from switchboard_server.errors import (
    GatewayError,
    StartupTimeoutError,
    ToolServerError,
    TransportError,
)
from switchboard_server.tools import CapabilityDescriptor, CapabilityRegistry, CapabilityResult
from switchboard_server.toolserver.client import PROVIDER_NAME, ToolServerClient
from switchboard_server.toolserver.models import ToolDescriptorModel

logger = logging.getLogger(__name__)


class ServerLifecycleState(str, Enum):
    """State of the tool server helper."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    CRASHED = "crashed"


_TRANSITIONS: dict[ServerLifecycleState, set[ServerLifecycleState]] = {
    ServerLifecycleState.STOPPED: {ServerLifecycleState.STARTING, ServerLifecycleState.RUNNING},
    ServerLifecycleState.STARTING: {ServerLifecycleState.RUNNING, ServerLifecycleState.CRASHED},
    ServerLifecycleState.RUNNING: {ServerLifecycleState.STOPPING, ServerLifecycleState.CRASHED},
    ServerLifecycleState.STOPPING: {ServerLifecycleState.STOPPED},
    ServerLifecycleState.CRASHED: {ServerLifecycleState.STARTING, ServerLifecycleState.STOPPED},
}


@dataclass(frozen=True)
class ProcessExited:
    process: Any
    returncode: int | None


@dataclass(frozen=True)
class CatalogChanged:
    version: int


StateListener = Callable[[ServerLifecycleState, ServerLifecycleState], None]
ProcessFactory = Callable[[Sequence[str]], Awaitable[Any]]


async def spawn_process(command: Sequence[str]) -> asyncio.subprocess.Process:
    """Launch the helper with stdout and stderr merged into one pipe."""
    return await asyncio.create_subprocess_exec(
        *command,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
    )


class ToolServerLifecycle:
    """State machine owning the tool server helper process.

    Attributes:
        probe_interval: Seconds between health probes during startup
        max_probe_attempts: Probes before startup is declared failed
        shutdown_grace: Seconds to wait for a graceful exit before killing
        remote_stale: True when the last catalog push failed
    """

    def __init__(
        self,
        registry: CapabilityRegistry,
        *,
        host: str = "127.0.0.1",
        port: int = 3000,
        probe_interval: float = 0.5,
        max_probe_attempts: int = 10,
        shutdown_grace: float = 3.0,
        hosted_providers: Sequence[str] = (),
        client: ToolServerClient | None = None,
        process_factory: ProcessFactory | None = None,
        command: Sequence[str] | None = None,
    ) -> None:
        self.registry = registry
        self.host = host
        self.port = port
        self.probe_interval = probe_interval
        self.max_probe_attempts = max_probe_attempts
        self.shutdown_grace = shutdown_grace
        self.hosted_providers = list(hosted_providers)

        self._owns_client = client is None
        self._client = client or ToolServerClient(self.url)
        self._process_factory = process_factory or spawn_process
        self._command = list(command) if command else None

        self._state = ServerLifecycleState.STOPPED
        self._lock = asyncio.Lock()
        self._events: asyncio.Queue = asyncio.Queue()
        self._event_task: asyncio.Task | None = None
        self._process: Any = None
        self._exited = asyncio.Event()
        self._background: set[asyncio.Task] = set()
        self._listeners: list[StateListener] = []
        self._remote_catalog: list[ToolDescriptorModel] = []
        self.adopted = False
        self.remote_stale = False

        registry.add_listener(self._on_catalog_change)

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def state(self) -> ServerLifecycleState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is ServerLifecycleState.RUNNING

    @property
    def pid(self) -> int | None:
        return getattr(self._process, "pid", None)

    @property
    def remote_catalog(self) -> list[ToolDescriptorModel]:
        return list(self._remote_catalog)

    @property
    def hosted_capabilities(self) -> list[CapabilityDescriptor]:
        """Descriptors of tools the running server executes itself."""
        if not self.is_running:
            return []
        return [d.to_descriptor() for d in self._remote_catalog if d.hosted]

    def hosts(self, name: str) -> bool:
        return any(d.name == name for d in self.hosted_capabilities)

    def add_state_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def command(self) -> list[str]:
        """Command line used to launch the helper."""
        if self._command:
            return list(self._command)
        command = [
            sys.executable,
            "-m",
            "switchboard_server.toolserver",
            "--host",
            self.host,
            "--port",
            str(self.port),
        ]
        for provider in self.hosted_providers:
            command.extend(["--provider", provider])
        return command

    def status(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "url": self.url,
            "pid": self.pid,
            "adopted": self.adopted,
            "remote_stale": self.remote_stale,
            "hosted_tools": [d.name for d in self.hosted_capabilities],
        }

    # --- transitions ---

    async def start(self) -> None:
        """Bring the server to running.

        Raises:
            ToolServerError: If the helper could not be launched
            StartupTimeoutError: If the helper never passed its health probe
        """
        async with self._lock:
            if self._state is ServerLifecycleState.RUNNING:
                return
            self._ensure_event_task()

            if await self._client.health():
                logger.info(f"Tool server already answering at {self.url}, adopting it")
                if self._state is ServerLifecycleState.CRASHED:
                    self._set_state(ServerLifecycleState.STARTING)
                self.adopted = True
                self._set_state(ServerLifecycleState.RUNNING)
            else:
                await self._launch()

        await self.sync_capabilities()

    async def stop(self) -> None:
        """Shut the server down; always ends in stopped."""
        async with self._lock:
            if self._state is ServerLifecycleState.STOPPED:
                return

            if self._state is ServerLifecycleState.CRASHED:
                await self._kill(self._process)
                self._process = None
                self._set_state(ServerLifecycleState.STOPPED)
                return

            self._set_state(ServerLifecycleState.STOPPING)
            process = self._process
            try:
                await self._client.shutdown()
                if process is not None:
                    try:
                        await asyncio.wait_for(process.wait(), self.shutdown_grace)
                    except asyncio.TimeoutError:
                        logger.warning(
                            f"Tool server did not exit within {self.shutdown_grace}s, killing it"
                        )
                        await self._kill(process)
            finally:
                self._process = None
                self.adopted = False
                self._remote_catalog = []
                self._set_state(ServerLifecycleState.STOPPED)
        logger.info("Tool server stopped")

    async def restart(self) -> None:
        await self.stop()
        await self.start()

    async def sync_capabilities(self) -> bool:
        """Push the registry catalog and refresh the remote catalog.

        A failure marks the remote catalog stale; it never changes the state.

        Returns:
            bool: True if the push succeeded
        """
        if not self.is_running:
            self.remote_stale = True
            return False

        descriptors = self.registry.describe_all()
        try:
            count = await self._client.register_tools(descriptors)
            self._remote_catalog = await self._client.list_tools()
        except GatewayError as e:
            logger.warning(f"Failed to sync capabilities with tool server: {e}")
            self.remote_stale = True
            return False

        self.remote_stale = False
        logger.info(f"Pushed {count} capabilities to tool server")
        return True

    async def execute(self, name: str, arguments: dict[str, Any]) -> CapabilityResult:
        """Execute a tool on the running server.

        Raises:
            TransportError: If the server is not running, unreachable, or exits
                while the call is in flight
        """
        if not self.is_running:
            raise TransportError(
                "Tool server is not running", provider=PROVIDER_NAME, capability=name
            )

        if self._process is None:
            return await self._client.execute_tool(name, arguments)

        call = asyncio.ensure_future(self._client.execute_tool(name, arguments))
        exited = asyncio.ensure_future(self._exited.wait())
        try:
            await asyncio.wait({call, exited}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (call, exited):
                if not task.done():
                    task.cancel()

        if call.done() and not call.cancelled():
            return call.result()
        raise TransportError(
            "Tool server exited while the call was in flight",
            provider=PROVIDER_NAME,
            capability=name,
        )

    async def aclose(self) -> None:
        """Force the server down and release every task and connection."""
        self.registry.remove_listener(self._on_catalog_change)
        try:
            await self.stop()
        finally:
            tasks = list(self._background)
            if self._event_task is not None:
                tasks.append(self._event_task)
            for task in tasks:
                task.cancel()
            for task in tasks:
                with contextlib.suppress(asyncio.CancelledError):
                    await task
            self._event_task = None
            if self._owns_client:
                await self._client.aclose()

    # --- internals ---

    def _set_state(self, new: ServerLifecycleState) -> None:
        old = self._state
        if old is new:
            return
        if new not in _TRANSITIONS[old]:
            raise RuntimeError(f"Invalid tool server transition {old.value} -> {new.value}")
        self._state = new
        logger.info(f"Tool server state: {old.value} -> {new.value}")
        for listener in list(self._listeners):
            try:
                listener(old, new)
            except Exception as e:
                logger.error(f"Tool server state listener failed: {e}")

    async def _launch(self) -> None:
        self._set_state(ServerLifecycleState.STARTING)
        command = self.command()
        logger.info(f"Launching tool server: {' '.join(command)}")
        try:
            process = await self._process_factory(command)
        except (OSError, ValueError) as e:
            self._set_state(ServerLifecycleState.CRASHED)
            raise ToolServerError(
                f"Failed to launch tool server: {e}", provider=PROVIDER_NAME
            ) from e

        self._process = process
        self.adopted = False
        self._exited.clear()
        self._spawn(self._watch(process))
        if getattr(process, "stdout", None) is not None:
            self._spawn(self._relay_output(process))

        try:
            for attempt in range(1, self.max_probe_attempts + 1):
                await asyncio.sleep(self.probe_interval)
                if self._exited.is_set():
                    self._process = None
                    self._set_state(ServerLifecycleState.CRASHED)
                    raise ToolServerError(
                        f"Tool server exited during startup with code {process.returncode}",
                        provider=PROVIDER_NAME,
                    )
                if await self._client.health():
                    self._set_state(ServerLifecycleState.RUNNING)
                    logger.info(f"Tool server running at {self.url} (attempt {attempt})")
                    return
                logger.debug(
                    f"Tool server not ready (attempt {attempt}/{self.max_probe_attempts})"
                )
        except asyncio.CancelledError:
            await self._kill(process)
            self._process = None
            self._set_state(ServerLifecycleState.CRASHED)
            raise

        await self._kill(process)
        self._process = None
        self._set_state(ServerLifecycleState.CRASHED)
        raise StartupTimeoutError(
            f"Tool server did not become healthy after {self.max_probe_attempts} probes",
            provider=PROVIDER_NAME,
        )

    async def _kill(self, process: Any) -> None:
        if process is None or process.returncode is not None:
            return
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        await process.wait()

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _watch(self, process: Any) -> None:
        returncode = await process.wait()
        if process is self._process:
            self._exited.set()
        await self._events.put(ProcessExited(process, returncode))

    async def _relay_output(self, process: Any) -> None:
        async for raw in process.stdout:
            line = raw.decode(errors="replace").rstrip()
            if line:
                logger.info(f"[toolserver] {line}")

    def _on_catalog_change(self, registry: CapabilityRegistry) -> None:
        if not self.is_running:
            self.remote_stale = True
            return
        self._ensure_event_task()
        self._events.put_nowait(CatalogChanged(registry.version))

    def _ensure_event_task(self) -> None:
        if self._event_task is None or self._event_task.done():
            self._event_task = asyncio.ensure_future(self._pump_events())

    async def _pump_events(self) -> None:
        while True:
            event = await self._events.get()
            try:
                if isinstance(event, ProcessExited):
                    await self._handle_exit(event)
                elif isinstance(event, CatalogChanged) and self.is_running:
                    await self.sync_capabilities()
            except Exception as e:
                logger.error(f"Tool server event {event} failed: {e}")

    async def _handle_exit(self, event: ProcessExited) -> None:
        async with self._lock:
            if event.process is not self._process:
                return
            self._process = None
            if self._state in (ServerLifecycleState.STARTING, ServerLifecycleState.RUNNING):
                logger.error(f"Tool server exited unexpectedly with code {event.returncode}")
                self._remote_catalog = []
                self._set_state(ServerLifecycleState.CRASHED)
