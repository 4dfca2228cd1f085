"""Background delivery agent.

Holds reminder timers independently of any foreground session and raises
an OS notification when one elapses. The foreground talks to it only
through one-way commands (SCHEDULE_REMINDER / CANCEL_REMINDER); nothing is
ever sent back.

The agent never touches the schedule store. If it dies before a timer
elapses, the persisted entry is still recovered by the foreground
reconciler on the next visit.

Hosting:
- DeliveryAgent: the timer table + message dispatch (one event loop).
- AgentServer: runs a DeliveryAgent in its own process, receiving commands
  over a multiprocessing.connection Listener (``taskflow agent``).
- AgentChannel: the foreground side. SocketAgentChannel posts to a running
  AgentServer, QueueAgentChannel to an in-process queue, NullAgentChannel
  drops everything.
"""

from __future__ import annotations

import asyncio
import json
import subprocess
import sys
import threading
from abc import ABC, abstractmethod
from multiprocessing.connection import Client, Listener
from typing import TYPE_CHECKING, Any, Callable

from loguru import logger

from taskflow.reminders.schema import (
    CancelReminderMessage,
    ScheduleEntry,
    ScheduleReminderMessage,
    parse_agent_message,
)
from taskflow.reminders.utils import now_ms

if TYPE_CHECKING:
    from taskflow.notify.desktop import Notifier


# ============================================================================
# DeliveryAgent
# ============================================================================


class DeliveryAgent:
    """Timer table keyed by schedule id; one pending delivery per id."""

    def __init__(self, notifier: "Notifier", clock: Callable[[], int] = now_ms):
        self.notifier = notifier
        self.clock = clock
        self._timers: dict[str, asyncio.Task] = {}
        self.delivered: list[str] = []  # ids delivered this process lifetime

    @property
    def pending_ids(self) -> set[str]:
        return {sid for sid, t in self._timers.items() if not t.done()}

    def handle(self, data: Any) -> None:
        """Dispatch one wire message. Malformed messages are logged and dropped."""
        try:
            msg = parse_agent_message(data)
        except ValueError as e:
            logger.warning(f"[Agent] Ignoring malformed message: {e}")
            return

        if isinstance(msg, ScheduleReminderMessage):
            p = msg.payload
            self.schedule(p.id, p.fire_at, p.title, p.body)
        else:
            self.cancel(msg.id)

    def schedule(self, schedule_id: str, fire_at: int, title: str, body: str) -> None:
        """Arm (or re-arm) delivery at fire_at. Past fire_at delivers now."""
        self._cancel_timer(schedule_id)

        delay_ms = fire_at - self.clock()
        if delay_ms <= 0:
            self._deliver(schedule_id, title, body)
            return

        self._timers[schedule_id] = asyncio.ensure_future(
            self._timer_fire(schedule_id, delay_ms / 1000, title, body)
        )
        logger.debug(f"[Agent] Armed {schedule_id}: {delay_ms / 1000:.0f}s")

    def cancel(self, schedule_id: str) -> None:
        """Cancel a pending delivery. Unknown ids are a no-op."""
        if self._cancel_timer(schedule_id):
            logger.debug(f"[Agent] Cancelled {schedule_id}")

    def stop(self) -> None:
        for sid in list(self._timers):
            self._cancel_timer(sid)

    def _cancel_timer(self, schedule_id: str) -> bool:
        task = self._timers.pop(schedule_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def _timer_fire(self, schedule_id: str, delay: float, title: str, body: str) -> None:
        try:
            await asyncio.sleep(delay)
            if self._timers.get(schedule_id) is asyncio.current_task():
                del self._timers[schedule_id]
            self._deliver(schedule_id, title, body)
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception(f"[Agent] Timer fire error for {schedule_id}")

    def _deliver(self, schedule_id: str, title: str, body: str) -> None:
        try:
            self.notifier.show(title, body)
        except Exception as e:
            logger.warning(f"[Agent] Notification failed for {schedule_id}: {e}")
        self.delivered.append(schedule_id)
        logger.info(f"[Agent] Delivered {schedule_id}")

    async def serve(self, queue: asyncio.Queue) -> None:
        """Consume messages from an asyncio queue until a None sentinel."""
        while True:
            msg = await queue.get()
            if msg is None:
                break
            self.handle(msg)
        self.stop()


# ============================================================================
# AgentServer (separate process)
# ============================================================================


class AgentServer:
    """Run a DeliveryAgent behind a multiprocessing.connection Listener.

    Connections are read on daemon threads; each received message is
    handed to the agent on the event loop thread. Frames are UTF-8 JSON
    read with recv_bytes and are never unpickled.
    """

    def __init__(self, agent: DeliveryAgent, address: tuple[str, int], authkey: bytes):
        self.agent = agent
        self.address = address
        self.authkey = authkey
        self.ready = asyncio.Event()
        self._stopped = asyncio.Event()
        self._listener: Listener | None = None
        self._closed = False

    async def serve(self) -> None:
        loop = asyncio.get_running_loop()
        self._listener = Listener(self.address, authkey=self.authkey)
        self.address = self._listener.address
        threading.Thread(
            target=self._accept_loop, args=(loop,), name="agent-accept", daemon=True
        ).start()
        logger.info(f"[Agent] Listening on {self.address[0]}:{self.address[1]}")
        self.ready.set()
        try:
            await self._stopped.wait()
        finally:
            self._close_listener()
            self.agent.stop()

    def stop(self) -> None:
        self._stopped.set()

    def _close_listener(self) -> None:
        self._closed = True
        if self._listener is not None:
            try:
                self._listener.close()
            except OSError:
                pass

    def _accept_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        while not self._closed:
            try:
                conn = self._listener.accept()
            except Exception as e:
                if self._closed:
                    break
                logger.debug(f"[Agent] Accept failed: {e}")
                continue
            threading.Thread(
                target=self._read_loop, args=(conn, loop), name="agent-conn", daemon=True
            ).start()

    def _read_loop(self, conn, loop: asyncio.AbstractEventLoop) -> None:
        with conn:
            while not self._closed:
                try:
                    frame = conn.recv_bytes()
                except (EOFError, OSError):
                    break
                try:
                    msg = json.loads(frame)
                except ValueError as e:
                    logger.warning(f"[Agent] Bad frame: {e}")
                    continue
                try:
                    loop.call_soon_threadsafe(self.agent.handle, msg)
                except RuntimeError:
                    break  # loop closed


def run_agent_server(address: tuple[str, int], authkey: bytes, notifier: "Notifier") -> None:
    """Process entry point: serve until interrupted."""
    async def _main() -> None:
        server = AgentServer(DeliveryAgent(notifier), address, authkey)
        await server.serve()

    try:
        asyncio.run(_main())
    except KeyboardInterrupt:
        logger.info("[Agent] Stopped")


def spawn_agent_process(host: str, port: int) -> subprocess.Popen | None:
    """Start ``taskflow agent`` detached from the current session."""
    cmd = [sys.executable, "-m", "taskflow", "agent", "--host", host, "--port", str(port)]
    try:
        return subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
    except OSError as e:
        logger.warning(f"[Agent] Could not spawn agent process: {e}")
        return None


# ============================================================================
# Foreground-side channels
# ============================================================================


class AgentChannel(ABC):
    """One-way command channel to the delivery agent. Never raises."""

    @abstractmethod
    def post_message(self, message: dict) -> None: ...

    def schedule(self, entry: ScheduleEntry) -> None:
        self.post_message(ScheduleReminderMessage.for_entry(entry).to_json_dict())

    def cancel(self, schedule_id: str) -> None:
        self.post_message(CancelReminderMessage(id=schedule_id).to_json_dict())

    def close(self) -> None:
        """Release the channel. The agent itself keeps running."""


class NullAgentChannel(AgentChannel):
    """No agent (disabled in config)."""

    def post_message(self, message: dict) -> None:
        pass


class QueueAgentChannel(AgentChannel):
    """Post to any queue with put_nowait (asyncio.Queue, multiprocessing.Queue)."""

    def __init__(self, queue: Any):
        self.queue = queue

    def post_message(self, message: dict) -> None:
        try:
            self.queue.put_nowait(message)
        except Exception as e:
            logger.debug(f"[Agent] Queue post dropped: {e}")


class SocketAgentChannel(AgentChannel):
    """Post to an AgentServer. Connects lazily, reconnects on next post after a failure."""

    def __init__(self, address: tuple[str, int], authkey: bytes):
        self.address = address
        self.authkey = authkey
        self._conn = None

    def is_reachable(self) -> bool:
        return self._connect() is not None

    def _connect(self):
        if self._conn is None:
            try:
                self._conn = Client(self.address, authkey=self.authkey)
            except Exception as e:
                logger.debug(f"[Agent] Unreachable at {self.address}: {e}")
                self._conn = None
        return self._conn

    def post_message(self, message: dict) -> None:
        conn = self._connect()
        if conn is None:
            return
        try:
            conn.send_bytes(json.dumps(message).encode("utf-8"))
        except Exception as e:
            logger.debug(f"[Agent] Send failed, dropping connection: {e}")
            self.close()

    def close(self) -> None:
        if self._conn is not None:
            try:
                self._conn.close()
            except OSError:
                pass
            self._conn = None
