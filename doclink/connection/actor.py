import queue
import threading

from doclink.connection.state_machine import (
    Command,
    ConnectionStateMachine,
    ConnectionStatus,
)
from doclink.connection.transport import InboundMessage
from doclink.logging.logger import Log

_STOP = object()


class UserConnection:
    """Single consumer of one user's event stream.

    Transport callbacks and timers only enqueue commands. The actor thread
    applies them in order while holding the user's lock; direct calls
    (send, download, status) take the same lock, so no two transitions or
    sends for a user ever interleave.
    """

    def __init__(self, machine: ConnectionStateMachine) -> None:
        self.machine = machine
        self._events: queue.Queue[object] = queue.Queue()
        self._lock = threading.RLock()
        self._thread = threading.Thread(
            target=self._run,
            name=f"conn-{machine.user_id}",
            daemon=True,
        )
        self._stopped = threading.Event()

    @property
    def user_id(self) -> str:
        return self.machine.user_id

    def start(self) -> None:
        self._thread.start()

    def submit(self, command: Command) -> None:
        if self._stopped.is_set():
            Log.debug("Dropping command for stopped connection", user_id=self.user_id)
            return
        self._events.put(command)

    def wait_idle(self) -> None:
        """Block until every command submitted so far has been applied."""
        self._events.join()

    def stop(self, timeout: float | None = 5.0) -> None:
        if self._stopped.is_set():
            return
        self._stopped.set()
        self._events.put(_STOP)
        if self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout)

    def send_text(self, peer_ref: str, text: str) -> None:
        with self._lock:
            self.machine.send_text(peer_ref, text)

    def download(self, message: InboundMessage) -> bytes:
        with self._lock:
            return self.machine.download(message)

    def status(self) -> ConnectionStatus:
        with self._lock:
            return self.machine.status()

    def _run(self) -> None:
        while True:
            item = self._events.get()
            try:
                if item is _STOP:
                    return
                with self._lock:
                    self.machine.dispatch(item)  # type: ignore[arg-type]
            except Exception:
                Log.exception(
                    f"Connection transition failed for {type(item).__name__}",
                    user_id=self.user_id,
                )
            finally:
                self._events.task_done()
