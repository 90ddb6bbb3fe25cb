import threading
import time
from typing import Any, Callable, Optional


class ScheduledTask:
    """Handle for one delayed callback. Cancelling only flips a flag; the
    worker checks it after its sleep and skips the callback."""

    def __init__(self, delay: float, callback: Callable[..., Any], *args, label: str = ''):
        self.delay = delay
        self.callback = callback
        self.args = args
        self.label = label or getattr(callback, '__name__', 'task')
        self.due_at = time.time() + delay
        self.cancelled = False
        self.fired = False

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.fired)

    def cancel(self) -> None:
        self.cancelled = True


class RoundTimer:
    """Runs delayed round transitions on Socket.IO background tasks.

    - No-ops in TESTING mode unless ENABLE_SCHEDULER_IN_TESTS is set; the
      task handle is still returned so tests can ``run`` it by hand
    - Holds at most one pending task: scheduling cancels the previous one
    - Callbacks run inside an app context
    """

    def __init__(self, app, socketio):
        self.app = app
        self.socketio = socketio
        self._lock = threading.Lock()
        self._pending: Optional[ScheduledTask] = None

    @property
    def pending(self) -> Optional[ScheduledTask]:
        with self._lock:
            task = self._pending
        return task if task is not None and task.pending else None

    def schedule(self, delay: float, callback: Callable[..., Any], *args, label: str = '') -> ScheduledTask:
        task = ScheduledTask(delay, callback, *args, label=label)
        with self._lock:
            previous, self._pending = self._pending, task
        if previous is not None and previous.pending:
            previous.cancel()
            self.app.logger.info(f"[timer-cancel] task={previous.label} replaced_by={task.label}")
        self.app.logger.info(f"[timer-set] task={task.label} delay={delay}s due_at={task.due_at:.3f}")

        if self.app.config.get('TESTING') and not self.app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
            return task
        self.socketio.start_background_task(self._worker, task)
        return task

    def cancel(self) -> None:
        with self._lock:
            task, self._pending = self._pending, None
        if task is not None and task.pending:
            task.cancel()
            self.app.logger.info(f"[timer-cancel] task={task.label}")

    def _worker(self, task: ScheduledTask) -> None:
        self.socketio.sleep(task.delay)
        self.run(task)

    def run(self, task: ScheduledTask) -> bool:
        """Fire ``task`` now unless it was cancelled. Returns whether it ran."""
        if not task.pending:
            self.app.logger.info(f"[timer-skip] task={task.label} cancelled={task.cancelled}")
            return False
        task.fired = True
        with self._lock:
            if self._pending is task:
                self._pending = None
        self.app.logger.info(f"[timer-fire] task={task.label}")
        with self.app.app_context():
            task.callback(*task.args)
        return True
