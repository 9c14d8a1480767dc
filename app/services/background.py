"""Detached (fire-and-forget) tasks.

Used for best-effort side effects of a request, e.g. the Telegram fan-out
after a ticket was created. The caller gets a ``DetachedTask`` handle but
never waits for it; failures are logged and kept on the handle.
"""
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from flask import current_app


@dataclass
class DetachedTask:
    """Handle for a detached unit of work."""
    name: str
    future: Optional[Future] = field(default=None, repr=False)
    result: Any = None
    error: Optional[BaseException] = None
    finished: bool = False

    @property
    def failed(self) -> bool:
        return self.error is not None

    def wait(self, timeout: float = None) -> 'DetachedTask':
        """Block until the task finished. Only meant for tests and CLI use."""
        if self.future is not None:
            self.future.result(timeout=timeout)
        return self


_executor: Optional[ThreadPoolExecutor] = None


def _get_executor(max_workers: int) -> ThreadPoolExecutor:
    global _executor
    if _executor is None:
        _executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix='detached'
        )
    return _executor


def _call(app, task: DetachedTask, fn: Callable, args, kwargs) -> None:
    """Run fn and record the outcome on the task."""
    try:
        task.result = fn(*args, **kwargs)
    except Exception as e:
        task.error = e
        app.logger.exception(f'Detached task {task.name} failed: {e}')
    finally:
        task.finished = True


def _execute(app, task: DetachedTask, fn: Callable, args, kwargs) -> None:
    with app.app_context():
        _call(app, task, fn, args, kwargs)


def run_detached(fn: Callable, *args, name: str = None, **kwargs) -> DetachedTask:
    """Schedule fn to run outside the current request.

    Args:
        fn: Callable to run. Pass ids rather than ORM objects, the work
            runs in its own app context and database session.
        name: Label used in log messages (defaults to the function name)

    Returns:
        DetachedTask handle. Exceptions raised by fn never reach the caller.
    """
    app = current_app._get_current_object()
    task = DetachedTask(name=name or getattr(fn, '__name__', 'task'))

    if app.config.get('DETACHED_TASKS_INLINE'):
        # Same thread, same app context and session
        _call(app, task, fn, args, kwargs)
        return task

    executor = _get_executor(app.config.get('DETACHED_TASK_WORKERS', 4))
    task.future = executor.submit(_execute, app, task, fn, args, kwargs)
    return task
