"""Run a callable in a worker process with a wall-clock deadline."""

from __future__ import annotations

import multiprocessing
import traceback
from typing import Any, Callable, Optional, Tuple

from ..errors import IndexerError, ScanTimeout
from ..logging import get_logger


def _invoke(sender: Any, func: Callable[..., Any], args: Tuple[Any, ...]) -> None:
    try:
        result = func(*args)
    except Exception as exc:
        sender.send(("error", f"{type(exc).__name__}: {exc}\n{traceback.format_exc()}"))
    else:
        sender.send(("ok", result))
    finally:
        sender.close()


def default_start_method() -> str:
    # Runs are threaded; forking a threaded parent can deadlock the child.
    methods = multiprocessing.get_all_start_methods()
    return "forkserver" if "forkserver" in methods else "spawn"


class DeadlineRunner:
    """Call ``func(*args)`` in a separate process, killing it at the deadline.

    A timeout of ``None`` or ``0`` runs the callable inline. The callable and
    its arguments must be picklable. Workers start with
    :func:`default_start_method` unless ``context`` names another method.
    """

    def __init__(self, timeout: Optional[float], *, context: Optional[str] = None) -> None:
        self.timeout = timeout
        self._context = multiprocessing.get_context(context or default_start_method())
        self.logger = get_logger("discovery")

    @property
    def start_method(self) -> str:
        return self._context.get_start_method()

    def __call__(self, func: Callable[..., Any], *args: Any) -> Any:
        if not self.timeout:
            return func(*args)

        receiver, sender = self._context.Pipe(duplex=False)
        process = self._context.Process(target=_invoke, args=(sender, func, args), daemon=True)
        process.start()
        sender.close()
        try:
            if not receiver.poll(self.timeout):
                raise ScanTimeout(f"{getattr(func, '__name__', func)} exceeded {self.timeout}s")
            status, payload = receiver.recv()
        except EOFError as exc:
            raise IndexerError("scan worker exited without a result") from exc
        finally:
            if process.is_alive():
                process.terminate()
            process.join()
            receiver.close()

        if status == "error":
            raise IndexerError(payload)
        return payload


__all__ = ["DeadlineRunner", "default_start_method"]
