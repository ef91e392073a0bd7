"""
codefixer/logging_config.py
-----------------------------------------------------------------------------
Logging setup for the CodeFixer API.

Modules log through ``logging.getLogger(__name__)``; this module only decides
where those records go.  ``configure_logging`` attaches a single stream
handler to the ``codefixer`` package logger (idempotent, so repeated app
construction in tests does not duplicate output).

``install_excepthook`` routes uncaught exceptions through the same logger at
CRITICAL before the interpreter exits.  It covers the main thread
(``sys.excepthook``) and other threads (``threading.excepthook``); a dying
worker thread interrupts the main thread so the process shuts down too.  The
process is not kept alive after such an event; a process manager (systemd,
supervisord, a container runtime) is expected to restart it.
"""

from __future__ import annotations

import _thread
import logging
import sys
import threading
from types import TracebackType

_PACKAGE_LOGGER = "codefixer"
_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
_HANDLER_NAME = "codefixer-stream"


def configure_logging(level: str = "INFO") -> logging.Logger:
    """
    Attach a timestamped stream handler to the package logger.

    Parameters
    ----------
    level : Logging level name, e.g. ``"INFO"`` or ``"DEBUG"``.  Unknown
            names fall back to INFO.

    Returns
    -------
    logging.Logger : The configured ``codefixer`` logger.
    """
    logger = logging.getLogger(_PACKAGE_LOGGER)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not any(h.get_name() == _HANDLER_NAME for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(handler)

    return logger


def _log_uncaught(
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_tb: TracebackType | None,
) -> None:
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_tb)
        return
    logging.getLogger(_PACKAGE_LOGGER).critical(
        "Uncaught exception, process state is no longer trusted; exiting.",
        exc_info=(exc_type, exc_value, exc_tb),
    )


def _log_uncaught_in_thread(args: threading.ExceptHookArgs) -> None:
    if args.exc_type is SystemExit:
        return
    name = args.thread.name if args.thread is not None else "unknown"
    logging.getLogger(_PACKAGE_LOGGER).critical(
        "Uncaught exception in thread %s, process state is no longer trusted; exiting.",
        name,
        exc_info=(args.exc_type, args.exc_value, args.exc_traceback),
    )
    # Threads cannot stop the interpreter themselves; wake the main thread.
    _thread.interrupt_main()


def install_excepthook() -> None:
    """Log uncaught exceptions, on any thread, at CRITICAL before exit."""
    sys.excepthook = _log_uncaught
    threading.excepthook = _log_uncaught_in_thread
