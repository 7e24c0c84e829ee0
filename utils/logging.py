import asyncio
import logging
import os
import signal
import sys
import traceback
from datetime import datetime, timezone
from pathlib import Path

log = logging.getLogger(__name__)

def configure_logging(level: str = "INFO"):
    root = logging.getLogger()
    root.setLevel(level)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(
        "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"
    ))
    root.addHandler(handler)


def write_crash_log(log_dir: str | Path, text: str) -> Path:
    """Write a crash report and return its path."""
    d = Path(log_dir)
    d.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
    path = d / f"crash-{stamp}.log"
    path.write_text(text, encoding="utf-8")
    return path


def install_crash_handlers(log_dir: str | Path, loop: asyncio.AbstractEventLoop | None = None) -> None:
    """
    Uncaught exceptions (sync and asyncio) get a crash log, then the process
    terminates. Restarting is left to the process supervisor.
    """
    previous_hook = sys.excepthook

    def _excepthook(exc_type, exc, tb):
        body = "".join(traceback.format_exception(exc_type, exc, tb))
        try:
            path = write_crash_log(log_dir, body)
            log.critical("[crash] uncaught exception, report at %s", path)
        except OSError:
            log.exception("[crash] could not write crash log")
        previous_hook(exc_type, exc, tb)

    sys.excepthook = _excepthook

    if loop is None:
        return

    def _loop_handler(lp: asyncio.AbstractEventLoop, context: dict) -> None:
        exc = context.get("exception")
        lines = [f"message: {context.get('message', '')}"]
        if exc is not None:
            lines.append("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
        try:
            path = write_crash_log(log_dir, "\n".join(lines))
            log.critical("[crash] unhandled asyncio error, report at %s; terminating", path)
        except OSError:
            log.exception("[crash] could not write crash log")
        lp.default_exception_handler(context)
        os.kill(os.getpid(), signal.SIGTERM)

    loop.set_exception_handler(_loop_handler)
