import logging
import re

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

custom_theme = Theme(
    {
        "info": "dim cyan",
        "warning": "magenta",
        "error": "bold red",
        "node": "bold blue",
        "server": "bold green",
    }
)

console = Console(theme=custom_theme)


class CompactFilter(logging.Filter):
    """Shortens correlation ids and long floats so log lines stay dense."""

    # Correlation ids from FlowRuntime.generate_id(): 16 lowercase hex chars
    MSGID_PATTERN = re.compile(r"\b[0-9a-f]{16}\b")
    FLOAT_PATTERN = re.compile(r"(\d+\.\d{4,})")

    def filter(self, record):
        if not isinstance(record.msg, str):
            return True

        msg = record.msg.replace("httpin.nodes.", "nodes.").replace("httpin.http.", "http.")

        def shorten_msgid(match):
            return f"{match.group(0)[:6]}.."

        def shorten_float(match):
            return f"{float(match.group(0)):.3f}"

        # Metric lines are machine readable, leave them alone
        if record.name != "httpin.metrics":
            msg = self.MSGID_PATTERN.sub(shorten_msgid, msg)
            msg = self.FLOAT_PATTERN.sub(shorten_float, msg)

        record.msg = msg
        return True


def setup_global_logger(log_level: str = "INFO"):
    """
    Configures the package logger with a Rich handler.
    """
    logger = logging.getLogger("httpin")

    level = getattr(logging, log_level.upper(), logging.INFO)
    logger.setLevel(level)

    # Avoid duplicate handlers
    if not logger.handlers:
        rich_handler = RichHandler(
            console=console,
            rich_tracebacks=True,
            markup=False,
            show_path=False,
            show_time=True,
            omit_repeated_times=True,
            keywords=["node", "server", "listening", "WARNING", "ERROR"],
        )
        rich_handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
        rich_handler.addFilter(CompactFilter())
        logger.addHandler(rich_handler)

    # uvicorn logs through its own loggers; route them through the same handler
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uv_logger = logging.getLogger(name)
        if not any(isinstance(h, RichHandler) for h in uv_logger.handlers):
            uv_logger.handlers = list(logger.handlers)
            uv_logger.propagate = False

    return logger


logger = logging.getLogger("httpin")
