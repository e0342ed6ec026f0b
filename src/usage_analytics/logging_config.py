import sys
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from loguru import logger


@runtime_checkable
class LogSink(Protocol):
    def attach(self, level: str) -> int: ...
    def describe(self, level: str) -> str: ...


class ConsoleLogSink:
    def __init__(self, colorize: bool | None = None):
        self._colorize = colorize

    def attach(self, level: str) -> int:
        return logger.add(
            sys.stderr,
            level=level,
            colorize=self._colorize,
            format="<green>{time:HH:mm:ss.SSS}</green> <level>{level:<7}</level> <cyan>{name}</cyan> - <level>{message}</level>",
        )

    def describe(self, level: str) -> str:
        return f"console (stderr, {level})"


class FileLogSink:
    """Rotating log file; ``serialize`` writes one JSON record per line."""

    def __init__(
        self,
        path: str = "usage-analytics.log",
        rotation: str = "10 MB",
        retention: int = 3,
        serialize: bool = False,
    ):
        self._path = path
        self._rotation = rotation
        self._retention = retention
        self._serialize = serialize

    def attach(self, level: str) -> int:
        Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        return logger.add(
            self._path,
            level=level,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<7} | {name}:{function}:{line} - {message}",
            rotation=self._rotation,
            retention=self._retention,
            serialize=self._serialize,
            enqueue=False,
        )

    def describe(self, level: str) -> str:
        kind = "json" if self._serialize else "text"
        return f"file ({self._path}, {kind}, {level})"


_SINK_TYPES: dict[str, type] = {
    "console": ConsoleLogSink,
    "file": FileLogSink,
}

_DEFAULT_SINKS = [
    {"type": "file", "path": "usage-analytics.log"},
]


def setup_logging(
    level: str = "INFO",
    consumers: list[dict[str, Any]] | None = None,
) -> list[str]:
    """Replace loguru's handlers with the configured sinks.

    ``consumers`` is the ``LogConsumers`` list from config.json; each entry has a
    ``type`` (console or file), an optional ``level`` and sink-specific options.
    The console is left out by default so log lines do not interleave with the
    interactive prompt. Returns a description of each attached sink.
    """
    logger.remove()

    descriptions: list[str] = []
    for config in consumers if consumers is not None else _DEFAULT_SINKS:
        sink_type = str(config.get("type", "")).lower()
        cls = _SINK_TYPES.get(sink_type)
        if cls is None:
            logger.warning(f"Unknown log consumer type: {sink_type!r}")
            continue

        options = {k: v for k, v in config.items() if k not in ("type", "level")}
        sink_level = str(config.get("level", level)).upper()
        sink = cls(**options)
        sink.attach(sink_level)
        descriptions.append(sink.describe(sink_level))

    return descriptions
