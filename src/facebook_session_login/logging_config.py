import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


class _ZonedFormatter(logging.Formatter):
    """
    Render `%(asctime)s` in a fixed time zone instead of the host's local time.
    """

    def __init__(self, fmt: str, tz: Optional[str]) -> None:
        super().__init__(fmt)
        self._tz = None
        if tz:
            try:
                self._tz = ZoneInfo(tz)
            except ZoneInfoNotFoundError:
                self._tz = None

    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:
        dt = datetime.fromtimestamp(record.created, tz=self._tz)
        if datefmt:
            return dt.strftime(datefmt)
        return dt.strftime("%Y-%m-%d %H:%M:%S") + f",{int(record.msecs):03d}"


def configure_logging(level: str = "INFO", file_path: Optional[str] = None, tz: Optional[str] = None) -> None:
    numeric_level = getattr(logging, (level or "INFO").upper(), logging.INFO)
    formatter = _ZonedFormatter("%(asctime)s %(levelname)s %(name)s - %(message)s", tz)

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if file_path:
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=numeric_level,
        handlers=handlers,
        force=True,  # the CLI reconfigures once the config file is loaded
    )

    for noisy in ("playwright", "asyncio"):
        logging.getLogger(noisy).setLevel(os.getenv("NOISY_LOG_LEVEL", "WARNING"))
