from __future__ import annotations

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..core import DATA_DIR

LOG_LEVEL = os.getenv("TIME_TO_LEAVE_LOG_LEVEL", "INFO").upper()
LOG_DIR = Path(os.getenv("TIME_TO_LEAVE_LOG_DIR", DATA_DIR / "logs"))


def configure_logging(*, level: Optional[str] = None, log_dir: Optional[Path] = None) -> None:
    """Configure application-wide logging with a dated file next to the console stream."""

    resolved_level = getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO)
    directory = log_dir or LOG_DIR
    directory.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d")
    log_path = directory / f"time-to-leave-{timestamp}.log"

    handlers: list[logging.Handler] = [
        logging.StreamHandler(),
        logging.FileHandler(log_path, encoding="utf-8"),
    ]

    logging.basicConfig(
        level=resolved_level,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        handlers=handlers,
    )
    # Keep request chatter out of the leave-time logs.
    logging.getLogger("httpx").setLevel(logging.WARNING)
