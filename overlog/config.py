"""
Runtime settings shared by the CLI and the HTTP service.

All values come from OVERLOG_* environment variables.
"""

import logging
import os
from pathlib import Path
from typing import Optional


LOG_LEVEL = os.getenv("OVERLOG_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

DATA_FOLDER_ENV = "OVERLOG_DATA_FOLDER"
DEFAULT_DATA_FOLDER = Path("./data/telemetry")


def data_folder() -> Path:
    """Folder the service indexes at startup."""
    return Path(os.getenv(DATA_FOLDER_ENV, str(DEFAULT_DATA_FOLDER)))


def configure_logging(level: Optional[str] = None) -> None:
    """Set up root logging once per process; later calls are no-ops."""
    level = (level or LOG_LEVEL).upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)
