from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Union

LOG_FILE_NAME = "satzone.log"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_dir: Optional[Union[str, Path]] = None,
) -> None:
    """Configure the root logger: console always, plus a file under *log_dir*."""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path / LOG_FILE_NAME, encoding="utf-8"))

    if isinstance(level, str):
        level = level.upper()
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
