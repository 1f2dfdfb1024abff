from __future__ import annotations

import logging
from typing import Optional

from .settings import settings


def setup_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    # every policy check is an httpx request; the client logs its own failures
    logging.getLogger("httpx").setLevel(logging.WARNING)
