"""
Central logging setup.

- Uses stdlib logging, configured once from the `logging:` config section
"""

from __future__ import annotations

import logging.config
from typing import Any, Dict, Optional

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def setup_logging(cfg: Optional[Dict[str, Any]] = None) -> None:
    cfg = cfg or {}
    log_cfg = cfg.get("logging", {}) if isinstance(cfg, dict) else {}
    level = str(log_cfg.get("level", "INFO")).upper()
    fmt = str(log_cfg.get("format", DEFAULT_FORMAT))

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"default": {"format": fmt}},
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                }
            },
            "root": {"handlers": ["console"], "level": level},
            # Third-party HTTP chatter stays quiet unless asked for
            "loggers": {
                "httpx": {"level": "WARNING"},
                "huggingface_hub": {"level": "WARNING"},
            },
        }
    )
