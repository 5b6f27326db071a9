from __future__ import annotations

from configs.appconfig import AppConfig
from configs.logging_config import configure_logging
