from __future__ import annotations

import logging
from pathlib import Path

from dotenv import load_dotenv

from app.api.app_factory import create_app
from app.core.config import AppConfig
from app.core.logging import setup_logging

load_dotenv()
APP_CONFIG = AppConfig.from_env()
setup_logging(APP_CONFIG.logging.level)
LOGGER = logging.getLogger(__name__)

APP_ROOT = Path(__file__).resolve().parent

app = create_app(APP_CONFIG, app_root=APP_ROOT)
