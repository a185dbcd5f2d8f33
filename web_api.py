from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv

from filemytax.api.application import create_app
from filemytax.core.config import AppConfig
from filemytax.core.logging import setup_logging

load_dotenv()
APP_CONFIG = AppConfig.from_env()
setup_logging(APP_CONFIG.logging.level)

APP_ROOT = Path(__file__).resolve().parent

app = create_app(APP_CONFIG, app_root=APP_ROOT)


if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run(
        "web_api:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "4000")),
    )
