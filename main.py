import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import APP_NAME, APP_VERSION, LOG_LEVEL
from routes import (
    register_order_mapping_routes,
    register_orders_routes,
    register_sync_routes,
    register_webhook_routes,
)
from services.db import ensure_app_kv_table

# --- Logging configuration ---
LOG_DIR = Path(__file__).parent / "logs"
LOG_DIR.mkdir(exist_ok=True)

LOG_FILE_PATH = LOG_DIR / "logistics_backend.log"

root_logger = logging.getLogger()
logger = logging.getLogger("logistics")
if not root_logger.handlers:
    root_logger.setLevel(LOG_LEVEL)

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    file_handler = RotatingFileHandler(
        LOG_FILE_PATH,
        maxBytes=5_000_000,  # 5 MB
        backupCount=3,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)

    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)

logging.getLogger("uvicorn").propagate = True
logging.getLogger("uvicorn.error").propagate = True
logging.getLogger("uvicorn.access").propagate = True
# --- End logging configuration ---

app = FastAPI(title=APP_NAME, version=APP_VERSION)

try:
    ensure_app_kv_table()
except Exception as exc:
    logger.warning("[Startup] Failed to ensure app_kv_store table: %s", exc)

register_orders_routes(app)
register_order_mapping_routes(app)
register_sync_routes(app)
register_webhook_routes(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/api/ping")
def ping():
    return {"ok": True, "app": APP_NAME, "version": APP_VERSION}


if __name__ == "__main__":
    uvicorn.run("main:app", host="127.0.0.1", port=8001, reload=True)
