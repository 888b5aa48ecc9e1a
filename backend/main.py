"""
Image Proxy Server

Usage:
    cd backend
    python main.py

Environment:
    S3_BUCKET, IMAGE_STORE_BACKEND, IMAGE_STORE_DIR, PORT, LOG_LEVEL
    (see image_proxy/config.py for the full list)
"""

import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from image_proxy.routes_fastapi import get_orchestrator, router, shutdown_image_proxy


def init_logging() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_logging()
    # Fail fast on bad configuration
    get_orchestrator()
    yield
    await shutdown_image_proxy()


app = FastAPI(title="Image Proxy", lifespan=lifespan)
app.include_router(router)


if __name__ == "__main__":
    port = int(os.getenv("PORT", "3000"))
    uvicorn.run(app, host="0.0.0.0", port=port)
