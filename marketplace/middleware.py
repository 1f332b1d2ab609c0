from fastapi import FastAPI
from fastapi.requests import Request
from fastapi.middleware.cors import CORSMiddleware
import time
import logging

from marketplace.config import Config

logger = logging.getLogger(__name__)

# one line per request comes from custom_logging below
logging.getLogger('uvicorn.access').disabled = True


def register_middleware(app: FastAPI):

    @app.middleware("http")
    async def custom_logging(request: Request, call_next):
        start_time = time.time()

        response = await call_next(request)
        processing_time = time.time() - start_time

        client = f"{request.client.host}:{request.client.port}" if request.client else "-"
        message = f"{client} - {request.method} - {request.url.path} - {response.status_code} completed after {processing_time:.4f}s"

        logger.info(message)
        return response

    # Gateway identity headers must survive preflight
    allowed_headers = [
        "Content-Type",
        "Accept",
        "Accept-Language",
        "Origin",
        "X-Requested-With",
        "X-User-Uid",
        "X-User-Role",
    ]

    app.add_middleware(
        CORSMiddleware,
        allow_credentials=True,
        allow_origins=Config.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=allowed_headers,
        max_age=600  # Cache preflight requests for 10 minutes
    )
