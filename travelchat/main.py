from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from travelchat.config import get_settings
from travelchat.dependencies import get_chat_gateway
from travelchat.handlers import chat_handler, upload_handler
from travelchat.services.audit_log import generate_request_id

settings = get_settings()
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    Path(settings.upload_path).mkdir(parents=True, exist_ok=True)
    yield
    # Close the gateway only if a request built one.
    if get_chat_gateway.cache_info().currsize:
        gateway = get_chat_gateway()
        if gateway is not None:
            await gateway.aclose()


app = FastAPI(title="Travel Chat API", lifespan=lifespan)


@app.middleware("http")
async def security_headers(request: Request, call_next):
    """Tag the request with an id for audit events and harden every response."""
    request.state.request_id = generate_request_id()
    response = await call_next(request)
    for header, value in SECURITY_HEADERS.items():
        response.headers[header] = value
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(upload_handler.router)
app.include_router(chat_handler.router)
app.mount("/uploads", StaticFiles(directory=settings.upload_path, check_dir=False), name="uploads")


@app.get("/healthz")
async def healthz():
    return {"status": "ok"}
