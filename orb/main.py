from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from orb.api import actions_router, conversation_router, health_router
from orb.core.config import get_settings
from orb.core.logger import bind_trace_id, get_logger, new_trace_id

config = get_settings()

# server-wide JSON log
logger = get_logger("server")


@asynccontextmanager
async def _lifespan(app: FastAPI):
    logger.info("server started")
    yield
    logger.info("server stopped")


app = FastAPI(title="orb", lifespan=_lifespan)


@app.middleware("http")
async def _trace_middleware(request, call_next):
    tid = request.headers.get("X-Trace-Id")
    if tid:
        bind_trace_id(tid)
    else:
        tid = new_trace_id()
    response = await call_next(request)
    response.headers["X-Trace-Id"] = tid
    return response


# credentials are only allowed with an explicit origin list
_allow_credentials = config.cors_origins != ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials=_allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(conversation_router)
app.include_router(actions_router)
