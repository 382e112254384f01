from contextlib import asynccontextmanager
from fastapi import FastAPI
from app.core.config import settings
from app.core.logging import configure_logging
from app.api.executions import router as api_router
from app.dependencies import get_tool_registry

@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    # Boot the registry before the first request; it is frozen from here on
    get_tool_registry()
    yield

app = FastAPI(
    title=settings.service_name,
    lifespan=lifespan
)

app.include_router(api_router, prefix="/v1")

@app.get("/health")
async def health():
    return {"status": "ok"}
