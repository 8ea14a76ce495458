from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from unicard.api.v1 import routers
import logging
from unicard.core.config import settings
from unicard.db.session import connect_db_pool, close_db_pool
from unicard.middleware.identity_middleware import IdentityMiddleware

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await connect_db_pool()
    yield
    await close_db_pool()

app = FastAPI(
    title="UniCard API",
    description="University card balances, student provisioning and reclamation settlement",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(IdentityMiddleware)
app.include_router(routers.router)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": {
            "error": "validation_error",
            "field": ".".join(loc) or None,
            "message": first.get("msg", "Invalid request"),
        }},
    )


@app.get("/")
async def root():
    return {"message": "Welcome to UniCard API"}
