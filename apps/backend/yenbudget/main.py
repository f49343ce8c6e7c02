from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import settings
from .core.database import init_db
from .core.logger import get_logger, setup_logging
from .errors import BudgetError
from .routers import router


logger = get_logger("api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings)
    if settings.STORAGE_BACKEND == "sql":
        init_db()
    logger.info("%s started (%s storage, %s)", settings.APP_NAME, settings.STORAGE_BACKEND, settings.ENV)
    yield


app = FastAPI(title=settings.APP_NAME, version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Total-Count", "Content-Disposition"],
)


@app.exception_handler(BudgetError)
async def budget_error_handler(request: Request, exc: BudgetError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    body: dict = {"detail": exc.message}
    if exc.errors:
        body["errors"] = exc.errors
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    # malformed input is a 400 everywhere, body or query
    errors = [
        {"loc": [str(p) for p in err.get("loc", ())], "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"detail": "Invalid request", "errors": errors})


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(router, prefix="/api")
