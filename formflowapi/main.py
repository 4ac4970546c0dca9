import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from formflowapi.config import config
from formflowapi.database import database
from formflowapi.errors import FormFlowError
from formflowapi.logging_conf import configure_logging
from formflowapi.routers.approval import router as approval_router
from formflowapi.routers.form import router as form_router
from formflowapi.routers.submission import router as submission_router
from formflowapi.routers.user import router as user_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    # connect database
    await database.connect()
    yield
    # disconnect database
    await database.disconnect()

app = FastAPI(
    title="FormFlow API",
    description="Form builder with manager approval workflow",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(FormFlowError)
async def formflow_error_handler(request: Request, exc: FormFlowError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    else:
        logger.debug(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)


@app.get("/api/health", tags=["Health"])
async def health():
    return {
        "status": "OK",
        "message": "FormFlow API is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


app.include_router(form_router, prefix="/api/forms", tags=["Form"])
app.include_router(submission_router, prefix="/api/submissions", tags=["Submission"])
app.include_router(approval_router, prefix="/api/approvals", tags=["Approval"])
app.include_router(user_router, prefix="/api/user", tags=["User"])
