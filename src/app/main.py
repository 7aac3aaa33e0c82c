# src/app/main.py
from __future__ import annotations
import logging
import sys
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.app import deps
from src.app.config import settings
from src.app.domain.errors import PipelineError, ValidationError
from src.app.routers.clips import router as clips_router
from src.app.routers.collections import router as collections_router
from src.app.routers.content import router as content_router
from src.app.routers.media import router as media_router
from src.app.routers.transcriptions import router as transcriptions_router

# Plain stdout logging (fine for dev and containers)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

log = logging.getLogger("app")

app = FastAPI(title="ContentKlipa API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.FRONTEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(media_router)
app.include_router(transcriptions_router)
app.include_router(clips_router)
app.include_router(content_router)
app.include_router(collections_router)


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error("request.failed path=%s step=%s error=%s", request.url.path, exc.step, exc.message)
    else:
        log.info("request.rejected path=%s step=%s status=%d error=%s", request.url.path, exc.step, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def _describe_problem(err: dict) -> str:
    field = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
    return f"{field or 'body'}: {err.get('msg', 'invalid value')}"


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = [_describe_problem(err) for err in exc.errors()]
    error = ValidationError(
        f"Invalid request: {problems[0]}" if problems else "Invalid request body",
        diagnostics={"problems": problems},
    )
    return await pipeline_error_handler(request, error)


@app.on_event("startup")
async def startup() -> None:
    await deps.get_render_queue().start()


@app.on_event("shutdown")
async def shutdown() -> None:
    await deps.get_render_queue().stop()
    deps.close_clients()


@app.get("/health")
def health():
    return {"ok": True}
