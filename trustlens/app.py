# trustlens/app.py
import asyncio
import datetime as dt
import functools
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Literal, Optional

import uvicorn
from fastapi import FastAPI, File, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import sessionmaker

from trustlens.config import Settings, configure_logging
from trustlens.db import make_engine, make_session_factory
from trustlens.errors import InferenceTimeout, TrustLensError, ValidationError
from trustlens.inference.loader import ModelRunner
from trustlens.inference.preprocess import ImagePreprocessor
from trustlens.inference.service import PredictionService
from trustlens.models import PredictionRecord, init_db

API_VERSION = "0.1.0"

logger = logging.getLogger(__name__)


class PredictResponse(BaseModel):
    label: Literal["Fake", "Real"]
    confidence: float


class RecordCreate(BaseModel):
    userId: str = Field(..., min_length=1)
    userEmail: Optional[str] = None
    fileName: str = Field(..., min_length=1)
    label: Literal["Fake", "Real"]
    confidence: float = Field(..., ge=0.0, le=1.0)


@dataclass
class ServiceContext:
    """Everything the routes need, built once per app."""

    settings: Settings
    runner: ModelRunner
    service: PredictionService
    engine: object
    SessionLocal: sessionmaker


def build_context(settings: Settings, runner: Optional[ModelRunner] = None) -> ServiceContext:
    runner = runner or ModelRunner(settings.model_path, device=settings.device,
                                   placeholder_seed=settings.placeholder_seed)
    service = PredictionService(
        runner,
        ImagePreprocessor(),
        upload_dir=settings.upload_dir,
        max_upload_bytes=settings.max_upload_bytes,
        threshold=settings.threshold,
        extract_video_frames=settings.extract_video_frames,
    )
    engine = make_engine(settings.database_url)
    return ServiceContext(settings, runner, service, engine, make_session_factory(engine))


@asynccontextmanager
async def lifespan(app: FastAPI):
    ctx: ServiceContext = app.state.context
    init_db(ctx.engine)
    if not ctx.runner.is_loaded:
        logger.info("Loading model...")
        ctx.runner.load()
    logger.info("Model ready (%s) on %s", ctx.runner.source, ctx.runner.device)
    yield
    ctx.engine.dispose()


def _utc_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def create_app(settings: Optional[Settings] = None, runner: Optional[ModelRunner] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    app = FastAPI(title="TrustLens Deepfake Detector API", version=API_VERSION, lifespan=lifespan)
    app.state.context = build_context(settings, runner)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        # credentials only for an explicit origin list, never with "*"
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(TrustLensError)
    async def trustlens_error_handler(request: Request, exc: TrustLensError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
        )
        return JSONResponse(status_code=400, content={"error": "Invalid request", "message": details})

    @app.get("/health")
    def health(request: Request):
        ctx: ServiceContext = request.app.state.context
        return {"status": "ok", "modelLoaded": ctx.runner.is_loaded, "timestamp": _utc_iso()}

    @app.get("/version")
    def version(request: Request):
        ctx: ServiceContext = request.app.state.context
        return {
            "api_version": app.version,
            "model_source": ctx.runner.source,
            "threshold": ctx.settings.threshold,
            "max_upload_mb": ctx.settings.max_upload_mb,
        }

    @app.post("/predict", response_model=PredictResponse)
    async def predict(request: Request, file: Optional[UploadFile] = File(None)):
        ctx: ServiceContext = request.app.state.context
        if file is None or not file.filename:
            raise ValidationError("No file uploaded")

        ctype = (file.content_type or "").lower()
        if ctype not in ctx.settings.allowed_content_types:
            raise ValidationError("Invalid file type. Only images and videos are allowed.")

        logger.info("Processing file: %s (%s)", file.filename, ctype)
        # on timeout the worker thread runs to completion and cleans up on its own
        loop = asyncio.get_running_loop()
        job = loop.run_in_executor(
            None, functools.partial(ctx.service.predict_upload, file.file, ctype, file.filename)
        )
        try:
            result = await asyncio.wait_for(job, timeout=ctx.settings.inference_timeout)
        except asyncio.TimeoutError:
            raise InferenceTimeout(message=f"Inference exceeded {ctx.settings.inference_timeout:g}s") from None

        logger.info("Prediction result: %s with confidence %s", result.label, result.confidence)
        return PredictResponse(**result.to_dict())

    @app.post("/predictions", status_code=201)
    def create_record(record: RecordCreate, request: Request):
        ctx: ServiceContext = request.app.state.context
        db = ctx.SessionLocal()
        try:
            row = PredictionRecord(
                user_id=record.userId,
                user_email=record.userEmail,
                file_name=record.fileName,
                label=record.label,
                confidence=record.confidence,
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            return row.to_dict()
        finally:
            db.close()

    @app.get("/predictions")
    def flagged_records(
        request: Request,
        label: Optional[Literal["Fake", "Real"]] = None,
        max_confidence: float = Query(0.5, ge=0.0, le=1.0),
        limit: int = Query(100, ge=1, le=1000),
    ):
        ctx: ServiceContext = request.app.state.context
        db = ctx.SessionLocal()
        try:
            query = db.query(PredictionRecord).filter(PredictionRecord.confidence < max_confidence)
            if label:
                query = query.filter(PredictionRecord.label == label)
            rows = (
                query.order_by(
                    PredictionRecord.confidence.asc(),
                    PredictionRecord.created_at.desc(),
                    PredictionRecord.id.desc(),
                )
                .limit(limit)
                .all()
            )
            items = [r.to_dict() for r in rows]
        finally:
            db.close()

        avg = sum(r["confidence"] for r in items) / len(items) if items else 0.0
        return {"predictions": items, "stats": {"count": len(items), "averageConfidence": round(avg, 4)}}

    return app


app = create_app()


if __name__ == "__main__":
    ctx = app.state.context
    uvicorn.run(app, host=ctx.settings.host, port=ctx.settings.port)
