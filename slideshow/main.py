import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, List, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field, field_validator

from slideshow.config import Settings, get_settings
from slideshow.exceptions import PipelineBusyError
from slideshow.logger import setup_logging
from slideshow.services.image_service.fetcher import ImageFetcher, build_session
from slideshow.services.pipeline.job_manager import SlideshowJob, SlideshowPipeline
from slideshow.services.storage.uploader import S3Uploader, build_s3_client
from slideshow.services.video_gen.encoder import resolve_ffmpeg
from slideshow.services.video_gen.filter_graph import FADE_SECONDS

logger = logging.getLogger(__name__)

FAILED_MESSAGE = "Failed to create video"


class VideoRequest(BaseModel):
    images: List[str] = Field(..., min_length=1)
    duration: float = Field(..., gt=FADE_SECONDS)

    @field_validator("images")
    @classmethod
    def validate_images(cls, value: List[str]) -> List[str]:
        urls = [url.strip() for url in value]
        if any(not url for url in urls):
            raise ValueError("Image URLs must not be empty")
        return urls


class VideoResponse(BaseModel):
    url: str


def build_pipeline(settings: Settings) -> SlideshowPipeline:
    session = build_session(retries=settings.fetch_retries, pool_size=settings.max_parallel_downloads)
    fetcher = ImageFetcher(
        session=session,
        timeout_seconds=settings.fetch_timeout_seconds,
        max_workers=settings.max_parallel_downloads,
    )
    uploader = S3Uploader(
        client=build_s3_client(settings),
        bucket=settings.aws_s3_bucket,
        public_base_url=settings.public_base_url,
    )
    return SlideshowPipeline(
        fetcher=fetcher,
        uploader=uploader,
        ffmpeg_bin=resolve_ffmpeg(settings.ffmpeg_path),
        scratch_root=settings.scratch_dir,
        encode_timeout_seconds=settings.encode_timeout_seconds,
        max_concurrent_jobs=settings.max_concurrent_jobs,
        admission_timeout_seconds=settings.admission_timeout_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    if app.state.pipeline is None:
        settings = get_settings()
        setup_logging(settings.log_level)
        app.state.pipeline = build_pipeline(settings)
        logger.info("Pipeline ready (ffmpeg: %s)", app.state.pipeline.ffmpeg_bin)
    yield


def create_app(pipeline: Optional[SlideshowPipeline] = None) -> FastAPI:
    app = FastAPI(title="Slideshow Video Service", lifespan=lifespan)
    app.state.pipeline = pipeline

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.error("Error creating video: invalid request to %s: %s", request.url.path, exc.errors())
        return JSONResponse(status_code=500, content={"error": FAILED_MESSAGE})

    @app.get("/", response_class=PlainTextResponse)
    def index() -> str:
        return "Hello World"

    @app.get("/health")
    def health() -> dict:
        pipeline: SlideshowPipeline = app.state.pipeline
        return {
            "status": "ok",
            "active_jobs": pipeline.active_jobs,
            "max_concurrent_jobs": pipeline.max_concurrent_jobs,
        }

    @app.post("/create-video", response_model=VideoResponse)
    def create_video(data: VideoRequest):
        logger.info("Received request to create video")
        logger.info("Processing %d images with %ss duration each", len(data.images), data.duration)
        pipeline: SlideshowPipeline = app.state.pipeline
        job = SlideshowJob.new(image_count=len(data.images), duration=data.duration)
        try:
            video_url = pipeline.run(job, data.images)
        except PipelineBusyError as e:
            logger.error("Error creating video: job %s rejected: %s", job.job_id, e)
            return JSONResponse(status_code=500, content={"error": FAILED_MESSAGE})
        except Exception:
            logger.exception("Error creating video (job %s)", job.job_id)
            return JSONResponse(status_code=500, content={"error": FAILED_MESSAGE})

        logger.info("Video creation completed. URL: %s", video_url)
        return VideoResponse(url=video_url)

    return app


app = create_app()


if __name__ == "__main__":
    settings = get_settings()
    setup_logging(settings.log_level)
    uvicorn.run(app, host=settings.host, port=settings.port)
