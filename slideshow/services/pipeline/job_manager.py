import enum
import logging
import os
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from slideshow.exceptions import PipelineBusyError
from slideshow.services.image_service.fetcher import ImageFetcher, scratch_path
from slideshow.services.storage.uploader import S3Uploader
from slideshow.services.video_gen.encoder import build_ffmpeg_args, run_ffmpeg

logger = logging.getLogger(__name__)


def _iso_now() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


class JobStage(str, enum.Enum):
    QUEUED = "queued"
    FETCHING = "fetching"
    ENCODING = "encoding"
    UPLOADING = "uploading"
    CLEANING_UP = "cleaning_up"
    DONE = "done"
    FAILED = "failed"


@dataclass
class SlideshowJob:
    job_id: str
    image_count: int
    duration: float
    stage: JobStage
    created_at: str
    updated_at: str
    error: Optional[str] = None
    url: Optional[str] = None
    stage_history: List[JobStage] = field(default_factory=list)
    leftover_files: List[str] = field(default_factory=list)

    @classmethod
    def new(cls, image_count: int, duration: float) -> "SlideshowJob":
        now = _iso_now()
        return cls(
            job_id=uuid.uuid4().hex,
            image_count=image_count,
            duration=duration,
            stage=JobStage.QUEUED,
            created_at=now,
            updated_at=now,
            stage_history=[JobStage.QUEUED],
        )


def cleanup_files(paths: Sequence[str]) -> List[Tuple[str, OSError]]:
    """
    Unlink every path, carrying on past failures.

    Missing files are fine. Anything else is logged and returned so callers
    can see what was left behind.
    """
    failures: List[Tuple[str, OSError]] = []
    for path in paths:
        try:
            os.remove(path)
        except FileNotFoundError:
            continue
        except OSError as e:
            logger.warning("Failed to remove scratch file %s: %s", path, e)
            failures.append((path, e))
    return failures


Encoder = Callable[[str, Sequence[str], str, Optional[float]], None]


class SlideshowPipeline:
    def __init__(
        self,
        fetcher: ImageFetcher,
        uploader: S3Uploader,
        ffmpeg_bin: str,
        scratch_root: str,
        encode_timeout_seconds: Optional[float] = None,
        max_concurrent_jobs: int = 2,
        admission_timeout_seconds: Optional[float] = None,
        encoder: Encoder = run_ffmpeg,
    ) -> None:
        self.fetcher = fetcher
        self.uploader = uploader
        self.ffmpeg_bin = ffmpeg_bin
        self.scratch_root = scratch_root
        self.encode_timeout_seconds = encode_timeout_seconds
        self.max_concurrent_jobs = max_concurrent_jobs
        self.admission_timeout_seconds = admission_timeout_seconds
        self.encoder = encoder

        self.slots = threading.BoundedSemaphore(max_concurrent_jobs)
        self.lock = threading.Lock()
        self.active_jobs = 0

    def create_video(self, images: Sequence[str], duration: float) -> str:
        job = SlideshowJob.new(image_count=len(images), duration=duration)
        return self.run(job, images)

    def run(self, job: SlideshowJob, images: Sequence[str]) -> str:
        if not self.slots.acquire(timeout=self.admission_timeout_seconds):
            raise PipelineBusyError(f"No free pipeline slot after {self.admission_timeout_seconds}s")
        with self.lock:
            self.active_jobs += 1
        try:
            return self._run_job(job, images)
        finally:
            with self.lock:
                self.active_jobs -= 1
            self.slots.release()

    def _update(self, job: SlideshowJob, stage: JobStage, **kwargs) -> None:
        job.stage = stage
        job.stage_history.append(stage)
        for key, value in kwargs.items():
            setattr(job, key, value)
        job.updated_at = _iso_now()
        logger.info("Job %s: %s", job.job_id, stage.value)

    def _run_job(self, job: SlideshowJob, images: Sequence[str]) -> str:
        job_dir = os.path.join(self.scratch_root, f"slideshow_{job.job_id}")
        image_files = [scratch_path(job_dir, i) for i in range(len(images))]
        output_path = os.path.join(job_dir, f"{job.job_id}.mp4")

        try:
            self._update(job, JobStage.FETCHING)
            image_files = self.fetcher.fetch_all(images, job_dir)

            self._update(job, JobStage.ENCODING)
            ffmpeg_args = build_ffmpeg_args(image_files, job.duration)
            self.encoder(self.ffmpeg_bin, ffmpeg_args, output_path, self.encode_timeout_seconds)

            self._update(job, JobStage.UPLOADING)
            with open(output_path, "rb") as f:
                file_content = f.read()
            key = self.uploader.upload_video(file_content)
            url = self.uploader.public_url(key)
        except Exception as e:
            logger.exception("Job %s failed during %s", job.job_id, job.stage.value)
            self._update(job, JobStage.CLEANING_UP, error=str(e))
            self._cleanup(job, job_dir, [*image_files, output_path])
            self._update(job, JobStage.FAILED)
            raise

        self._update(job, JobStage.CLEANING_UP)
        self._cleanup(job, job_dir, [*image_files, output_path])
        self._update(job, JobStage.DONE, url=url)
        return url

    def _cleanup(self, job: SlideshowJob, job_dir: str, paths: Sequence[str]) -> None:
        failures = cleanup_files(paths)
        job.leftover_files = [path for path, _ in failures]
        try:
            os.rmdir(job_dir)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to remove scratch directory %s: %s", job_dir, e)
