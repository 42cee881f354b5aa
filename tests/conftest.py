"""
Pytest fixtures for the slideshow service tests.

Nothing here touches the network or a real ffmpeg: image downloads go
through FakeSession, encoding runs a small shell script that writes the
output file, and uploads go to an in-memory uploader or a stubbed boto3
client.
"""

import os
import stat
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import pytest
import requests

from slideshow.config import Settings, get_settings
from slideshow.services.image_service.fetcher import ImageFetcher
from slideshow.services.pipeline.job_manager import SlideshowPipeline

BASE_URL = "https://cdn.example.com"
PUBLIC_BASE_URL = "https://r2.example.com"

Route = Union[Tuple[int, bytes], Exception]


class FakeResponse:
    def __init__(self, status_code: int = 200, body: bytes = b"") -> None:
        self.status_code = status_code
        self.body = body

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc) -> None:
        return None

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)

    def iter_content(self, chunk_size: int = 1):
        for start in range(0, len(self.body), chunk_size):
            yield self.body[start : start + chunk_size]


class FakeSession:
    """Answers GETs from a url -> (status, body) table; unknown URLs fail to connect."""

    def __init__(self, routes: Optional[Dict[str, Route]] = None) -> None:
        self.routes = routes or {}
        self.calls: List[str] = []

    def get(self, url: str, stream: bool = False, timeout: Optional[float] = None) -> FakeResponse:
        self.calls.append(url)
        route = self.routes.get(url)
        if route is None:
            raise requests.ConnectionError(f"Failed to resolve {url}")
        if isinstance(route, Exception):
            raise route
        status, body = route
        return FakeResponse(status, body)


class MemoryUploader:
    def __init__(self, public_base_url: str = PUBLIC_BASE_URL, error: Optional[Exception] = None) -> None:
        self.public_base_url = public_base_url
        self.error = error
        self.uploads: Dict[str, bytes] = {}

    def upload_video(self, data: bytes) -> str:
        if self.error is not None:
            raise self.error
        key = f"videos/{len(self.uploads):08d}-0000-4000-8000-000000000000.mp4"
        self.uploads[key] = data
        return key

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        aws_account_id="acct123",
        aws_s3_bucket="slideshow-bucket",
        aws_access_key_id="AKIDEXAMPLE",
        aws_secret_access_key="secret",
        aws_region="auto",
        public_base_url=PUBLIC_BASE_URL,
        scratch_dir=str(tmp_path / "scratch"),
    )


@pytest.fixture
def image_routes() -> Dict[str, Route]:
    return {
        f"{BASE_URL}/one.jpg": (200, b"\xff\xd8first-image"),
        f"{BASE_URL}/two.jpg": (200, b"\xff\xd8second-image"),
        f"{BASE_URL}/three.jpg": (200, b"\xff\xd8third-image"),
        f"{BASE_URL}/missing.jpg": (404, b"not found"),
    }


@pytest.fixture
def fake_session(image_routes) -> FakeSession:
    return FakeSession(image_routes)


@pytest.fixture
def make_ffmpeg(tmp_path: Path):
    """Write a stand-in encoder script: logs to stderr, writes its last argument, exits with exit_code."""

    def _make(exit_code: int = 0, sleep_seconds: int = 0) -> str:
        script = tmp_path / f"fake_ffmpeg_{exit_code}_{sleep_seconds}.sh"
        lines = ["#!/bin/sh", 'echo "ffmpeg version fake" >&2']
        if sleep_seconds:
            lines.append(f"exec sleep {sleep_seconds}")
        lines += [
            "for last; do :; done",
            'printf "fake-mp4-bytes" > "$last"',
            'echo "frame=  72 fps=0.0 q=-1.0 Lsize=N/A" >&2',
            f"exit {exit_code}",
        ]
        script.write_text("\n".join(lines) + "\n")
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(script)

    return _make


@pytest.fixture
def scratch_root(tmp_path: Path) -> str:
    path = tmp_path / "scratch"
    path.mkdir()
    return str(path)


@pytest.fixture
def make_pipeline(fake_session, make_ffmpeg, scratch_root):
    def _make(exit_code: int = 0, uploader: Optional[MemoryUploader] = None, **kwargs) -> SlideshowPipeline:
        return SlideshowPipeline(
            fetcher=ImageFetcher(session=fake_session, timeout_seconds=5, max_workers=4),
            uploader=uploader or MemoryUploader(),
            ffmpeg_bin=make_ffmpeg(exit_code=exit_code),
            scratch_root=scratch_root,
            encode_timeout_seconds=30,
            **kwargs,
        )

    return _make


def remaining_files(root: str) -> List[str]:
    found = []
    for dirpath, dirnames, filenames in os.walk(root):
        found.extend(os.path.join(dirpath, name) for name in filenames)
        found.extend(os.path.join(dirpath, name) for name in dirnames)
    return found
