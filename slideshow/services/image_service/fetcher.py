import logging
import os
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import Dict, List, Sequence

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from slideshow.exceptions import FetchError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 65536


def build_session(retries: int = 0, pool_size: int = 10) -> requests.Session:
    session = requests.Session()
    retry = Retry(
        total=retries,
        connect=retries,
        read=retries,
        backoff_factor=0.5,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["GET"],
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry, pool_connections=pool_size, pool_maxsize=pool_size)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def scratch_path(job_dir: str, index: int) -> str:
    return os.path.join(job_dir, f"image_{index}.jpg")


class ImageFetcher:
    def __init__(
        self,
        session: requests.Session,
        timeout_seconds: float = 60,
        max_workers: int = 8,
    ) -> None:
        self.session = session
        self.timeout_seconds = timeout_seconds
        self.max_workers = max_workers

    def fetch_all(self, urls: Sequence[str], job_dir: str) -> List[str]:
        """
        Download every URL into job_dir, all at once.

        Returns local paths in input order. The first failure cancels the
        downloads that have not started, waits for the ones already running,
        then raises FetchError.
        """
        if not urls:
            return []
        os.makedirs(job_dir, exist_ok=True)

        workers = max(1, min(self.max_workers, len(urls)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="fetch") as pool:
            futures: Dict[Future, int] = {
                pool.submit(self.fetch_one, url, index, job_dir): index for index, url in enumerate(urls)
            }
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)
            if pending:
                for future in pending:
                    future.cancel()
                wait(pending)

        failures = [f for f in futures if not f.cancelled() and f.exception() is not None]
        if failures:
            first = min(failures, key=lambda f: futures[f])
            raise first.exception()

        ordered = sorted(futures, key=lambda f: futures[f])
        return [f.result() for f in ordered]

    def fetch_one(self, url: str, index: int, job_dir: str) -> str:
        path = scratch_path(job_dir, index)
        logger.info("Downloading image %d from: %s", index + 1, url)
        try:
            with self.session.get(url, stream=True, timeout=self.timeout_seconds) as response:
                response.raise_for_status()
                with open(path, "wb") as f:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        if chunk:
                            f.write(chunk)
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else "unknown"
            raise FetchError(index, url, f"HTTP {status}") from e
        except requests.RequestException as e:
            raise FetchError(index, url, str(e)) from e
        logger.info("Successfully downloaded image %d to %s", index + 1, path)
        return path
