import logging
import uuid
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from slideshow.config import Settings
from slideshow.exceptions import UploadError

logger = logging.getLogger(__name__)

KEY_PREFIX = "videos"
CONTENT_TYPE = "video/mp4"


def build_s3_client(settings: Settings) -> Any:
    session = boto3.session.Session(
        aws_access_key_id=settings.aws_access_key_id,
        aws_secret_access_key=settings.aws_secret_access_key,
    )
    config = Config(
        region_name=settings.aws_region,
        connect_timeout=settings.upload_timeout_seconds,
        read_timeout=settings.upload_timeout_seconds,
        retries={
            "max_attempts": 1,
            "mode": "standard",
        },
    )
    return session.client("s3", endpoint_url=settings.storage_endpoint, config=config)


def new_video_key() -> str:
    return f"{KEY_PREFIX}/{uuid.uuid4()}.mp4"


class S3Uploader:
    def __init__(self, client: Any, bucket: str, public_base_url: str) -> None:
        self.client = client
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")

    def upload_video(self, data: bytes) -> str:
        key = new_video_key()
        logger.info("Uploading to S3 with key: %s", key)
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=CONTENT_TYPE,
            )
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "unknown")
            raise UploadError(key, f"storage rejected the write ({code})") from exc
        except BotoCoreError as exc:
            raise UploadError(key, str(exc)) from exc
        return key

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"
