"""
Storage backends used by uploaders to persist cached files.

FileStorage keeps files under UPLOADS_ROOT on the local filesystem,
S3Storage puts them in the bucket/prefix named by UPLOADS_BUCKET_URI.
"""

import logging
from pathlib import Path, PurePosixPath

import boto3
from botocore.exceptions import ClientError

from core.config import get_settings
from uploader.sanitized_file import SanitizedFile

logger = logging.getLogger(__name__)


def _parse_s3_path(s3_path: str) -> tuple[str, str]:
    """Parse S3 path into bucket and prefix"""
    if not s3_path.startswith("s3://"):
        raise ValueError("Invalid S3 path format. Must start with s3://")

    path_without_scheme = s3_path[5:]

    if not path_without_scheme:
        raise ValueError("Invalid S3 path format. Bucket name is required")

    if path_without_scheme.startswith("/"):
        raise ValueError("Invalid S3 path format. Bucket name cannot start with /")

    if "//" in path_without_scheme:
        raise ValueError("Invalid S3 path format. Path cannot contain double slashes")

    if "/" in path_without_scheme:
        bucket, key = path_without_scheme.split("/", 1)
    else:
        bucket = path_without_scheme
        key = ""

    return bucket, key


def get_s3_client():
    """Create a boto3 S3 client from the configured credentials"""
    settings = get_settings()
    return boto3.client(
        "s3",
        region_name=settings.AWS_REGION,
        aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
        aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
    )


class FileStorage:
    """Stores files below the UPLOADS_ROOT directory."""

    def __init__(self, uploader):
        self.uploader = uploader
        self.root = Path(get_settings().UPLOADS_ROOT)

    def store(self, file: SanitizedFile, path: str) -> SanitizedFile:
        destination = self.root / path
        logger.debug("Storing %s at %s", file.filename, destination)
        if file.is_path and self.uploader.move_to_store:
            return file.move_to(destination)
        return file.copy_to(destination)

    def retrieve(self, path: str) -> SanitizedFile:
        return SanitizedFile(self.root / path)

    def url(self, file: SanitizedFile) -> str | None:
        if file.path is None:
            return None
        try:
            relative = Path(file.path).resolve().relative_to(self.root.resolve())
        except ValueError:
            return None
        base_url = get_settings().UPLOADS_BASE_URL.rstrip("/")
        return f"{base_url}/{relative.as_posix()}"


class S3File:
    """A stored object in S3, exposing the same surface as SanitizedFile."""

    def __init__(self, client, bucket: str, key: str, content_type: str | None = None):
        self.client = client
        self.bucket = bucket
        self.key = key
        self._content_type = content_type

    @property
    def path(self) -> str:
        return self.key

    @property
    def filename(self) -> str:
        return PurePosixPath(self.key).name

    @property
    def content_type(self) -> str | None:
        return self._content_type

    @property
    def uri(self) -> str:
        return f"s3://{self.bucket}/{self.key}"

    @property
    def size(self) -> int:
        response = self.client.head_object(Bucket=self.bucket, Key=self.key)
        return response["ContentLength"]

    @property
    def exists(self) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=self.key)
        except ClientError as exc:
            if exc.response["Error"]["Code"] in ("404", "NoSuchKey", "NotFound"):
                return False
            raise
        return True

    def read(self) -> bytes:
        response = self.client.get_object(Bucket=self.bucket, Key=self.key)
        return response["Body"].read()

    def delete(self) -> None:
        self.client.delete_object(Bucket=self.bucket, Key=self.key)


class S3Storage:
    """Stores files in the bucket and prefix of UPLOADS_BUCKET_URI."""

    def __init__(self, uploader, s3_client=None):
        self.uploader = uploader
        self.client = s3_client if s3_client is not None else get_s3_client()
        self.bucket, prefix = _parse_s3_path(get_settings().UPLOADS_BUCKET_URI)
        self.prefix = f"{prefix.rstrip('/')}/" if prefix else ""

    def _key(self, path: str) -> str:
        return f"{self.prefix}{path}"

    def store(self, file: SanitizedFile, path: str) -> S3File:
        key = self._key(path)
        content_type = file.content_type or "application/octet-stream"
        logger.debug("Uploading %s to s3://%s/%s", file.filename, self.bucket, key)
        self.client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=file.read(),
            ContentType=content_type,
        )
        if self.uploader.move_to_store:
            file.delete()
        return S3File(self.client, self.bucket, key, content_type=content_type)

    def retrieve(self, path: str) -> S3File:
        return S3File(self.client, self.bucket, self._key(path))

    def url(self, file: S3File) -> str:
        return file.uri


STORAGE_ENGINES = {
    "file": FileStorage,
    "s3": S3Storage,
}
