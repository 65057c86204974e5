# surveypulse/services/storage.py
"""
Storage layer with local and cloud backends.
Set STORAGE_BACKEND env var to 'local' or 's3' to switch.
"""
import json
import logging
import os
from pathlib import Path
from typing import Optional

from surveypulse.errors import StorageNotFound

STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "local")  # 'local' or 's3'
DATA_DIR = os.getenv("DATA_DIR", "data")
S3_BUCKET = os.getenv("S3_BUCKET", "surveypulse-data")
AWS_REGION = os.getenv("AWS_REGION", "us-east-1")

logger = logging.getLogger(__name__)


class StorageBackend:
    """Abstract storage interface"""

    def write_file(self, path: str, content: bytes) -> str:
        """Write file, return URL or local path"""
        raise NotImplementedError

    def write_text(self, path: str, content: str) -> str:
        return self.write_file(path, content.encode('utf-8'))

    def append_jsonl(self, path: str, record: dict) -> str:
        """Append JSON line to file"""
        raise NotImplementedError

    def read_file(self, path: str) -> bytes:
        """Read file content, raising StorageNotFound when absent"""
        raise NotImplementedError

    def read_text(self, path: str) -> str:
        return self.read_file(path).decode('utf-8')

    def exists(self, path: str) -> bool:
        raise NotImplementedError


class LocalStorage(StorageBackend):
    """Local filesystem storage"""

    def __init__(self, base_dir: str = DATA_DIR):
        self.base_dir = Path(base_dir)

    def _full_path(self, path: str) -> Path:
        return self.base_dir / path

    def write_file(self, path: str, content: bytes) -> str:
        full_path = self._full_path(path)
        full_path.parent.mkdir(parents=True, exist_ok=True)
        with open(full_path, 'wb') as f:
            f.write(content)
        return str(full_path)

    def append_jsonl(self, path: str, record: dict) -> str:
        full_path = self._full_path(path)
        full_path.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(record, ensure_ascii=False) + "\n"
        with open(full_path, 'a', encoding='utf-8') as f:
            f.write(line)
        return str(full_path)

    def read_file(self, path: str) -> bytes:
        full_path = self._full_path(path)
        try:
            with open(full_path, 'rb') as f:
                return f.read()
        except FileNotFoundError as e:
            raise StorageNotFound(path) from e

    def exists(self, path: str) -> bool:
        return self._full_path(path).exists()


class S3Storage(StorageBackend):
    """AWS S3 storage backend"""

    def __init__(self, bucket: str, region: str = AWS_REGION):
        self.bucket = bucket
        self.region = region
        self._client = None

    @property
    def client(self):
        """Lazy load boto3 client"""
        if self._client is None:
            import boto3
            self._client = boto3.client('s3', region_name=self.region)
        return self._client

    def _s3_key(self, path: str) -> str:
        return path.replace('\\', '/')

    def write_file(self, path: str, content: bytes) -> str:
        key = self._s3_key(path)
        self.client.put_object(Bucket=self.bucket, Key=key, Body=content)
        return f"s3://{self.bucket}/{key}"

    def append_jsonl(self, path: str, record: dict) -> str:
        """S3 has no append: read, add the line, write back"""
        try:
            existing = self.read_text(path)
        except StorageNotFound:
            existing = ""
        line = json.dumps(record, ensure_ascii=False) + "\n"
        return self.write_text(path, existing + line)

    def read_file(self, path: str) -> bytes:
        key = self._s3_key(path)
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except self.client.exceptions.NoSuchKey as e:
            raise StorageNotFound(path) from e
        return response['Body'].read()

    def exists(self, path: str) -> bool:
        from botocore.exceptions import ClientError

        try:
            self.client.head_object(Bucket=self.bucket, Key=self._s3_key(path))
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return False
            raise


def make_storage(backend: Optional[str] = None) -> StorageBackend:
    """Build the backend named by STORAGE_BACKEND (or the explicit argument)"""
    backend = (backend or STORAGE_BACKEND).lower()
    if backend == "s3":
        logger.info("Storage: S3 bucket=%s region=%s", S3_BUCKET, AWS_REGION)
        return S3Storage(bucket=S3_BUCKET, region=AWS_REGION)
    logger.info("Storage: local filesystem at %s", DATA_DIR)
    return LocalStorage(base_dir=DATA_DIR)
