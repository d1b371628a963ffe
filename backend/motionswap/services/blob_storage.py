"""
Blob Storage Service - Stores generated videos under the static root
"""

import os
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional

from motionswap.config.settings import settings
from motionswap.services.observability import logger


class BlobStorage:
    """
    Put/get/delete blobs by key on the local filesystem

    Keys are relative paths under ``root``; the public URL of a key is
    ``url_prefix/key``, served by the static mount in the API.
    """

    def __init__(self, root: Optional[str] = None, url_prefix: Optional[str] = None):
        """Initialize blob storage"""
        self.root = root or settings.blob_root
        self.url_prefix = (url_prefix or settings.blob_url_prefix).rstrip("/")
        self.generations_subdir = settings.blob_generations_subdir

        Path(self.root).mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> str:
        normalized = os.path.normpath(key).lstrip(os.sep)
        if normalized.startswith(".."):
            raise ValueError(f"Invalid blob key: {key}")
        return os.path.join(self.root, normalized)

    def generation_video_key(self, generation_id: int, extension: str = "mp4") -> str:
        """
        Build a unique key for a generation's output video

        Args:
            generation_id: Generation identifier
            extension: File extension (default: mp4)

        Returns:
            Relative blob key
        """
        date_str = datetime.utcnow().strftime("%Y/%m/%d")
        filename = f"{generation_id}_{uuid.uuid4().hex[:12]}.{extension}"
        return f"{self.generations_subdir}/{date_str}/{filename}"

    def url_for(self, key: str) -> str:
        return f"{self.url_prefix}/{key}"

    def put(self, key: str, data: bytes) -> str:
        """
        Write a blob

        Args:
            key: Relative blob key
            data: Blob content

        Returns:
            Public URL of the stored blob
        """
        path = self._path_for(key)
        Path(os.path.dirname(path)).mkdir(parents=True, exist_ok=True)

        tmp_path = f"{path}.part"
        with open(tmp_path, "wb") as f:
            f.write(data)
        os.replace(tmp_path, path)

        logger.info("blob_stored", key=key, size_bytes=len(data))
        return self.url_for(key)

    def get(self, key: str) -> bytes:
        """
        Read a blob

        Raises:
            FileNotFoundError: If the key does not exist
        """
        path = self._path_for(key)
        if not os.path.exists(path):
            raise FileNotFoundError(f"Blob not found: {key}")
        with open(path, "rb") as f:
            return f.read()

    def delete(self, key: str) -> bool:
        """
        Delete a blob

        Returns:
            True if the blob existed
        """
        path = self._path_for(key)
        if not os.path.exists(path):
            return False
        os.remove(path)
        logger.info("blob_deleted", key=key)
        return True
