"""
Evidence image upload.
"""

from __future__ import annotations

from typing import Any

from fundrouter.core.errors import ApiError
from fundrouter.core.models import EvidenceFile
from fundrouter.infra.api_client import ApiClient

UPLOAD_PATH = "/ajax/upload"


def extract_url(data: Any) -> str:
    """The backend nests the stored file URL as data.file.url or data.url."""
    if isinstance(data, dict):
        file_info = data.get("file")
        if isinstance(file_info, dict) and file_info.get("url"):
            return str(file_info["url"])
        if data.get("url"):
            return str(data["url"])
    raise ApiError("upload response carried no file url", payload={"data": data})


class UploadService:
    def __init__(self, api: ApiClient) -> None:
        self.api = api

    async def upload(self, file: EvidenceFile) -> str:
        data = await self.api.post_form(
            UPLOAD_PATH,
            files={"file": (file.name, file.content, file.content_type)},
        )
        return extract_url(data)
