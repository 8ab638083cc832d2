"""Schemas for image and media download requests."""
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class ImageDownloadRequest(BaseModel):
    url: str = Field(..., min_length=1)
    file_name: Optional[str] = Field(None, alias="fileName")

    model_config = ConfigDict(populate_by_name=True)


class MultipleImagesRequest(BaseModel):
    image_requests: List[ImageDownloadRequest] = Field(..., min_length=1, alias="imageRequests")
    zip_file_name: Optional[str] = Field(None, alias="zipFileName")

    model_config = ConfigDict(populate_by_name=True)
