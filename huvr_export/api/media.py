"""
Media download endpoints: single images, zip bundles of images, a project's
inspection media and a defect's overlay images.
"""
from typing import Generator
import logging

from fastapi import APIRouter, Depends, HTTPException, Response

from huvr_export.db.huvr import require_huvr
from huvr_export.schemas.media import ImageDownloadRequest, MultipleImagesRequest
from huvr_export.services.huvr_client import HuvrApiClient, HuvrApiError, HuvrNotFoundError
from huvr_export.services.media_service import (
    ZIP_MEDIA_TYPE,
    DownloadRequest,
    MediaDownloader,
    ZipDownload,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def get_media_downloader() -> Generator[MediaDownloader, None, None]:
    """FastAPI dependency that yields a downloader and closes its session afterwards."""
    downloader = MediaDownloader()
    try:
        yield downloader
    finally:
        downloader.close()


def attachment(content: bytes, media_type: str, file_name: str) -> Response:
    file_name = file_name.replace('"', "")
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
    )


def zip_response(result: ZipDownload) -> Response:
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)
    return attachment(result.zip_content, ZIP_MEDIA_TYPE, result.zip_file_name)


@router.post("/media/images/download")
def download_image(request: ImageDownloadRequest, downloader: MediaDownloader = Depends(get_media_downloader)):
    """Download one image from a URL."""
    result = downloader.download(request.url, request.file_name)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)
    return attachment(result.content, result.content_type, result.file_name)


@router.post("/media/images/zip")
def download_images_as_zip(
    request: MultipleImagesRequest,
    downloader: MediaDownloader = Depends(get_media_downloader),
):
    """Download several images into one zip; failed downloads are left out."""
    requests_ = [DownloadRequest(url=r.url, file_name=r.file_name) for r in request.image_requests]
    return zip_response(downloader.download_as_zip(requests_, request.zip_file_name or "images.zip"))


@router.get("/projects/{project_id}/media/zip")
def download_project_media(
    project_id: str,
    client: HuvrApiClient = Depends(require_huvr),
    downloader: MediaDownloader = Depends(get_media_downloader),
):
    """Every inspection media file of a project as one zip."""
    try:
        result = downloader.download_project_media(client, project_id)
    except HuvrApiError as e:
        logger.error(f"Listing media for project {project_id} failed: {e}")
        raise HTTPException(status_code=502, detail=f"HUVR API error: {e}")
    return zip_response(result)


@router.post("/defects/{defect_id}/images/zip")
def download_defect_images(
    defect_id: str,
    client: HuvrApiClient = Depends(require_huvr),
    downloader: MediaDownloader = Depends(get_media_downloader),
):
    """Overlay, media and thumbnail images of a defect as one zip."""
    try:
        result = downloader.download_defect_images(client, defect_id)
    except HuvrNotFoundError:
        raise HTTPException(status_code=404, detail="Defect not found")
    except HuvrApiError as e:
        logger.error(f"Fetching overlays for defect {defect_id} failed: {e}")
        raise HTTPException(status_code=502, detail=f"HUVR API error: {e}")
    return zip_response(result)
