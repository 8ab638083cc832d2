"""
Media downloads: single images, bundles of images as a zip archive, a
project's inspection media and the images behind a defect's overlays.

Individual download failures never raise; they are recorded on the result
(``success=False`` with an ``error``) and counted, so one broken link does
not lose the rest of a bundle.
"""
from dataclasses import dataclass, field
from io import BytesIO
from typing import Dict, List, Optional, Sequence
from urllib.parse import unquote, urlparse
import logging
import os
import threading
import uuid
import zipfile

import requests

from huvr_export.config import settings
from huvr_export.services.field_resolver import key_string
from huvr_export.services.huvr_client import EntityFetchPort, Record, raise_if_cancelled
from huvr_export.services.relationship_catalog import DEFECT, DEFECT_OVERLAY, INSPECTION_MEDIA

logger = logging.getLogger(__name__)

ZIP_MEDIA_TYPE = "application/zip"
DEFAULT_IMAGE_TYPE = "image/jpeg"

IMAGE_EXTENSIONS: Dict[str, str] = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/bmp": ".bmp",
    "image/webp": ".webp",
    "image/tiff": ".tiff",
}


class MediaDownloadError(Exception):
    """A media file could not be downloaded."""


@dataclass
class DownloadRequest:
    url: str
    file_name: Optional[str] = None


@dataclass
class ImageDownload:
    success: bool
    file_name: Optional[str] = None
    content: Optional[bytes] = None
    content_type: Optional[str] = None
    size: int = 0
    error: Optional[str] = None


@dataclass
class ZipDownload:
    success: bool
    zip_file_name: str = "images.zip"
    zip_content: Optional[bytes] = None
    success_count: int = 0
    failed_count: int = 0
    downloads: List[ImageDownload] = field(default_factory=list)
    error: Optional[str] = None


def file_name_from_url(url: str) -> Optional[str]:
    """Last path segment of the URL, or None when the path has none."""
    name = os.path.basename(unquote(urlparse(url).path))
    return name or None


def extension_for(content_type: Optional[str]) -> str:
    return IMAGE_EXTENSIONS.get((content_type or "").lower(), ".jpg")


def zip_entry_name(name: str, used: Dict[str, int]) -> str:
    """``name``, or ``name_2.ext``, ``name_3.ext``... when it is already in the archive."""
    if name not in used:
        used[name] = 1
        return name
    stem, ext = os.path.splitext(name)
    while True:
        used[name] += 1
        candidate = f"{stem}_{used[name]}{ext}"
        if candidate not in used:
            used[candidate] = 1
            return candidate


def _safe_file_name(name: str) -> str:
    # entry names never carry directories
    return os.path.basename(name.replace("\\", "/")).strip()


def media_requests(media: Sequence[Record]) -> List[DownloadRequest]:
    """One request per inspection media record that has a ``DownloadUrl``."""
    return [
        DownloadRequest(url=m["DownloadUrl"], file_name=m.get("FileName") or None)
        for m in media
        if m.get("DownloadUrl")
    ]


def defect_overlay_requests(defect_id: str, overlays: Sequence[Record]) -> List[DownloadRequest]:
    """
    Requests for every image behind a defect's overlays: the rendered overlay
    (``DisplayUrl``), the underlying media file and its thumbnail.
    """
    requests_: List[DownloadRequest] = []
    for overlay in overlays:
        overlay_id = key_string(overlay.get("Id")) or ""
        if overlay.get("DisplayUrl"):
            requests_.append(DownloadRequest(
                url=overlay["DisplayUrl"],
                file_name=f"defect_{defect_id}_overlay_{overlay_id}.jpg",
            ))
        media = overlay.get("Media")
        if not isinstance(media, dict):
            continue
        media_id = key_string(media.get("Id")) or ""
        if media.get("DownloadUrl"):
            requests_.append(DownloadRequest(
                url=media["DownloadUrl"],
                file_name=media.get("FileName") or f"defect_{defect_id}_media_{media_id}.jpg",
            ))
        if media.get("ThumbnailUrl"):
            requests_.append(DownloadRequest(
                url=media["ThumbnailUrl"],
                file_name=f"defect_{defect_id}_media_{media_id}_thumb.jpg",
            ))
    return requests_


class MediaDownloader:
    """Downloads media over a shared ``requests.Session``."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: Optional[float] = None):
        self._session = session or requests.Session()
        self._timeout = timeout if timeout is not None else settings.MEDIA_DOWNLOAD_TIMEOUT_SECONDS

    def close(self) -> None:
        self._session.close()

    def download(self, url: str, file_name: Optional[str] = None) -> ImageDownload:
        """
        Download one file. The name falls back to the URL's last path segment,
        then to ``image_<uuid>.jpg``; a name without an extension gets one from
        the response content type.
        """
        if not url:
            return ImageDownload(success=False, error="URL is empty")
        try:
            response = self._session.get(url, timeout=self._timeout)
        except requests.RequestException as exc:
            logger.warning(f"Download failed: {url} -> {exc}")
            return ImageDownload(success=False, error=str(exc))
        if not response.ok:
            logger.warning(f"Download failed: {url} -> {response.status_code}")
            return ImageDownload(success=False, error=f"HTTP {response.status_code}: {response.reason}")

        content_type = (response.headers.get("Content-Type") or "").split(";")[0].strip().lower() or None
        name = _safe_file_name(file_name or "") or file_name_from_url(url) or f"image_{uuid.uuid4()}.jpg"
        if not os.path.splitext(name)[1]:
            name += extension_for(content_type)
        content = response.content
        return ImageDownload(
            success=True,
            file_name=name,
            content=content,
            content_type=content_type or DEFAULT_IMAGE_TYPE,
            size=len(content),
        )

    def download_as_zip(
        self,
        requests_: Sequence[DownloadRequest],
        zip_file_name: str = "images.zip",
        cancel_event: Optional[threading.Event] = None,
    ) -> ZipDownload:
        """Download each request in order into one zip archive; failed downloads are counted and skipped."""
        result = ZipDownload(success=False, zip_file_name=zip_file_name)
        buffer = BytesIO()
        used: Dict[str, int] = {}
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
            for request in requests_:
                raise_if_cancelled(cancel_event)
                download = self.download(request.url, request.file_name)
                result.downloads.append(download)
                if not download.success:
                    result.failed_count += 1
                    continue
                archive.writestr(zip_entry_name(download.file_name, used), download.content)
                result.success_count += 1
        result.zip_content = buffer.getvalue()
        result.success = True
        logger.info(
            f"Built {zip_file_name}: {result.success_count} downloaded, {result.failed_count} failed"
        )
        return result

    def download_media_file(self, media: Record) -> bytes:
        """Content of one inspection media record; raises ``MediaDownloadError`` when it cannot be fetched."""
        url = media.get("DownloadUrl")
        if not url:
            raise MediaDownloadError("Media does not have a download URL")
        download = self.download(url, media.get("FileName"))
        if not download.success:
            raise MediaDownloadError(f"Failed to download {media.get('FileName') or url}: {download.error}")
        return download.content

    def download_project_media(
        self,
        port: EntityFetchPort,
        project_id: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> ZipDownload:
        """Every inspection media file of a project that has a download URL, as one zip."""
        zip_file_name = f"project_{project_id}_media.zip"
        media = port.fetch_all(INSPECTION_MEDIA, {"project_id": project_id}, cancel_event=cancel_event)
        requests_ = media_requests(media)
        if not requests_:
            return ZipDownload(
                success=False,
                zip_file_name=zip_file_name,
                error="No downloadable media found for this project",
            )
        return self.download_as_zip(requests_, zip_file_name, cancel_event)

    def download_defect_overlay_images(self, defect_id: str, overlays: Sequence[Record]) -> ZipDownload:
        requests_ = defect_overlay_requests(defect_id, overlays)
        if not requests_:
            return ZipDownload(success=False, error="No image URLs found in overlays")
        return self.download_as_zip(requests_, f"defect_{defect_id}_images.zip")

    def download_defect_images(self, port: EntityFetchPort, defect_id: str) -> ZipDownload:
        """
        The images behind a defect's overlays. Overlays nested on the defect
        record are used when present, otherwise they are listed by defect id.
        The defect fetch is mandatory; ``HuvrNotFoundError`` propagates.
        """
        defect = port.fetch_one(DEFECT, defect_id)
        overlays = defect.get("Overlays") or port.fetch_all(DEFECT_OVERLAY, {"defect_id": defect_id})
        if not overlays:
            return ZipDownload(success=False, error="No overlays found for this defect")
        return self.download_defect_overlay_images(defect_id, overlays)
