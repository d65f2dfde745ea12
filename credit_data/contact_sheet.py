from __future__ import annotations

import logging
import mimetypes
import re
from io import BytesIO
from pathlib import Path
from typing import Any, Iterable, List, Optional, Tuple

from docx import Document
from docx.oxml.ns import qn
from pypdf import PdfReader

from credit_common.errors import UnsupportedFileType
from credit_common.schema import ImageItem

LOGGER = logging.getLogger(__name__)

NO_PAGE_TEXT = "Page number not found"
_IMAGE_MIME_BY_SUFFIX = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
    ".jp2": "image/jp2",
    ".webp": "image/webp",
}


def page_label_from_text(text: str) -> str:
    """Join every digit run in the text ("p. 12 and 13" -> "12, 13"), or "N/A"."""

    numbers = re.findall(r"\d+", text or "")
    return ", ".join(numbers) if numbers else "N/A"


def _read_payload(path_or_bytes: Any, filename: Optional[str]) -> Tuple[bytes, str]:
    if isinstance(path_or_bytes, (str, Path)):
        path = Path(path_or_bytes)
        return path.read_bytes(), filename or path.name
    if isinstance(path_or_bytes, BytesIO):
        path_or_bytes.seek(0)
        return path_or_bytes.read(), filename or ""
    if isinstance(path_or_bytes, (bytes, bytearray)):
        return bytes(path_or_bytes), filename or ""
    name = filename or getattr(path_or_bytes, "name", "")
    if hasattr(path_or_bytes, "getvalue"):
        return path_or_bytes.getvalue(), str(name)
    return path_or_bytes.read(), str(name)


def _mime_for_name(name: str, default: str = "image/png") -> str:
    return _IMAGE_MIME_BY_SUFFIX.get(Path(name).suffix.lower(), default)


def extract_pdf_images(payload: bytes) -> List[Tuple[bytes, str, str]]:
    """Return (image_bytes, mime_type, page_text) for every embedded image, page by page."""

    reader = PdfReader(BytesIO(payload))
    extracted: List[Tuple[bytes, str, str]] = []
    for page_number, page in enumerate(reader.pages, start=1):
        page_text = " ".join((page.extract_text() or "").split())
        images = page.images
        for index in range(len(images)):
            try:
                image = images[index]
                extracted.append((image.data, _mime_for_name(image.name), page_text))
            except Exception as exc:
                LOGGER.error("Error processing image %d on page %d: %s", index, page_number, exc)
    return extracted


def extract_docx_images(payload: bytes) -> List[Tuple[bytes, str, str]]:
    """
    Return (image_bytes, mime_type, caption_text) for every inline image.

    The caption is the text of the paragraph following the image, which is
    where contact sheets carry the page reference.
    """

    document = Document(BytesIO(payload))
    related = document.part.related_parts
    paragraphs = document.paragraphs
    extracted: List[Tuple[bytes, str, str]] = []
    for index, paragraph in enumerate(paragraphs):
        for blip in paragraph._p.xpath(".//a:blip"):
            part = related.get(blip.get(qn("r:embed")))
            if part is None:
                continue
            if index + 1 < len(paragraphs):
                caption = paragraphs[index + 1].text
            else:
                caption = NO_PAGE_TEXT
            extracted.append((part.blob, part.content_type or "image/png", caption))
    return extracted


def extract_contact_sheet(path_or_bytes: Any, filename: Optional[str] = None) -> List[ImageItem]:
    """Extract images from a PDF or DOCX contact sheet, labelled by the page numbers near them."""

    payload, name = _read_payload(path_or_bytes, filename)
    suffix = Path(name).suffix.lower()
    if suffix == ".pdf":
        raw = extract_pdf_images(payload)
    elif suffix == ".docx":
        raw = extract_docx_images(payload)
    else:
        raise UnsupportedFileType("Unsupported file type. Please upload a PDF or DOCX file.")

    items = [
        ImageItem(
            label=page_label_from_text(text),
            image_bytes=data,
            mime_type=mime,
            associated_text=text,
        )
        for data, mime, text in raw
    ]
    LOGGER.info("Extracted %d images from %s", len(items), name or "contact sheet")
    return items


def load_image_files(paths: Iterable[Path]) -> List[ImageItem]:
    """Wrap directly supplied image files; the filename is the identifying label."""

    items: List[ImageItem] = []
    for path in paths:
        path = Path(path)
        mime_type = _IMAGE_MIME_BY_SUFFIX.get(path.suffix.lower()) or mimetypes.guess_type(path.name)[0]
        if not mime_type or not mime_type.startswith("image/"):
            raise UnsupportedFileType(f"Unsupported image file: {path.name}")
        items.append(ImageItem(label=path.name, image_bytes=path.read_bytes(), mime_type=mime_type))
    return items


__all__ = [
    "page_label_from_text",
    "extract_pdf_images",
    "extract_docx_images",
    "extract_contact_sheet",
    "load_image_files",
]
