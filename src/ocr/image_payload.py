"""이미지 payload 해석: data URL / 순수 base64 → 바이트 + 확장자.

입력: 이미지 id (예: "img-0.jpeg") + payload 문자열
출력: ResolvedImage(data, extension, mime_type)

payload 형식:
  - data URL: "data:image/png;base64,iVBORw0KGgo..."
  - 순수 base64: "iVBORw0KGgo..." (mime 불명)

확장자 결정 순서:
  1. data URL에 선언된 mime 타입 → MIME_EXTENSIONS
  2. id 끝의 확장자 → EXTENSION_ALIASES (jpg/jpeg → jpeg 등)
  3. 디코딩된 바이트의 시그니처 (매직 넘버) → Pillow 판별
  4. 모두 실패하면 "bin"

같은 (id, payload)는 항상 같은 (bytes, extension)이 된다.
"""

from __future__ import annotations
import base64
import binascii
import io
import re
from dataclasses import dataclass
from typing import Optional

from PIL import Image, UnidentifiedImageError

from .base import UnresolvableImageError

FALLBACK_EXTENSION = "bin"

# 잘린 payload 표시 (provider가 긴 base64를 생략할 때 붙임)
TRUNCATION_MARKERS = ("...", "…")

MIME_EXTENSIONS = {
    "image/jpeg": "jpeg",
    "image/jpg": "jpeg",
    "image/pjpeg": "jpeg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/bmp": "bmp",
    "image/x-ms-bmp": "bmp",
    "image/tiff": "tiff",
    "image/svg+xml": "svg",
    "image/avif": "avif",
    "image/x-icon": "ico",
    "image/vnd.microsoft.icon": "ico",
}

# 같은 형식의 여러 표기를 하나의 정규 확장자로 모은다.
# Pillow의 format 이름(JPEG, PNG, ...)도 소문자로 여기서 찾는다.
EXTENSION_ALIASES = {
    "jpg": "jpeg",
    "jpeg": "jpeg",
    "jpe": "jpeg",
    "jfif": "jpeg",
    "png": "png",
    "gif": "gif",
    "webp": "webp",
    "bmp": "bmp",
    "dib": "bmp",
    "tif": "tiff",
    "tiff": "tiff",
    "svg": "svg",
    "avif": "avif",
    "ico": "ico",
}

# (오프셋, 시그니처, 확장자)
_MAGIC_NUMBERS: tuple[tuple[int, bytes, str], ...] = (
    (0, b"\x89PNG\r\n\x1a\n", "png"),
    (0, b"\xff\xd8\xff", "jpeg"),
    (0, b"GIF87a", "gif"),
    (0, b"GIF89a", "gif"),
    (0, b"II*\x00", "tiff"),
    (0, b"MM\x00*", "tiff"),
    (0, b"BM", "bmp"),
    (0, b"\x00\x00\x01\x00", "ico"),
    (4, b"ftypavif", "avif"),
)

_DATA_URL_RE = re.compile(
    r"^data:(?P<mime>[^;,]*)(?:;[^;,]*)*?;base64,(?P<body>.*)$",
    re.IGNORECASE | re.DOTALL,
)
_ID_EXTENSION_RE = re.compile(r"\.([A-Za-z0-9]+)\s*$")
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class ResolvedImage:
    """디코딩된 이미지. 저장 직후 버려진다."""

    data: bytes
    extension: str
    mime_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)


def resolve_image_payload(image_id: str, payload: str) -> ResolvedImage:
    """이미지 payload를 바이트와 확장자로 해석한다.

    입력:
      image_id: OCR 결과의 이미지 id (비어 있을 수 있음)
      payload: data URL 또는 순수 base64

    출력: ResolvedImage

    에러: UnresolvableImageError
      - "empty": payload가 없음
      - "truncated": payload가 말줄임표로 끝남 (생략된 데이터)
      - "invalid-base64": base64로 디코딩할 수 없음
      - "empty-bytes": 디코딩 결과가 0바이트
    """
    text = (payload or "").strip()
    if not text:
        raise UnresolvableImageError("empty", image_id)
    if text.endswith(TRUNCATION_MARKERS):
        raise UnresolvableImageError("truncated", image_id)

    mime_type: Optional[str] = None
    body = text
    match = _DATA_URL_RE.match(text)
    if match:
        mime_type = match.group("mime").strip().lower() or None
        body = match.group("body")

    data = _decode_base64(body, image_id)
    if not data:
        raise UnresolvableImageError("empty-bytes", image_id)

    extension = (
        extension_from_mime(mime_type)
        or extension_from_identifier(image_id)
        or sniff_extension(data)
        or FALLBACK_EXTENSION
    )
    return ResolvedImage(data=data, extension=extension, mime_type=mime_type)


def _decode_base64(body: str, image_id: str) -> bytes:
    """공백/줄바꿈을 허용하고, 빠진 패딩은 채워서 디코딩한다."""
    compact = _WHITESPACE_RE.sub("", body)
    remainder = len(compact) % 4
    if remainder:
        compact += "=" * (4 - remainder)
    try:
        return base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError):
        raise UnresolvableImageError("invalid-base64", image_id)


def extension_from_mime(mime_type: Optional[str]) -> Optional[str]:
    """mime 타입 → 확장자. 모르는 타입이면 None."""
    if not mime_type:
        return None
    return MIME_EXTENSIONS.get(mime_type.strip().lower())


def extension_from_identifier(image_id: str) -> Optional[str]:
    """id 끝의 확장자를 정규화한다. 예: "img-0.JPG" → "jpeg".

    이미지 확장자로 알려진 것만 인정한다 ("chart.v2" 같은 id의 "v2"는 무시).
    """
    match = _ID_EXTENSION_RE.search(image_id or "")
    if not match:
        return None
    return EXTENSION_ALIASES.get(match.group(1).lower())


def sniff_extension(data: bytes) -> Optional[str]:
    """바이트 시그니처로 형식을 판별한다.

    매직 넘버 표 → WebP(RIFF....WEBP) → SVG(텍스트) → Pillow 순서.
    """
    for offset, signature, extension in _MAGIC_NUMBERS:
        if data[offset:offset + len(signature)] == signature:
            return extension

    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "webp"

    head = data[:256].lstrip().lower()
    if head.startswith(b"<svg") or (head.startswith(b"<?xml") and b"<svg" in head):
        return "svg"

    # 표에 없는 형식은 Pillow에 맡긴다 (헤더만 읽음, 전체 디코딩 안 함)
    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = (img.format or "").lower()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError):
        return None
    return EXTENSION_ALIASES.get(fmt, fmt or None)
