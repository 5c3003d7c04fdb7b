"""파일명/경로 정리.

문서 이름과 이미지 id는 임의의 문자열이다 (PDF 파일명, OCR provider가 준 id).
이것을 파일 시스템과 Obsidian 위키 링크 양쪽에서 안전한 조각으로 만든다.

이미지 파일명 규칙:
    {정리된 문서명}_{정리된 이미지명}.{확장자}
    예: "보고서 2024" + "img-0.jpeg" + "png" → "보고서 2024_img-0.png"

id가 비어 있으면 페이지 번호와 페이지 내 위치로 대체 id를 만든다:
    img-{page_index}-{position}
"""

from __future__ import annotations
import re

from ocr.image_payload import EXTENSION_ALIASES

# 파일 시스템 예약 문자 + 제어 문자 + 위키 링크를 깨는 문자(# ^ [ ])
_INVALID_CHARS_RE = re.compile(r'[<>:"/\\|?*#^\[\]\x00-\x1f\x7f]')
_WHITESPACE_RE = re.compile(r"\s+")
_IMAGE_EXTENSION_RE = re.compile(r"\.([A-Za-z0-9]+)\s*$")

# Windows에서 파일명으로 쓸 수 없는 이름
_RESERVED_NAMES = frozenset(
    ["CON", "PRN", "AUX", "NUL"]
    + [f"COM{i}" for i in range(1, 10)]
    + [f"LPT{i}" for i in range(1, 10)]
)

_MAX_NAME_LENGTH = 120


def sanitize_name(name: str, fallback: str = "untitled") -> str:
    """파일명으로 안전한 문자열을 만든다.

    - 공백 문자(탭, 줄바꿈 포함)의 연속 → 공백 하나
    - 나머지 금지 문자(제어 문자 포함) → "_"
    - 앞뒤 공백, 끝의 점/공백 제거
    - 결과가 비면 fallback
    """
    safe = _WHITESPACE_RE.sub(" ", name or "")
    safe = _INVALID_CHARS_RE.sub("_", safe).strip()
    safe = safe[:_MAX_NAME_LENGTH].rstrip(". ").strip()
    if not safe:
        return fallback
    if safe.split(".")[0].upper() in _RESERVED_NAMES:
        safe = f"_{safe}"
    return safe


def fallback_image_id(page_index: int, position: int) -> str:
    """빈 id를 대신할 id. 페이지 번호 + 페이지 내 위치 (0부터)."""
    return f"img-{page_index}-{position}"


def strip_image_extension(image_id: str) -> str:
    """알려진 이미지 확장자를 떼어 낸다. 예: "img-0.jpeg" → "img-0".

    확장자는 저장할 때 실제 형식으로 다시 붙이므로 id의 확장자는 버린다.
    """
    match = _IMAGE_EXTENSION_RE.search(image_id)
    if match and match.group(1).lower() in EXTENSION_ALIASES:
        return image_id[:match.start()]
    return image_id


def image_file_name(document_base: str, image_id: str, extension: str) -> str:
    """이미지 파일명: {문서명}_{이미지명}.{확장자}"""
    doc_part = sanitize_name(document_base, fallback="document")
    image_part = sanitize_name(strip_image_extension(image_id.strip()), fallback="image")
    return f"{doc_part}_{image_part}.{extension}"


def document_base_name(file_name: str) -> str:
    """원본 PDF 파일명 → 문서 기본 이름. 확장자 .pdf는 대소문자 무시하고 뗀다."""
    return re.sub(r"\.pdf$", "", file_name, flags=re.IGNORECASE)


def normalize_folder(path: str) -> str:
    """서고 상대 폴더 경로 정리. 앞뒤 "/" 와 빈 조각 제거, "\\" → "/"."""
    parts = [p.strip() for p in (path or "").replace("\\", "/").split("/")]
    return "/".join(p for p in parts if p)


def join_path(*parts: str) -> str:
    """서고 상대 경로를 "/"로 잇는다. 빈 조각은 건너뛴다."""
    return "/".join(p for p in (normalize_folder(part) for part in parts) if p)
