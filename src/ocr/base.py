"""OCR 결과 데이터 모델 + 에러 + OCR provider 추상 클래스.

OCR provider(Mistral 등)가 돌려준 결과는 타입이 없는 JSON이다.
이 모듈의 parse_ocr_result()가 경계에서 한 번 검증하여
OcrDocument로 바꾸고, 이후 파이프라인은 OcrDocument만 다룬다.

결과 데이터 모델:
  OcrImageRef: 페이지 안의 이미지 참조 하나 (id + payload)
  OcrPage: 페이지 하나 (index + markdown + 이미지 목록)
  OcrDocument: 페이지들의 모음 (입력 순서 그대로)

에러 계층:
  ConversionError
  ├── MalformedResultError — 페이지가 없는 등 구조가 잘못된 결과 (문서 단위 치명)
  ├── UnresolvableImageError — 이미지 하나를 디코딩할 수 없음 (이미지 단위, 흡수됨)
  └── UpstreamError — 업로드/서명/OCR 호출 실패 (문서 단위 치명)
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


# ─── 결과 데이터 모델 ──────────────────────────────────

@dataclass(frozen=True)
class OcrImageRef:
    """페이지 안의 이미지 참조 하나.

    image_id는 markdown 안의 ![alt](id) 마커가 가리키는 키다.
    페이지 간 고유하다는 보장도, 비어 있지 않다는 보장도 없다.
    payload는 data URL 또는 순수 base64 문자열 (비어 있거나 잘려 있을 수 있음).
    """

    image_id: str = ""
    payload: str = ""


@dataclass(frozen=True)
class OcrPage:
    """페이지 하나의 OCR 결과."""

    index: int                          # provider가 준 페이지 번호 (정렬 안 됨, 불연속 가능)
    markdown: str = ""
    images: tuple[OcrImageRef, ...] = ()


@dataclass(frozen=True)
class OcrDocument:
    """OCR 결과 전체. pages는 입력 순서 그대로 보존한다."""

    pages: tuple[OcrPage, ...] = ()
    model: str = ""

    def sorted_pages(self) -> list[OcrPage]:
        """index 오름차순. sorted()는 안정 정렬이므로 같은 index는 입력 순서를 유지한다."""
        return sorted(self.pages, key=lambda p: p.index)

    @property
    def image_count(self) -> int:
        return sum(len(p.images) for p in self.pages)


# ─── 에러 ──────────────────────────────────────────────

class ConversionError(Exception):
    """PDF → Markdown 변환 중 에러."""
    pass


class MalformedResultError(ConversionError):
    """OCR 결과의 구조가 잘못됨 (페이지 없음 등). 부분 출력 없이 중단한다."""
    pass


class UnresolvableImageError(ConversionError):
    """이미지 payload를 비어 있지 않은 바이트로 디코딩할 수 없음.

    reason: "empty" | "truncated" | "invalid-base64" | "empty-bytes"
    """

    def __init__(self, reason: str, image_id: str = ""):
        self.reason = reason
        self.image_id = image_id
        super().__init__(f"이미지를 해석할 수 없습니다 ({reason}): {image_id or '(id 없음)'}")


class UpstreamError(ConversionError):
    """OCR provider 호출 실패 (업로드, 서명 URL, OCR 처리).

    stage: "config" | "upload" | "sign" | "ocr"
    이 계층에서는 재시도하지 않는다. 재시도 여부는 호출자가 결정한다.
    """

    def __init__(self, message: str, stage: str = ""):
        self.stage = stage
        super().__init__(message)


# ─── 경계 검증 ─────────────────────────────────────────

# provider/SDK 버전에 따라 필드명이 다르다.
_MARKDOWN_FIELDS = ("markdown", "markdown_content", "markdownContent")
_PAYLOAD_FIELDS = ("image_base64", "imageBase64")


def _get(obj: Any, name: str, default: Any = None) -> Any:
    """dict 키 또는 객체 속성을 같은 방식으로 읽는다 (REST JSON과 SDK 응답 모두 지원)."""
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _first_string(obj: Any, names: tuple[str, ...]) -> str:
    for name in names:
        value = _get(obj, name)
        if isinstance(value, str):
            return value
    return ""


def parse_ocr_result(raw: Any) -> OcrDocument:
    """타입 없는 OCR 결과를 검증하여 OcrDocument로 변환한다.

    입력: dict (REST 응답 JSON) 또는 속성을 가진 객체 (SDK 응답)
    출력: OcrDocument — 페이지는 입력 순서 그대로

    에러: MalformedResultError
      - pages가 없거나 리스트가 아니거나 비어 있음
      - 페이지가 dict/객체가 아님
      - 페이지 index가 정수가 아님

    이미지 id/payload가 없거나 문자열이 아니면 빈 문자열로 둔다.
    (빈 id는 대체 파일명으로, 빈 payload는 Unresolvable로 나중에 처리)
    """
    if raw is None:
        raise MalformedResultError("OCR 결과가 비어 있습니다.")

    pages_raw = _get(raw, "pages")
    if not isinstance(pages_raw, (list, tuple)):
        raise MalformedResultError("OCR 결과에 pages 목록이 없습니다.")
    if not pages_raw:
        raise MalformedResultError("OCR 결과에 페이지가 하나도 없습니다.")

    pages: list[OcrPage] = []
    for position, page_raw in enumerate(pages_raw):
        if page_raw is None or isinstance(page_raw, (str, bytes, int, float, list)):
            raise MalformedResultError(
                f"페이지 {position}번째 항목의 형식이 올바르지 않습니다: {type(page_raw).__name__}"
            )

        index = _get(page_raw, "index")
        # bool은 int의 하위 클래스지만 페이지 번호로 인정하지 않는다
        if isinstance(index, bool) or not isinstance(index, int):
            raise MalformedResultError(
                f"페이지 {position}번째 항목의 index가 정수가 아닙니다: {index!r}"
            )

        images_raw = _get(page_raw, "images") or []
        if not isinstance(images_raw, (list, tuple)):
            raise MalformedResultError(
                f"페이지 index={index}의 images가 목록이 아닙니다."
            )

        images = tuple(
            OcrImageRef(
                image_id=_first_string(img, ("id",)),
                payload=_first_string(img, _PAYLOAD_FIELDS),
            )
            for img in images_raw
            if img is not None
        )
        pages.append(OcrPage(
            index=index,
            markdown=_first_string(page_raw, _MARKDOWN_FIELDS),
            images=images,
        ))

    model = _get(raw, "model", "")
    return OcrDocument(pages=tuple(pages), model=model if isinstance(model, str) else "")


# ─── 추상 클래스 ───────────────────────────────────────

class BaseOcrProvider(ABC):
    """OCR provider 추상 클래스.

    모든 provider는 이 클래스를 상속하고:
    1. 클래스 속성(provider_id, display_name, requires_network) 정의
    2. is_available() 구현 — API 키 등 사용 조건 확인
    3. recognize_pdf() 구현 — PDF 바이트를 받아 타입 없는 OCR 결과 반환

    recognize_pdf()의 결과는 검증 전 상태다.
    파이프라인이 parse_ocr_result()로 검증한다.
    """

    provider_id: str = ""
    display_name: str = ""
    requires_network: bool = True

    @abstractmethod
    def is_available(self) -> bool:
        """provider를 호출할 수 있는 상태인지 확인한다."""
        raise NotImplementedError

    @abstractmethod
    async def recognize_pdf(self, file_name: str, content: bytes) -> Any:
        """PDF를 OCR하여 pages 구조를 가진 결과를 반환한다.

        입력:
          file_name: 원본 파일명 (업로드 시 사용, 예: "report.pdf")
          content: PDF 바이트

        출력: pages[].index / markdown / images[].id / image_base64 를 가진 결과

        에러:
          UpstreamError — 업로드, 서명 URL, OCR 처리 중 하나라도 실패
        """
        raise NotImplementedError

    def get_info(self) -> dict:
        """provider 정보를 딕셔너리로 반환. API 응답용."""
        return {
            "provider_id": self.provider_id,
            "display_name": self.display_name,
            "requires_network": self.requires_network,
            "available": self.is_available(),
        }
