"""OCR 결과 처리 모듈.

OCR provider가 돌려준 페이지 구조를 다룬다.

  - base: OcrDocument 모델, 경계 검증(parse_ocr_result), 에러, provider 추상 클래스
  - image_payload: 이미지 payload(data URL / base64) → 바이트 + 확장자
  - rewriter: ![alt](id) 마커 → ![[path]] 치환 또는 삭제
  - mistral_provider: Mistral OCR API (업로드 → 서명 URL → OCR)

사용법:
    from ocr import MistralOcrProvider, parse_ocr_result

    provider = MistralOcrProvider(api_key)
    raw = await provider.recognize_pdf("report.pdf", pdf_bytes)
    document = parse_ocr_result(raw)
"""

from .base import BaseOcrProvider, OcrDocument, OcrImageRef, OcrPage, parse_ocr_result
from .base import ConversionError, MalformedResultError, UnresolvableImageError, UpstreamError
from .image_payload import ResolvedImage, resolve_image_payload
from .rewriter import embed_link, rewrite_or_remove_marker
from .mistral_provider import MistralOcrProvider

__all__ = [
    "BaseOcrProvider",
    "MistralOcrProvider",
    "OcrDocument",
    "OcrPage",
    "OcrImageRef",
    "parse_ocr_result",
    "ResolvedImage",
    "resolve_image_payload",
    "embed_link",
    "rewrite_or_remove_marker",
    "ConversionError",
    "MalformedResultError",
    "UnresolvableImageError",
    "UpstreamError",
]
