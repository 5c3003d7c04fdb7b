"""페이지 조립기: OcrDocument → 하나의 Markdown 문서.

처리 순서:
  1. 페이지를 index 오름차순으로 정렬 (안정 정렬, 같은 index는 입력 순서)
  2. 페이지마다 이미지를 하나씩:
     payload 해석 → 파일명 결정 → 저장 → 마커를 ![[경로]]로 치환
     해석/저장 실패 → 마커 삭제 후 다음 이미지로 (문서는 계속)
  3. 페이지 markdown + 빈 줄을 이어 붙인다

이미지는 하나씩 디코딩하고 바로 저장한다 (전부 메모리에 들고 있지 않음).
문서 파일 쓰기는 여기서 하지 않는다 (converter가 마지막에 한 번).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from core.naming import fallback_image_id, image_file_name, join_path
from core.storage import StorageCoordinator, StorageError
from ocr.base import MalformedResultError, OcrDocument, OcrImageRef, OcrPage, UnresolvableImageError
from ocr.image_payload import resolve_image_payload
from ocr.rewriter import embed_link, rewrite_or_remove_marker

logger = logging.getLogger(__name__)

PAGE_SEPARATOR = "\n\n"


@dataclass
class StoredImage:
    """저장된 이미지 하나."""
    image_id: str
    page_index: int
    path: str
    extension: str
    size: int = 0


@dataclass
class SkippedImage:
    """저장하지 못하고 마커를 지운 이미지 하나."""
    image_id: str
    page_index: int
    reason: str


@dataclass
class AssembledDocument:
    """조립 결과. markdown은 아직 저장 전이다."""
    document_base: str
    markdown: str = ""
    page_count: int = 0
    images: list[StoredImage] = field(default_factory=list)
    skipped: list[SkippedImage] = field(default_factory=list)

    def to_summary(self) -> dict:
        """API 응답용 요약."""
        return {
            "document_base": self.document_base,
            "page_count": self.page_count,
            "images_written": len(self.images),
            "images_skipped": len(self.skipped),
            "images": [img.path for img in self.images],
            "skipped": [
                {"image_id": s.image_id, "page_index": s.page_index, "reason": s.reason}
                for s in self.skipped
            ],
        }


class PageAssembler:
    """페이지 조립기.

    입력:
      coordinator: 이미지를 저장할 StorageCoordinator
      images_folder: 이미지 폴더 (서고 상대, 이미 만들어져 있어야 함)
    """

    def __init__(self, coordinator: StorageCoordinator, images_folder: str):
        self.coordinator = coordinator
        self.images_folder = images_folder

    async def assemble(self, document: OcrDocument, document_base: str) -> AssembledDocument:
        """OCR 결과 전체를 하나의 Markdown으로 조립한다.

        에러: MalformedResultError — 페이지가 없음
        이미지 단위 실패는 에러로 올리지 않는다 (skipped에 기록).
        """
        if not document.pages:
            raise MalformedResultError("OCR 결과에 페이지가 하나도 없습니다.")

        result = AssembledDocument(document_base=document_base)
        # 문서 안에서 이미 쓴 파일명. 페이지가 달라도 같은 이름이면 대체 id로 바꾼다.
        used_names: set[str] = set()
        parts: list[str] = []

        for page in document.sorted_pages():
            markdown = page.markdown
            for position, image in enumerate(page.images):
                markdown = await self._place_image(
                    markdown, page, position, image, result, used_names,
                )
            parts.append(markdown + PAGE_SEPARATOR)
            result.page_count += 1

        result.markdown = "".join(parts)
        logger.info(
            f"문서 조립 완료: {document_base} — {result.page_count}페이지, "
            f"이미지 {len(result.images)}개 저장, {len(result.skipped)}개 제외"
        )
        return result

    async def _place_image(
        self,
        markdown: str,
        page: OcrPage,
        position: int,
        image: OcrImageRef,
        result: AssembledDocument,
        used_names: set[str],
    ) -> str:
        """이미지 하나를 저장하고 마커를 치환한 markdown을 반환한다."""
        marker_id = image.image_id

        try:
            resolved = resolve_image_payload(marker_id, image.payload)
        except UnresolvableImageError as e:
            logger.warning(f"이미지 건너뜀 (page {page.index}): {e}")
            result.skipped.append(SkippedImage(marker_id, page.index, e.reason))
            return rewrite_or_remove_marker(markdown, marker_id, None)

        file_name = self._unique_file_name(
            result.document_base, marker_id, page.index, position, resolved.extension, used_names,
        )
        path = join_path(self.images_folder, file_name)

        try:
            await self.coordinator.write_image(path, resolved.data)
        except StorageError as e:
            logger.warning(f"이미지 저장 실패 (page {page.index}): {path} — {e}")
            result.skipped.append(SkippedImage(marker_id, page.index, "write-failed"))
            return rewrite_or_remove_marker(markdown, marker_id, None)

        used_names.add(file_name)
        result.images.append(StoredImage(
            image_id=marker_id,
            page_index=page.index,
            path=path,
            extension=resolved.extension,
            size=resolved.size,
        ))
        # id가 비어 있으면 치환할 마커를 특정할 수 없다. 이미지만 저장되고 마커는 그대로 남는다.
        return rewrite_or_remove_marker(markdown, marker_id, embed_link(path))

    @staticmethod
    def _unique_file_name(
        document_base: str,
        image_id: str,
        page_index: int,
        position: int,
        extension: str,
        used_names: set[str],
    ) -> str:
        """문서 안에서 겹치지 않는 이미지 파일명.

        1. id가 있으면 {문서}_{id}.{ext}
        2. id가 비었거나 1이 이미 쓰였으면 {문서}_img-{page}-{pos}.{ext}
        3. 그것도 쓰였으면 뒤에 -2, -3 ...
        """
        fallback = fallback_image_id(page_index, position)
        name = image_file_name(document_base, image_id if image_id.strip() else fallback, extension)
        if name not in used_names:
            return name

        name = image_file_name(document_base, fallback, extension)
        counter = 2
        while name in used_names:
            name = image_file_name(document_base, f"{fallback}-{counter}", extension)
            counter += 1
        return name
