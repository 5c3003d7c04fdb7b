"""페이지 조립기 테스트."""

import base64
import itertools

import pytest

from core.assembler import PAGE_SEPARATOR, PageAssembler
from core.storage import StorageCoordinator
from ocr.base import MalformedResultError, OcrDocument, OcrImageRef, OcrPage

IMAGES = "pdf-mistral-images"

# index가 띄엄띄엄이고 같은 index가 있는 페이지 묶음
MIXED_PAGES = (
    OcrPage(index=5, markdown="끝"),
    OcrPage(index=0, markdown="첫째-가"),
    OcrPage(index=1, markdown="둘째"),
    OcrPage(index=0, markdown="첫째-나"),
)


@pytest.fixture
def assembler(memory_storage):
    memory_storage.folders.add(IMAGES)
    return PageAssembler(StorageCoordinator(memory_storage), IMAGES)


class TestAssemble:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("pages", list(itertools.permutations(MIXED_PAGES)))
    async def test_pages_in_index_order(self, assembler, pages):
        """어떤 입력 순서든 index 오름차순, 같은 index는 입력 순서."""
        result = await assembler.assemble(OcrDocument(pages=pages), "doc")
        expected = [p.markdown for index in (0, 1, 5) for p in pages if p.index == index]
        assert result.markdown == "".join(m + PAGE_SEPARATOR for m in expected)
        assert result.page_count == len(MIXED_PAGES)

    @pytest.mark.asyncio
    async def test_same_index_keeps_input_order(self, assembler):
        doc = OcrDocument(pages=(
            OcrPage(index=1, markdown="B"),
            OcrPage(index=0, markdown="A1"),
            OcrPage(index=0, markdown="A2"),
        ))
        result = await assembler.assemble(doc, "doc")
        assert result.markdown == "A1\n\nA2\n\nB\n\n"

    @pytest.mark.asyncio
    async def test_every_page_followed_by_separator(self, assembler):
        doc = OcrDocument(pages=(OcrPage(index=0, markdown=""), OcrPage(index=1, markdown="끝")))
        result = await assembler.assemble(doc, "doc")
        assert result.markdown == PAGE_SEPARATOR + "끝" + PAGE_SEPARATOR

    @pytest.mark.asyncio
    async def test_no_pages(self, assembler):
        with pytest.raises(MalformedResultError):
            await assembler.assemble(OcrDocument(pages=()), "doc")

    @pytest.mark.asyncio
    async def test_image_stored_and_marker_rewritten(self, assembler, memory_storage, png_data_url, png_bytes):
        page = OcrPage(
            index=0,
            markdown="그림: ![img-0.jpeg](img-0.jpeg)",
            images=(OcrImageRef("img-0.jpeg", png_data_url),),
        )
        result = await assembler.assemble(OcrDocument(pages=(page,)), "보고서")

        path = f"{IMAGES}/보고서_img-0.png"
        assert memory_storage.files[path] == png_bytes
        assert result.markdown == f"그림: ![[{path}]]\n\n"
        assert [img.path for img in result.images] == [path]
        assert result.images[0].extension == "png"
        assert result.skipped == []

    @pytest.mark.asyncio
    async def test_truncated_payload_removes_marker(self, assembler, memory_storage):
        page = OcrPage(
            index=0,
            markdown="앞 ![x](img-0.jpeg) 뒤",
            images=(OcrImageRef("img-0.jpeg", "/9j/4AAQSkZJRg..."),),
        )
        result = await assembler.assemble(OcrDocument(pages=(page,)), "doc")
        assert result.markdown == "앞  뒤\n\n"
        assert memory_storage.files == {}
        assert [(s.image_id, s.reason) for s in result.skipped] == [("img-0.jpeg", "truncated")]

    @pytest.mark.asyncio
    async def test_bad_image_does_not_stop_others(self, assembler, memory_storage, png_data_url):
        page = OcrPage(
            index=0,
            markdown="![a](img-0.jpeg)\n![b](img-1.jpeg)",
            images=(
                OcrImageRef("img-0.jpeg", "@@@"),
                OcrImageRef("img-1.jpeg", png_data_url),
            ),
        )
        result = await assembler.assemble(OcrDocument(pages=(page,)), "doc")
        assert result.markdown == f"\n![[{IMAGES}/doc_img-1.png]]\n\n"
        assert len(result.images) == 1
        assert result.skipped[0].reason == "invalid-base64"

    @pytest.mark.asyncio
    async def test_write_failure_removes_marker(self, assembler, memory_storage, png_data_url):
        memory_storage.fail_writes.add(f"{IMAGES}/doc_img-0.png")
        page = OcrPage(
            index=0,
            markdown="![a](img-0.jpeg)",
            images=(OcrImageRef("img-0.jpeg", png_data_url),),
        )
        result = await assembler.assemble(OcrDocument(pages=(page,)), "doc")
        assert result.markdown == "\n\n"
        assert result.skipped[0].reason == "write-failed"
        assert result.images == []

    @pytest.mark.asyncio
    async def test_blank_ids_get_distinct_files(self, assembler, memory_storage, png_data_url):
        page = OcrPage(
            index=3,
            markdown="본문",
            images=(OcrImageRef("", png_data_url), OcrImageRef("  ", png_data_url)),
        )
        result = await assembler.assemble(OcrDocument(pages=(page,)), "doc")
        paths = [img.path for img in result.images]
        assert paths == [f"{IMAGES}/doc_img-3-0.png", f"{IMAGES}/doc_img-3-1.png"]
        assert all(p in memory_storage.files for p in paths)
        # 빈 id는 마커를 특정할 수 없으므로 본문은 그대로
        assert result.markdown == "본문\n\n"

    @pytest.mark.asyncio
    async def test_same_id_on_two_pages(self, assembler, memory_storage, png_data_url):
        pages = (
            OcrPage(0, "![a](img-0.jpeg)", (OcrImageRef("img-0.jpeg", png_data_url),)),
            OcrPage(1, "![b](img-0.jpeg)", (OcrImageRef("img-0.jpeg", png_data_url),)),
        )
        result = await assembler.assemble(OcrDocument(pages=pages), "doc")
        assert [img.path for img in result.images] == [
            f"{IMAGES}/doc_img-0.png",
            f"{IMAGES}/doc_img-1-0.png",
        ]
        assert result.markdown == (
            f"![[{IMAGES}/doc_img-0.png]]\n\n![[{IMAGES}/doc_img-1-0.png]]\n\n"
        )

    @pytest.mark.asyncio
    async def test_extension_from_sniffing(self, assembler, memory_storage, png_bytes):
        raw = base64.b64encode(png_bytes).decode("ascii")
        page = OcrPage(0, "![a](figure)", (OcrImageRef("figure", raw),))
        result = await assembler.assemble(OcrDocument(pages=(page,)), "doc")
        assert result.images[0].path == f"{IMAGES}/doc_figure.png"

    @pytest.mark.asyncio
    async def test_summary(self, assembler, png_data_url):
        page = OcrPage(
            0, "![a](a.png) ![b](b.png)",
            (OcrImageRef("a.png", png_data_url), OcrImageRef("b.png", "")),
        )
        result = await assembler.assemble(OcrDocument(pages=(page,)), "doc")
        summary = result.to_summary()
        assert summary["images_written"] == 1
        assert summary["images_skipped"] == 1
        assert summary["skipped"][0] == {"image_id": "b.png", "page_index": 0, "reason": "empty"}

    @pytest.mark.asyncio
    async def test_oversized_image_header_does_not_abort(self, assembler, memory_storage, png_data_url):
        """Pillow가 거부하는 크기의 이미지도 "bin"으로 저장되고 문서는 계속 조립된다."""
        huge_ppm = b"P6 100000 100000 255\n" + b"\0" * 64
        page = OcrPage(
            0, "![a](figure) ![b](img-1.jpeg)",
            (
                OcrImageRef("figure", base64.b64encode(huge_ppm).decode("ascii")),
                OcrImageRef("img-1.jpeg", png_data_url),
            ),
        )
        result = await assembler.assemble(OcrDocument(pages=(page,)), "doc")
        assert memory_storage.files[f"{IMAGES}/doc_figure.bin"] == huge_ppm
        assert result.markdown == (
            f"![[{IMAGES}/doc_figure.bin]] ![[{IMAGES}/doc_img-1.png]]\n\n"
        )
