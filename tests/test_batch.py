"""일괄 변환 워커 풀 테스트."""

import asyncio
from collections import Counter

import pytest

from core.batch import convert_vault_pdfs, list_vault_pdfs, run_batch
from core.config import ConverterConfig
from core.converter import OutcomeStatus, PdfConverter
from core.storage import DocumentAlreadyExistsError
from ocr.base import UpstreamError


class TestRunBatch:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("count,limit", [(0, 3), (1, 3), (5, 1), (7, 3), (3, 10)])
    async def test_every_item_once(self, count, limit):
        seen = Counter()
        active = 0
        peak = 0

        async def handler(item, outcome):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            seen[item] += 1
            await asyncio.sleep(0.01)
            active -= 1
            return outcome

        items = [f"doc{i}.pdf" for i in range(count)]
        summary = await run_batch(items, handler, limit)

        assert summary.total == count
        assert summary.succeeded + summary.failed == count
        assert summary.succeeded == count
        assert seen == Counter(items)
        assert peak <= limit
        assert len(summary.outcomes) == count

    @pytest.mark.asyncio
    async def test_limit_reached(self):
        """항목이 충분하면 한도만큼 동시에 돈다."""
        active = 0
        peak = 0

        async def handler(item, outcome):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.02)
            active -= 1

        await run_batch(list(range(6)), handler, 3)
        assert peak == 3

    @pytest.mark.asyncio
    async def test_failures_contained(self):
        async def handler(item, outcome):
            await asyncio.sleep(0)
            if item == "bad.pdf":
                raise UpstreamError("503", stage="ocr")
            if item == "exists.pdf":
                raise DocumentAlreadyExistsError("exists.md")
            return outcome

        items = ["a.pdf", "bad.pdf", "b.pdf", "exists.pdf", "c.pdf"]
        reported = []
        summary = await run_batch(items, handler, 2, on_outcome=reported.append)

        assert summary.succeeded == 3
        assert summary.failed == 2
        statuses = {o.source_name: o.status for o in summary.outcomes}
        assert statuses["bad.pdf"] == OutcomeStatus.FAILED
        assert statuses["exists.pdf"] == OutcomeStatus.ALREADY_EXISTS
        assert statuses["a.pdf"] == OutcomeStatus.DONE
        assert len(reported) == 5

    @pytest.mark.asyncio
    async def test_callback_error_does_not_stop_workers(self):
        """on_outcome가 예외를 던져도 모든 항목이 처리되고 합계가 맞는다."""
        handled = []

        async def handler(item, outcome):
            await asyncio.sleep(0.01)
            handled.append(item)

        def broken_callback(outcome):
            raise RuntimeError("표시 실패")

        items = [f"doc{i}.pdf" for i in range(5)]
        summary = await run_batch(items, handler, 2, on_outcome=broken_callback)
        assert sorted(handled) == items
        assert summary.succeeded == 5
        assert summary.failed == 0
        assert len(summary.outcomes) == 5

    @pytest.mark.asyncio
    async def test_invalid_limit(self):
        async def handler(item, outcome):
            return outcome

        with pytest.raises(ValueError):
            await run_batch(["a"], handler, 0)

    @pytest.mark.asyncio
    async def test_summary_dict(self):
        async def handler(item, outcome):
            return outcome

        summary = await run_batch(["a.pdf"], handler, 1, source_name=lambda p: p.upper())
        data = summary.to_summary()
        assert data["total"] == 1
        assert data["outcomes"][0]["source"] == "A.PDF"


class TestVaultPdfs:
    def test_generated_flag(self, memory_storage):
        memory_storage.add_external_file("in/a.pdf")
        memory_storage.add_external_file("in/b.PDF")
        memory_storage.add_external_file("in/c:d.pdf")
        memory_storage.add_external_file("notes/a.md")
        memory_storage.add_external_file("c_d.md")

        result = {p.name: p.generated for p in list_vault_pdfs(memory_storage)}
        assert result == {"a.pdf": True, "b.PDF": False, "c:d.pdf": True}

    @pytest.mark.asyncio
    async def test_convert_pending_only(self, memory_storage, fake_provider_factory):
        memory_storage.folders.add("in")
        for name in ("a.pdf", "b.pdf", "c.pdf"):
            memory_storage.add_external_file(f"in/{name}", b"%PDF")
        memory_storage.add_external_file("a.md", b"old")

        provider = fake_provider_factory(
            default={"pages": [{"index": 0, "markdown": "본문"}]},
            responses={"c.pdf": UpstreamError("실패", stage="ocr")},
            delay=0.01,
        )
        converter = PdfConverter(provider, memory_storage, ConverterConfig(concurrency_limit=2))
        summary = await convert_vault_pdfs(converter)

        assert sorted(provider.calls) == ["b.pdf", "c.pdf"]
        assert provider.max_active <= 2
        assert summary.total == 2
        assert summary.succeeded == 1
        assert summary.failed == 1
        assert memory_storage.text("b.md") == "본문\n\n"
        assert "c.md" not in memory_storage.files

    @pytest.mark.asyncio
    async def test_explicit_paths_report_existing(self, memory_storage, fake_provider_factory):
        memory_storage.add_external_file("a.pdf", b"%PDF")
        memory_storage.add_external_file("a.md", b"old")
        provider = fake_provider_factory(default={"pages": [{"index": 0}]})
        converter = PdfConverter(provider, memory_storage, ConverterConfig())

        summary = await convert_vault_pdfs(converter, paths=["a.pdf"], concurrency_limit=4)
        assert summary.failed == 1
        assert summary.outcomes[0].status == OutcomeStatus.ALREADY_EXISTS
        assert provider.calls == []
