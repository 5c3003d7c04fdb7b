"""일괄 변환: 고정 크기 워커 풀.

공유 큐에 대기 문서를 넣고 N개의 워커가 비울 때까지 하나씩 꺼내 처리한다.
    워커: "다음 항목 꺼내기 → 변환 끝까지 실행 → 성공/실패 기록" 반복

  - 큐에서 꺼내는 것은 get_nowait() 한 번 (await 없음) → 두 워커가 같은 항목을 가져가지 않는다.
  - 항목 하나의 실패는 그 항목에서 끝난다. 다른 워커와 남은 항목은 계속 진행.
  - 문서 간 처리 순서는 정하지 않는다.
  - 성공 수 + 실패 수 = 전체 항목 수

사용법:
    summary = await run_batch(pdf_paths, converter.convert_vault_pdf, concurrency_limit=3)
    print(summary.succeeded, summary.failed)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from core.converter import ConversionOutcome, OutcomeStatus, PdfConverter
from core.naming import document_base_name, sanitize_name
from core.storage import BaseStorage, DocumentAlreadyExistsError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class BatchSummary:
    """일괄 변환 결과."""
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    outcomes: list[ConversionOutcome] = field(default_factory=list)

    def to_summary(self) -> dict:
        """API 응답용 요약."""
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "outcomes": [o.to_summary() for o in self.outcomes],
        }


async def run_batch(
    items: Sequence[T],
    handler: Callable[..., Awaitable[ConversionOutcome]],
    concurrency_limit: int,
    source_name: Callable[[T], str] = str,
    on_outcome: Optional[Callable[[ConversionOutcome], None]] = None,
) -> BatchSummary:
    """items를 concurrency_limit개의 워커로 처리한다.

    입력:
      items: 처리할 항목 (예: 서고 안 PDF 경로)
      handler: handler(item, outcome) — 변환 실행. 실패는 예외로 알린다.
      concurrency_limit: 동시 워커 수 (1 이상)
      source_name: 항목 → 보고용 이름
      on_outcome: 항목 하나가 끝날 때마다 호출 (진행 표시용)

    출력: BatchSummary
    """
    if concurrency_limit < 1:
        raise ValueError(f"concurrency_limit는 1 이상이어야 합니다: {concurrency_limit}")

    summary = BatchSummary(total=len(items))
    queue: asyncio.Queue = asyncio.Queue()
    for item in items:
        queue.put_nowait(item)

    async def _worker(worker_no: int) -> None:
        while True:
            try:
                item = queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            name = source_name(item)
            outcome = ConversionOutcome(source_name=name)
            try:
                await handler(item, outcome)
                outcome.status = OutcomeStatus.DONE
                summary.succeeded += 1
            except DocumentAlreadyExistsError as e:
                outcome.status = OutcomeStatus.ALREADY_EXISTS
                outcome.error = str(e)
                summary.failed += 1
                logger.info(f"[worker {worker_no}] 이미 존재: {name}")
            except Exception as e:
                outcome.status = OutcomeStatus.FAILED
                outcome.error = str(e)
                summary.failed += 1
                logger.error(f"[worker {worker_no}] 변환 실패: {name} — {e}")
            summary.outcomes.append(outcome)
            if on_outcome is not None:
                try:
                    on_outcome(outcome)
                except Exception as e:
                    # 진행 표시 실패는 변환 결과에 영향을 주지 않는다
                    logger.warning(f"[worker {worker_no}] on_outcome 호출 실패: {name} — {e}")

    worker_count = min(concurrency_limit, len(items))
    logger.info(f"일괄 변환 시작: {len(items)}개, 워커 {worker_count}개")
    await asyncio.gather(*(_worker(n) for n in range(1, worker_count + 1)))
    logger.info(
        f"일괄 변환 완료: 성공 {summary.succeeded}, 실패 {summary.failed} (전체 {summary.total})"
    )
    return summary


# ─── 서고 PDF 목록 ─────────────────────────────────────

@dataclass
class VaultPdf:
    """서고 안의 PDF 하나와 변환 여부."""
    path: str
    name: str
    generated: bool

    def to_dict(self) -> dict:
        return {"path": self.path, "name": self.name, "generated": self.generated}


def list_vault_pdfs(storage: BaseStorage) -> list[VaultPdf]:
    """서고 인덱스의 모든 PDF와 변환 여부.

    같은 이름의 .md가 서고 어디에든 있으면 "변환됨"으로 본다 (경로는 비교하지 않음).
    """
    markdown_names = {e.name for e in storage.list_files(lambda e: e.extension == "md")}
    pdfs = storage.list_files(lambda e: e.extension == "pdf")
    return [
        VaultPdf(
            path=e.path,
            name=e.name,
            generated=f"{sanitize_name(document_base_name(e.name), fallback='document')}.md" in markdown_names,
        )
        for e in pdfs
    ]


async def convert_vault_pdfs(
    converter: PdfConverter,
    paths: Optional[Sequence[str]] = None,
    concurrency_limit: Optional[int] = None,
    on_outcome: Optional[Callable[[ConversionOutcome], None]] = None,
) -> BatchSummary:
    """서고 안 PDF들을 일괄 변환한다.

    paths가 None이면 아직 변환되지 않은 모든 PDF.
    concurrency_limit가 None이면 설정값.
    """
    if paths is None:
        paths = [p.path for p in list_vault_pdfs(converter.storage) if not p.generated]
    limit = concurrency_limit or converter.config.concurrency_limit
    return await run_batch(
        list(paths),
        converter.convert_vault_pdf,
        limit,
        on_outcome=on_outcome,
    )
