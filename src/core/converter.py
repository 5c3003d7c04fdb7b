"""PDF → Markdown 변환기 (문서 하나).

상태 전이:
    FETCHED → VALIDATED → ASSEMBLING → PERSISTING → DONE
    어느 단계에서든 실패하면 ABORTED (자동 재시도 없음)

처리 순서:
  0. 출력 문서가 이미 있으면 업로드 전에 중단 (DocumentAlreadyExistsError)
  1. provider로 OCR (업로드 → 서명 URL → OCR)          → FETCHED
  2. parse_ocr_result()로 구조 검증                    → VALIDATED
  3. 출력 폴더 확보, 페이지 조립 (이미지 저장 포함)      → ASSEMBLING
  4. 문서 파일 생성 (없을 때만, 딱 한 번)               → PERSISTING → DONE

문서 파일은 모든 이미지 처리가 끝난 뒤 한 번만 쓴다.
중간에 실패하면 문서 파일은 만들어지지 않는다.

사용법:
    storage = LocalVaultStorage("./my_vault")
    config = load_config(vault_root=Path("./my_vault"))
    provider = MistralOcrProvider(config.mistral_api_key)
    converter = PdfConverter(provider, storage, config)
    outcome = await converter.convert_file(Path("~/Downloads/report.pdf"))
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Awaitable, Callable, Optional

from core.assembler import AssembledDocument, PageAssembler
from core.config import ConverterConfig
from core.naming import document_base_name
from core.storage import BaseStorage, DocumentAlreadyExistsError, StorageCoordinator
from ocr.base import BaseOcrProvider, parse_ocr_result

logger = logging.getLogger(__name__)


class ConversionState(str, Enum):
    """문서 하나의 변환 진행 상태."""

    PENDING = "pending"
    FETCHED = "fetched"
    VALIDATED = "validated"
    ASSEMBLING = "assembling"
    PERSISTING = "persisting"
    DONE = "done"
    ABORTED = "aborted"


class OutcomeStatus(str, Enum):
    """사용자에게 보고하는 변환 결과."""

    DONE = "done"
    ALREADY_EXISTS = "already_exists"
    FAILED = "failed"


@dataclass
class ConversionOutcome:
    """문서 하나의 변환 결과."""

    source_name: str
    document_path: str = ""
    status: OutcomeStatus = OutcomeStatus.DONE
    state: ConversionState = ConversionState.PENDING
    error: str = ""
    assembled: Optional[AssembledDocument] = None
    elapsed_sec: float = 0.0
    history: list[ConversionState] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status == OutcomeStatus.DONE

    def to_summary(self) -> dict:
        """API 응답용 요약."""
        summary = {
            "source": self.source_name,
            "document_path": self.document_path,
            "status": self.status.value,
            "state": self.state.value,
            "error": self.error or None,
            "elapsed_sec": round(self.elapsed_sec, 2),
        }
        if self.assembled is not None:
            summary.update({
                "page_count": self.assembled.page_count,
                "images_written": len(self.assembled.images),
                "images_skipped": len(self.assembled.skipped),
            })
        return summary


class PdfConverter:
    """문서 하나를 변환하는 파이프라인.

    주요 메서드:
      convert(): PDF 바이트 → 서고에 Markdown + 이미지 (실패 시 예외)
      convert_file(): 외부 파일 경로에서 읽어서 convert()
      convert_vault_pdf(): 서고 안 PDF를 읽어서 convert()
      convert_reporting(): 위 작업을 실행하고 예외 대신 결과(ConversionOutcome)로 보고
    """

    def __init__(
        self,
        provider: BaseOcrProvider,
        storage: BaseStorage,
        config: ConverterConfig,
    ):
        self.provider = provider
        self.storage = storage
        self.config = config
        self.coordinator = StorageCoordinator(storage)

    def document_path_for(self, base_name: str) -> str:
        return self.config.document_path(base_name)

    async def convert(
        self,
        content: bytes,
        base_name: str,
        file_name: str,
        outcome: Optional[ConversionOutcome] = None,
    ) -> ConversionOutcome:
        """PDF 하나를 변환한다.

        입력:
          content: PDF 바이트
          base_name: 문서 기본 이름 (출력 파일명과 이미지 접두사)
          file_name: 원본 파일명 (업로드용)
          outcome: 진행 상태를 기록할 객체 (None이면 새로 만듦)

        출력: ConversionOutcome (status=DONE)

        에러 (outcome.state는 ABORTED):
          DocumentAlreadyExistsError — 출력 문서가 이미 있음
          UpstreamError — OCR provider 호출 실패
          MalformedResultError — OCR 결과에 페이지가 없음
          PathConflictError — 출력 폴더 자리에 파일이 있음
        """
        if outcome is None:
            outcome = ConversionOutcome(source_name=file_name)
        doc_path = self.document_path_for(base_name)
        outcome.document_path = doc_path
        start_time = time.time()

        try:
            # 업로드 비용을 아끼기 위해 OCR 전에 먼저 확인
            if await self.coordinator.document_exists(doc_path):
                raise DocumentAlreadyExistsError(doc_path)

            raw = await self.provider.recognize_pdf(file_name, content)
            self._advance(outcome, ConversionState.FETCHED)

            document = parse_ocr_result(raw)
            self._advance(outcome, ConversionState.VALIDATED)

            self._advance(outcome, ConversionState.ASSEMBLING)
            if self.config.document_folder:
                await self.coordinator.ensure_folder(self.config.document_folder)
            images_folder = self.config.images_folder
            await self.coordinator.ensure_folder(images_folder)
            assembler = PageAssembler(self.coordinator, images_folder)
            outcome.assembled = await assembler.assemble(document, base_name)

            self._advance(outcome, ConversionState.PERSISTING)
            await self.coordinator.create_document_if_absent(doc_path, outcome.assembled.markdown)
            self._advance(outcome, ConversionState.DONE)
        except Exception:
            outcome.history.append(ConversionState.ABORTED)
            outcome.state = ConversionState.ABORTED
            outcome.elapsed_sec = time.time() - start_time
            raise

        outcome.status = OutcomeStatus.DONE
        outcome.elapsed_sec = time.time() - start_time
        logger.info(f"변환 완료: {file_name} → {doc_path} ({outcome.elapsed_sec:.1f}초)")
        return outcome

    async def convert_file(self, path: str | Path, outcome: Optional[ConversionOutcome] = None) -> ConversionOutcome:
        """외부 PDF 파일을 변환한다. 문서 이름은 파일명에서 .pdf를 뗀 것."""
        path = Path(path).expanduser()
        content = await asyncio.to_thread(path.read_bytes)
        return await self.convert(content, document_base_name(path.name), path.name, outcome)

    async def convert_vault_pdf(self, vault_path: str, outcome: Optional[ConversionOutcome] = None) -> ConversionOutcome:
        """서고 안의 PDF를 변환한다."""
        name = PurePosixPath(vault_path).name
        content = await self.storage.read_binary(vault_path)
        return await self.convert(content, document_base_name(name), name, outcome)

    async def convert_reporting(
        self,
        source_name: str,
        run: Callable[[ConversionOutcome], Awaitable[ConversionOutcome]],
    ) -> ConversionOutcome:
        """변환을 실행하고 결과를 보고용 객체로 돌려준다. 예외를 밖으로 던지지 않는다.

        사용법:
            outcome = await converter.convert_reporting(
                "report.pdf", lambda o: converter.convert_file(path, o)
            )
        """
        outcome = ConversionOutcome(source_name=source_name)
        try:
            await run(outcome)
        except DocumentAlreadyExistsError as e:
            outcome.status = OutcomeStatus.ALREADY_EXISTS
            outcome.error = str(e)
            logger.info(f"변환 중단 (이미 존재): {source_name} → {e.path}")
        except Exception as e:
            outcome.status = OutcomeStatus.FAILED
            outcome.error = str(e)
            logger.error(f"변환 실패: {source_name} — {e}")
        return outcome

    @staticmethod
    def _advance(outcome: ConversionOutcome, state: ConversionState) -> None:
        outcome.state = state
        outcome.history.append(state)
        logger.debug(f"{outcome.source_name}: {state.value}")
