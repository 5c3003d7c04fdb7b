"""저장소 추상 계층 + 저장 조정자.

BaseStorage: 호스트 저장소 기능 (폴더/파일 생성, 바이너리 쓰기, 인덱스 조회).
    트랜잭션을 보장하지 않는다.
LocalVaultStorage: 로컬 디렉토리를 서고로 쓰는 구현.
StorageCoordinator: BaseStorage 위에 두 가지 정책을 얹는다.
    - ensure_folder(): 멱등 + 경쟁 허용 폴더 생성
    - create_document_if_absent(): 기존 문서를 절대 덮어쓰지 않는 생성

경로 규칙:
    모든 경로는 서고 루트 기준 상대 경로, 구분자는 "/".
    예: "pdf-mistral-images/보고서_img-0.png"

인덱스 vs 직접 확인:
    lookup()/list_files()는 인덱스(스냅샷)를 본다.
    stat()/exists()는 저장소를 직접 확인한다.
    외부 프로그램이 파일을 바꾸면 둘이 다를 수 있으므로,
    문서 존재 여부는 두 방법 모두로 확인한다.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Callable, Optional

from core.naming import normalize_folder
from ocr.base import ConversionError

logger = logging.getLogger(__name__)


# ─── 에러 ──────────────────────────────────────────────

class StorageError(Exception):
    """저장소 작업 실패."""
    pass


class EntryExistsError(StorageError):
    """생성하려는 항목이 이미 있음 (BaseStorage.create_* 가 던짐)."""
    pass


class PathConflictError(StorageError):
    """폴더가 있어야 할 자리에 파일이 있음. 해당 문서 변환은 중단된다."""
    pass


class DocumentAlreadyExistsError(StorageError, ConversionError):
    """출력 문서가 이미 있음. 정상적인 결과이며 아무것도 덮어쓰지 않는다."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(
            f"문서가 이미 존재합니다: {path}\n"
            "→ 해결: 기존 문서를 옮기거나 지운 뒤 다시 변환하세요."
        )


# ─── 저장소 항목 ───────────────────────────────────────

class EntryKind(str, Enum):
    FILE = "file"
    FOLDER = "folder"


@dataclass(frozen=True)
class StorageEntry:
    """저장소의 파일 또는 폴더 하나."""

    path: str
    kind: EntryKind

    @property
    def name(self) -> str:
        return PurePosixPath(self.path).name

    @property
    def basename(self) -> str:
        """확장자를 뗀 이름. 예: "a/보고서.pdf" → "보고서"."""
        return PurePosixPath(self.path).stem

    @property
    def extension(self) -> str:
        return PurePosixPath(self.path).suffix.lstrip(".").lower()

    @property
    def is_folder(self) -> bool:
        return self.kind == EntryKind.FOLDER


# ─── 추상 클래스 ───────────────────────────────────────

class BaseStorage(ABC):
    """호스트 저장소 기능.

    I/O 메서드는 모두 async. 호출 지점마다 다른 작업으로 전환될 수 있다.
    인덱스 메서드(lookup, list_files)는 메모리 조회라 동기.
    """

    @abstractmethod
    async def stat(self, path: str) -> Optional[StorageEntry]:
        """저장소를 직접 확인한다. 없으면 None."""
        raise NotImplementedError

    async def exists(self, path: str) -> bool:
        return await self.stat(path) is not None

    @abstractmethod
    async def create_folder(self, path: str) -> None:
        """폴더 하나를 만든다 (부모는 있어야 함). 이미 있으면 EntryExistsError."""
        raise NotImplementedError

    @abstractmethod
    async def create_file(self, path: str, text: str) -> None:
        """새 텍스트 파일을 만든다. 이미 있으면 EntryExistsError."""
        raise NotImplementedError

    @abstractmethod
    async def write_binary(self, path: str, data: bytes) -> None:
        """바이너리 파일을 쓴다. 있으면 덮어쓴다."""
        raise NotImplementedError

    @abstractmethod
    async def read_binary(self, path: str) -> bytes:
        raise NotImplementedError

    @abstractmethod
    def lookup(self, path: str) -> Optional[StorageEntry]:
        """인덱스에서 경로를 찾는다. 없으면 None."""
        raise NotImplementedError

    @abstractmethod
    def list_files(self, predicate: Optional[Callable[[StorageEntry], bool]] = None) -> list[StorageEntry]:
        """인덱스의 파일 목록 (폴더 제외). predicate로 거른다."""
        raise NotImplementedError


# ─── 로컬 디렉토리 구현 ────────────────────────────────

class LocalVaultStorage(BaseStorage):
    """로컬 디렉토리를 서고로 쓰는 저장소.

    인덱스는 생성 시점의 스냅샷 + 이 인스턴스를 통한 쓰기만 반영한다.
    외부에서 파일을 만들거나 지우면 refresh_index() 전까지 인덱스와 디스크가 다르다.

    블로킹 파일 I/O는 asyncio.to_thread로 실행한다.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()
        if not self.root.is_dir():
            raise StorageError(
                f"서고 디렉토리를 찾을 수 없습니다: {self.root}\n"
                "→ 해결: 존재하는 디렉토리 경로를 지정하세요."
            )
        self._index: dict[str, StorageEntry] = {}
        self.refresh_index()

    def refresh_index(self) -> None:
        """디스크를 다시 훑어 인덱스를 만든다. 숨김 항목(.으로 시작)은 제외."""
        index: dict[str, StorageEntry] = {}
        for p in self.root.rglob("*"):
            rel = p.relative_to(self.root)
            if any(part.startswith(".") for part in rel.parts):
                continue
            key = rel.as_posix()
            kind = EntryKind.FOLDER if p.is_dir() else EntryKind.FILE
            index[key] = StorageEntry(path=key, kind=kind)
        self._index = index
        logger.debug(f"서고 인덱스 갱신: {self.root} — {len(index)}개 항목")

    def _resolve(self, path: str) -> Path:
        """서고 상대 경로 → 절대 경로. 서고 밖으로 나가는 경로는 거부한다."""
        rel = normalize_folder(path)
        if not rel:
            return self.root
        full = (self.root / rel).resolve()
        if full != self.root and self.root not in full.parents:
            raise StorageError(f"서고 밖의 경로입니다: {path}")
        return full

    def _remember(self, path: str, kind: EntryKind) -> None:
        key = normalize_folder(path)
        self._index[key] = StorageEntry(path=key, kind=kind)

    async def stat(self, path: str) -> Optional[StorageEntry]:
        full = self._resolve(path)

        def _probe() -> Optional[EntryKind]:
            if full.is_dir():
                return EntryKind.FOLDER
            if full.exists():
                return EntryKind.FILE
            return None

        kind = await asyncio.to_thread(_probe)
        if kind is None:
            return None
        return StorageEntry(path=normalize_folder(path), kind=kind)

    async def create_folder(self, path: str) -> None:
        full = self._resolve(path)
        try:
            await asyncio.to_thread(full.mkdir)
        except FileExistsError as e:
            raise EntryExistsError(f"이미 존재합니다: {path}") from e
        except OSError as e:
            raise StorageError(f"폴더 생성 실패: {path} — {e}") from e
        self._remember(path, EntryKind.FOLDER)

    async def create_file(self, path: str, text: str) -> None:
        full = self._resolve(path)

        def _create() -> None:
            # "x" 모드: 파일이 있으면 FileExistsError (생성과 확인이 한 번의 시스템 호출)
            with open(full, "x", encoding="utf-8") as f:
                f.write(text)

        try:
            await asyncio.to_thread(_create)
        except FileExistsError as e:
            raise EntryExistsError(f"이미 존재합니다: {path}") from e
        except OSError as e:
            raise StorageError(f"파일 생성 실패: {path} — {e}") from e
        self._remember(path, EntryKind.FILE)

    async def write_binary(self, path: str, data: bytes) -> None:
        full = self._resolve(path)
        try:
            await asyncio.to_thread(full.write_bytes, data)
        except OSError as e:
            raise StorageError(f"파일 쓰기 실패: {path} — {e}") from e
        self._remember(path, EntryKind.FILE)

    async def read_binary(self, path: str) -> bytes:
        full = self._resolve(path)
        try:
            return await asyncio.to_thread(full.read_bytes)
        except OSError as e:
            raise StorageError(f"파일 읽기 실패: {path} — {e}") from e

    def lookup(self, path: str) -> Optional[StorageEntry]:
        return self._index.get(normalize_folder(path))

    def list_files(self, predicate: Optional[Callable[[StorageEntry], bool]] = None) -> list[StorageEntry]:
        files = [e for e in self._index.values() if e.kind == EntryKind.FILE]
        if predicate is not None:
            files = [e for e in files if predicate(e)]
        return sorted(files, key=lambda e: e.path)


# ─── 저장 조정자 ───────────────────────────────────────

class StorageCoordinator:
    """BaseStorage 위의 저장 정책.

    주요 메서드:
      ensure_folder(): 경로의 모든 폴더를 순서대로 만든다 (이미 있으면 성공)
      document_exists(): 인덱스 + 직접 확인
      create_document_if_absent(): 없을 때만 문서 생성, 있으면 DocumentAlreadyExistsError
      write_image(): 이미지 바이너리 쓰기 (덮어쓰기 허용)
    """

    def __init__(self, storage: BaseStorage):
        self.storage = storage

    async def ensure_folder(self, path: str) -> None:
        """경로의 각 조각을 앞에서부터 확인하고 없으면 만든다.

        에러: PathConflictError — 조각 중 하나가 파일로 존재

        다른 작업이 같은 폴더를 먼저 만들었으면 (EntryExistsError)
        다시 확인해서 폴더이면 성공으로 본다.
        """
        clean = normalize_folder(path)
        if not clean:
            return

        segments = clean.split("/")
        for i in range(len(segments)):
            current = "/".join(segments[: i + 1])
            entry = await self.storage.stat(current)
            if entry is None:
                try:
                    await self.storage.create_folder(current)
                    logger.info(f"폴더 생성: {current}")
                    continue
                except EntryExistsError:
                    # 경쟁: 다른 작업이 먼저 만들었다
                    entry = await self.storage.stat(current)
                    if entry is None:
                        raise PathConflictError(f"폴더를 만들 수 없습니다: {current}")
            if not entry.is_folder:
                raise PathConflictError(
                    f"폴더 경로에 파일이 있습니다: {current}\n"
                    "→ 해결: 파일 이름을 바꾸거나 다른 출력 폴더를 설정하세요."
                )

    async def document_exists(self, path: str) -> bool:
        """인덱스와 직접 확인 중 하나라도 있다고 하면 True."""
        if self.storage.lookup(path) is not None:
            return True
        return await self.storage.exists(path)

    async def create_document_if_absent(self, path: str, content: str) -> None:
        """문서를 새로 만든다. 이미 있으면 쓰지 않고 DocumentAlreadyExistsError.

        확인 후 쓰기 사이의 경쟁은 create_file()의 EntryExistsError로 막는다.
        """
        if await self.document_exists(path):
            raise DocumentAlreadyExistsError(path)
        try:
            await self.storage.create_file(path, content)
        except EntryExistsError as e:
            raise DocumentAlreadyExistsError(path) from e
        logger.info(f"문서 저장: {path} ({len(content)}자)")

    async def write_image(self, path: str, data: bytes) -> None:
        """이미지를 쓴다. 같은 이름은 같은 입력이므로 덮어써도 된다."""
        await self.storage.write_binary(path, data)
        logger.debug(f"이미지 저장: {path} ({len(data)} bytes)")
