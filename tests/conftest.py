"""테스트 공용 fixture.

memory_storage: 메모리 안의 서고 (BaseStorage 구현)
    인덱스와 실제 내용을 따로 들고 있어서, 외부 변경으로 둘이 어긋난 상황을 만들 수 있다.
fake_provider: 미리 정한 응답을 돌려주는 OCR provider
"""

from __future__ import annotations

import asyncio
import base64
import io
from typing import Any, Callable, Optional

import pytest
from PIL import Image

from core.storage import BaseStorage, EntryExistsError, EntryKind, StorageEntry, StorageError
from ocr.base import BaseOcrProvider


class MemoryStorage(BaseStorage):
    """메모리 서고.

    folders / files: 실제 내용
    index: lookup()/list_files()가 보는 스냅샷 (쓰기 때 같이 갱신)
    fail_writes: 이 경로들은 write_binary가 StorageError
    """

    def __init__(self):
        self.folders: set[str] = set()
        self.files: dict[str, bytes] = {}
        self.index: dict[str, StorageEntry] = {}
        self.fail_writes: set[str] = set()
        self.create_folder_calls: list[str] = []
        self.create_file_calls: list[str] = []

    def _parent_ok(self, path: str) -> bool:
        parent = path.rpartition("/")[0]
        return not parent or parent in self.folders

    def add_external_file(self, path: str, data: bytes = b"", indexed: bool = True) -> None:
        """다른 프로그램이 만든 파일. indexed=False면 인덱스에는 안 보인다."""
        self.files[path] = data
        if indexed:
            self.index[path] = StorageEntry(path, EntryKind.FILE)

    async def stat(self, path: str) -> Optional[StorageEntry]:
        await asyncio.sleep(0)
        if path in self.folders:
            return StorageEntry(path, EntryKind.FOLDER)
        if path in self.files:
            return StorageEntry(path, EntryKind.FILE)
        return None

    async def create_folder(self, path: str) -> None:
        await asyncio.sleep(0)
        self.create_folder_calls.append(path)
        if path in self.folders or path in self.files:
            raise EntryExistsError(path)
        if not self._parent_ok(path):
            raise StorageError(f"부모 폴더 없음: {path}")
        self.folders.add(path)
        self.index[path] = StorageEntry(path, EntryKind.FOLDER)

    async def create_file(self, path: str, text: str) -> None:
        await asyncio.sleep(0)
        self.create_file_calls.append(path)
        if path in self.files or path in self.folders:
            raise EntryExistsError(path)
        if not self._parent_ok(path):
            raise StorageError(f"부모 폴더 없음: {path}")
        self.files[path] = text.encode("utf-8")
        self.index[path] = StorageEntry(path, EntryKind.FILE)

    async def write_binary(self, path: str, data: bytes) -> None:
        await asyncio.sleep(0)
        if path in self.fail_writes:
            raise StorageError(f"쓰기 실패: {path}")
        if not self._parent_ok(path):
            raise StorageError(f"부모 폴더 없음: {path}")
        self.files[path] = data
        self.index[path] = StorageEntry(path, EntryKind.FILE)

    async def read_binary(self, path: str) -> bytes:
        await asyncio.sleep(0)
        if path not in self.files:
            raise StorageError(f"파일 없음: {path}")
        return self.files[path]

    def lookup(self, path: str) -> Optional[StorageEntry]:
        return self.index.get(path)

    def list_files(self, predicate: Optional[Callable[[StorageEntry], bool]] = None) -> list[StorageEntry]:
        files = [e for e in self.index.values() if not e.is_folder]
        if predicate is not None:
            files = [e for e in files if predicate(e)]
        return sorted(files, key=lambda e: e.path)

    def text(self, path: str) -> str:
        return self.files[path].decode("utf-8")


class FakeOcrProvider(BaseOcrProvider):
    """미리 정한 OCR 응답(또는 예외)을 돌려준다.

    responses: 파일명 → 응답 dict 또는 예외. 없는 파일명은 default.
    """

    provider_id = "fake"
    display_name = "Fake OCR"
    requires_network = False

    def __init__(self, default: Any = None, responses: Optional[dict] = None, delay: float = 0.0):
        self.default = default
        self.responses = responses or {}
        self.delay = delay
        self.calls: list[str] = []
        self.active = 0
        self.max_active = 0

    def is_available(self) -> bool:
        return True

    async def recognize_pdf(self, file_name: str, content: bytes) -> Any:
        self.calls.append(file_name)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            response = self.responses.get(file_name, self.default)
            if isinstance(response, Exception):
                raise response
            return response
        finally:
            self.active -= 1


def make_image_bytes(fmt: str = "PNG", size=(4, 3), color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


def make_data_url(fmt: str = "PNG") -> str:
    mime = {"PNG": "image/png", "JPEG": "image/jpeg"}[fmt]
    return f"data:{mime};base64," + base64.b64encode(make_image_bytes(fmt)).decode("ascii")


@pytest.fixture
def memory_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def fake_provider_factory():
    return FakeOcrProvider


@pytest.fixture
def png_data_url() -> str:
    return make_data_url("PNG")


@pytest.fixture
def png_bytes() -> bytes:
    return make_image_bytes("PNG")
