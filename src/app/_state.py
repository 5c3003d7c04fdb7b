"""라우터 공통 상태 및 헬퍼.

모든 라우터가 이 모듈에서 get_vault_path(), get_converter() 등을 import한다.
"""

import logging
from pathlib import Path

from core.config import ConverterConfig, load_config
from core.converter import PdfConverter
from core.storage import LocalVaultStorage
from ocr.base import BaseOcrProvider
from ocr.mistral_provider import MistralOcrProvider

logger = logging.getLogger(__name__)

# ── 전역 상태 ─────────────────────────────────

_vault_path: Path | None = None
_storage: LocalVaultStorage | None = None
_config: ConverterConfig | None = None
_provider: BaseOcrProvider | None = None


# ── 상태 접근 함수 ───────────────────────────

def get_vault_path() -> Path | None:
    """현재 서고 경로를 반환한다."""
    return _vault_path


def configure_vault(vault_path: str | Path, provider: BaseOcrProvider | None = None):
    """서고 경로를 설정하고 저장소/설정을 새로 연다.

    provider를 넘기면 그것을 쓴다 (테스트용). 없으면 설정의 Mistral 키로 만든다.
    """
    global _vault_path, _storage, _config, _provider
    resolved = Path(vault_path).resolve()
    _storage = LocalVaultStorage(resolved)
    _config = load_config(resolved)
    _provider = provider
    _vault_path = resolved
    logger.info(f"서고 설정: {resolved}")


def get_storage() -> LocalVaultStorage | None:
    return _storage


def get_config() -> ConverterConfig | None:
    return _config


def set_config(config: ConverterConfig) -> None:
    """설정을 바꾼다. provider가 설정에서 만들어진 것이면 다음 호출 때 다시 만든다."""
    global _config
    _config = config


def get_converter() -> PdfConverter | None:
    """현재 서고의 변환기. 서고가 설정되지 않았으면 None.

    서고 인덱스는 외부 변경을 반영하기 위해 호출할 때마다 갱신한다.
    """
    if _storage is None or _config is None:
        return None
    _storage.refresh_index()
    provider = _provider or MistralOcrProvider(
        _config.mistral_api_key,
        model=_config.ocr_model,
        base_url=_config.mistral_base_url,
    )
    return PdfConverter(provider, _storage, _config)
