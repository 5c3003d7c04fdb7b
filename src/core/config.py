"""변환 설정 관리.

설정 우선순위: 환경변수 → 서고 .env 파일 → 서고 설정 파일(JSON) → 기본값.

설정 파일: {서고}/.pdf-ocr-markdown/config.json
    서고마다 출력 폴더가 다를 수 있으므로 서고 안에 둔다.
    API 키는 JSON에 저장하지 않는다 (환경변수나 .env에만).

사용법:
    config = load_config(vault_root=Path("./my_vault"))
    config.images_folder        # "pdf-mistral-images"
    config.document_path("보고서")  # "보고서.md"
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

from core.naming import join_path, normalize_folder, sanitize_name

logger = logging.getLogger(__name__)

DEFAULT_IMAGES_FOLDER_SUBNAME = "pdf-mistral-images"
DEFAULT_CONCURRENCY_LIMIT = 3

CONFIG_DIR_NAME = ".pdf-ocr-markdown"
CONFIG_FILE_NAME = "config.json"

# 설정 키 → 환경변수명
ENV_NAMES = {
    "document_output_folder": "PDF_OCR_DOCUMENT_OUTPUT_FOLDER",
    "images_output_folder": "PDF_OCR_IMAGES_OUTPUT_FOLDER",
    "images_folder_subname": "PDF_OCR_IMAGES_FOLDER_SUBNAME",
    "concurrency_limit": "PDF_OCR_CONCURRENCY_LIMIT",
    "mistral_api_key": "MISTRAL_API_KEY",
    "ocr_model": "MISTRAL_OCR_MODEL",
    "mistral_base_url": "MISTRAL_BASE_URL",
}

# JSON 설정 파일에 저장하는 키 (비밀값 제외)
_PERSISTED_KEYS = (
    "document_output_folder",
    "images_output_folder",
    "images_folder_subname",
    "concurrency_limit",
    "ocr_model",
)


@dataclass(frozen=True)
class ConverterConfig:
    """변환 파이프라인 설정. 파이프라인 진입점에 값으로 전달한다.

    document_output_folder: Markdown 저장 폴더 (서고 상대, 빈 값 = 루트)
    images_output_folder: 이미지 기준 폴더 (서고 상대, 빈 값 = 루트)
    images_folder_subname: 기준 폴더 아래 만들 이미지 폴더 이름
    concurrency_limit: 일괄 변환 시 동시 작업 수 (1 이상)
    """

    document_output_folder: str = ""
    images_output_folder: str = ""
    images_folder_subname: str = DEFAULT_IMAGES_FOLDER_SUBNAME
    concurrency_limit: int = DEFAULT_CONCURRENCY_LIMIT
    mistral_api_key: str = field(default="", repr=False)
    ocr_model: str = "mistral-ocr-latest"
    mistral_base_url: str = "https://api.mistral.ai"

    def __post_init__(self):
        if isinstance(self.concurrency_limit, bool) or not isinstance(self.concurrency_limit, int):
            raise ValueError(f"concurrency_limit는 정수여야 합니다: {self.concurrency_limit!r}")
        if self.concurrency_limit < 1:
            raise ValueError(f"concurrency_limit는 1 이상이어야 합니다: {self.concurrency_limit}")

    @property
    def images_folder(self) -> str:
        """이미지를 저장할 서고 상대 폴더.

        기준 폴더와 이름이 모두 있으면 "기준/이름", 기준만 있으면 기준,
        둘 다 없으면 기본 이름. 이름이 비어 있으면 기본 이름을 쓴다.
        """
        base = normalize_folder(self.images_output_folder)
        subname = normalize_folder(self.images_folder_subname) or DEFAULT_IMAGES_FOLDER_SUBNAME
        return join_path(base, subname) if base else subname

    @property
    def document_folder(self) -> str:
        return normalize_folder(self.document_output_folder)

    def document_path(self, base_name: str) -> str:
        """문서 기본 이름 → Markdown 파일의 서고 상대 경로."""
        return join_path(self.document_folder, f"{sanitize_name(base_name, fallback='document')}.md")

    def to_dict(self) -> dict:
        """API/CLI 표시용. API 키는 설정 여부만 보여준다."""
        data = asdict(self)
        data["mistral_api_key"] = "(설정됨)" if self.mistral_api_key else ""
        data["images_folder"] = self.images_folder
        return data


def config_file_path(vault_root: Path) -> Path:
    return Path(vault_root) / CONFIG_DIR_NAME / CONFIG_FILE_NAME


def _load_dotenv(path: Path) -> dict:
    """간단한 .env 파서. KEY=VALUE 줄만 읽는다."""
    result = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, _, value = line.partition("=")
        result[key.strip()] = value.strip().strip("'\"")
    return result


def _load_settings_file(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"설정 파일 읽기 실패 (기본값 사용): {path} — {e}")
        return {}
    return data if isinstance(data, dict) else {}


def _parse_concurrency(value) -> Optional[int]:
    """양의 정수만 인정한다. 그 외는 None (기본값 유지)."""
    try:
        num = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return num if num > 0 else None


def load_config(
    vault_root: Optional[Path] = None,
    overrides: Optional[dict] = None,
) -> ConverterConfig:
    """설정을 로드한다.

    입력:
      vault_root: 서고 루트 (None이면 환경변수와 기본값만 사용)
      overrides: 마지막에 덮어쓸 값 (CLI 인자 등). None 값은 무시.

    출력: ConverterConfig

    concurrency_limit가 양의 정수가 아니면 경고만 남기고 기본값을 쓴다.
    """
    file_values: dict = {}
    env_file: dict = {}
    if vault_root is not None:
        file_values = _load_settings_file(config_file_path(vault_root))
        dotenv_path = Path(vault_root) / ".env"
        if dotenv_path.exists():
            env_file = _load_dotenv(dotenv_path)

    values: dict = {}
    for key, env_name in ENV_NAMES.items():
        value = os.environ.get(env_name) or env_file.get(env_name)
        if value is None:
            value = file_values.get(key)
        if value is not None:
            values[key] = value

    for key, value in (overrides or {}).items():
        if value is not None and key in ENV_NAMES:
            values[key] = value

    if "concurrency_limit" in values:
        parsed = _parse_concurrency(values["concurrency_limit"])
        if parsed is None:
            logger.warning(
                f"concurrency_limit 값이 올바르지 않아 기본값 {DEFAULT_CONCURRENCY_LIMIT}을 사용합니다: "
                f"{values['concurrency_limit']!r}"
            )
            del values["concurrency_limit"]
        else:
            values["concurrency_limit"] = parsed

    for key in values:
        if key != "concurrency_limit":
            values[key] = str(values[key]).strip()

    return ConverterConfig(**values)


def save_config(vault_root: Path, config: ConverterConfig) -> Path:
    """비밀값을 제외한 설정을 서고 설정 파일에 저장한다.

    출력: 저장된 파일 경로
    """
    path = config_file_path(vault_root)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = {key: getattr(config, key) for key in _PERSISTED_KEYS}
    path.write_text(json.dumps(data, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
    logger.info(f"설정 저장: {path}")
    return path
