"""웹 앱 서버.

FastAPI 기반. 서고 안 PDF의 변환을 API로 제공한다.

API 엔드포인트:
    GET  /api/vault   → 서고 정보
    GET  /api/pdfs    → PDF 목록 + 변환 여부
    POST /api/convert → PDF 하나 변환
    POST /api/batch   → PDF 여러 개 병렬 변환
    GET  /api/config  → 설정 조회
    PUT  /api/config  → 설정 변경
"""

import sys
from pathlib import Path

# src/ 디렉토리를 Python 경로에 추가
_src_dir = str(Path(__file__).resolve().parent.parent)
if _src_dir not in sys.path:
    sys.path.insert(0, _src_dir)

from fastapi import FastAPI  # noqa: E402
from fastapi.responses import JSONResponse  # noqa: E402

from app._state import configure_vault, get_vault_path  # noqa: E402
from app.routers.conversion import router as conversion_router  # noqa: E402


app = FastAPI(
    title="PDF → Markdown 변환기",
    description="OCR 결과를 이미지가 포함된 Markdown 문서로 조립해 서고에 저장한다",
    version="0.1.0",
)
app.include_router(conversion_router)


def configure(vault_path: str | Path) -> FastAPI:
    """서고 경로를 설정한다.

    목적: 서버 시작 전에 서고 경로를 지정한다.
    입력: vault_path — 서고 디렉토리 경로.
    출력: 설정된 FastAPI 앱 인스턴스.
    """
    configure_vault(vault_path)
    return app


@app.get("/api/vault")
async def api_vault():
    """서고 정보를 반환한다."""
    vault_path = get_vault_path()
    if vault_path is None:
        return JSONResponse({"error": "서고가 설정되지 않았습니다."}, status_code=500)
    return {"path": str(vault_path), "name": vault_path.name}
