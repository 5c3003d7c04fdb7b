"""PDF 변환 라우터.

포함 라우트:
    GET  /api/pdfs      서고 PDF 목록 + 변환 여부
    POST /api/convert   서고 PDF 하나 변환
    POST /api/batch     서고 PDF 여러 개 병렬 변환
    GET  /api/config    현재 설정
    PUT  /api/config    설정 변경 (서고 설정 파일에 저장)
"""

import dataclasses

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from app._state import get_config, get_converter, get_storage, get_vault_path, set_config
from core.batch import convert_vault_pdfs, list_vault_pdfs
from core.config import save_config
from core.converter import OutcomeStatus

router = APIRouter(tags=["conversion"])


# ===========================================================================
#  Pydantic 요청 모델
# ===========================================================================

class ConvertRequest(BaseModel):
    """변환 요청 본문."""
    path: str  # 서고 상대 PDF 경로


class BatchRequest(BaseModel):
    """일괄 변환 요청 본문."""
    paths: list[str] | None = None                          # None이면 미생성 PDF 전체
    concurrency_limit: int | None = Field(default=None, ge=1)  # None이면 설정값


class ConfigUpdateRequest(BaseModel):
    """설정 변경 요청 본문. None인 항목은 그대로 둔다."""
    document_output_folder: str | None = None
    images_output_folder: str | None = None
    images_folder_subname: str | None = None
    concurrency_limit: int | None = Field(default=None, ge=1)


_NO_VAULT = {"error": "서고가 설정되지 않았습니다."}


# ===========================================================================
#  라우트
# ===========================================================================

@router.get("/api/pdfs")
async def api_list_pdfs():
    """서고 PDF 목록. generated=true이면 같은 이름의 .md가 이미 있다."""
    storage = get_storage()
    if storage is None:
        return JSONResponse(_NO_VAULT, status_code=500)
    storage.refresh_index()
    return {"pdfs": [p.to_dict() for p in list_vault_pdfs(storage)]}


@router.post("/api/convert")
async def api_convert(body: ConvertRequest):
    """서고 PDF 하나를 변환한다.

    이미 있는 문서는 덮어쓰지 않고 409로 알린다.
    """
    converter = get_converter()
    if converter is None:
        return JSONResponse(_NO_VAULT, status_code=500)

    if not body.path.lower().endswith(".pdf"):
        return JSONResponse({"error": f"PDF 파일이 아닙니다: {body.path}"}, status_code=400)

    outcome = await converter.convert_reporting(
        body.path, lambda o: converter.convert_vault_pdf(body.path, o),
    )
    if outcome.status == OutcomeStatus.ALREADY_EXISTS:
        return JSONResponse(outcome.to_summary(), status_code=409)
    if outcome.status == OutcomeStatus.FAILED:
        return JSONResponse(outcome.to_summary(), status_code=502)
    return outcome.to_summary()


@router.post("/api/batch")
async def api_batch(body: BatchRequest):
    """서고 PDF 여러 개를 워커 풀로 변환한다. 항목별 결과와 합계를 반환."""
    converter = get_converter()
    if converter is None:
        return JSONResponse(_NO_VAULT, status_code=500)

    summary = await convert_vault_pdfs(
        converter, body.paths, concurrency_limit=body.concurrency_limit,
    )
    return summary.to_summary()


@router.get("/api/config")
async def api_get_config():
    config = get_config()
    if config is None:
        return JSONResponse(_NO_VAULT, status_code=500)
    return config.to_dict()


@router.put("/api/config")
async def api_update_config(body: ConfigUpdateRequest):
    """설정을 바꾸고 서고 설정 파일에 저장한다."""
    config = get_config()
    vault_path = get_vault_path()
    if config is None or vault_path is None:
        return JSONResponse(_NO_VAULT, status_code=500)

    changes = {k: v.strip() if isinstance(v, str) else v
               for k, v in body.model_dump().items() if v is not None}
    updated = dataclasses.replace(config, **changes)
    save_config(vault_path, updated)
    set_config(updated)
    return updated.to_dict()
