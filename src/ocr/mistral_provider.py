"""Mistral OCR Provider.

Mistral REST API로 PDF를 OCR한다. 이미지 base64 포함 요청.

호출 흐름:
    Python → POST /v1/files (multipart, purpose=ocr)  → file id
           → GET  /v1/files/{id}/url                  → 서명된 URL
           → POST /v1/ocr (document_url, include_image_base64=true)
           → pages[].markdown / images[].image_base64

환경변수: MISTRAL_API_KEY
재시도하지 않는다. 실패는 UpstreamError로 호출자에게 전달.
"""

import logging
import time
from typing import Any, Optional

import httpx

from .base import BaseOcrProvider, UpstreamError

logger = logging.getLogger(__name__)


class MistralOcrProvider(BaseOcrProvider):
    """Mistral OCR API 호출."""

    provider_id = "mistral"
    display_name = "Mistral OCR"
    requires_network = True

    DEFAULT_BASE_URL = "https://api.mistral.ai"
    DEFAULT_MODEL = "mistral-ocr-latest"
    SIGNED_URL_EXPIRY_HOURS = 24

    def __init__(
        self,
        api_key: str,
        *,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """provider 초기화.

        입력:
          api_key: Mistral API 키
          model: OCR 모델 (기본 mistral-ocr-latest)
          base_url: API 주소 (기본 https://api.mistral.ai)
          timeout: 요청 타임아웃(초). OCR은 페이지 수에 비례해 오래 걸린다.
          transport: 테스트용 httpx transport (MockTransport 등)
        """
        self._api_key = (api_key or "").strip()
        self.model = model or self.DEFAULT_MODEL
        self.base_url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def is_available(self) -> bool:
        """API 키가 설정되어 있는지 확인."""
        return bool(self._api_key)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {self._api_key}"},
            timeout=self.timeout,
            transport=self._transport,
        )

    async def recognize_pdf(self, file_name: str, content: bytes) -> Any:
        """업로드 → 서명 URL → OCR 처리를 순서대로 실행한다.

        출력: /v1/ocr 응답 JSON (dict, 검증 전)
        에러: UpstreamError — 단계(stage) 정보 포함
        """
        if not self.is_available():
            raise UpstreamError(
                "Mistral API 키가 설정되지 않았습니다.\n"
                "→ 해결: MISTRAL_API_KEY 환경변수 또는 서고 .env에 키를 넣으세요.",
                stage="config",
            )

        t0 = time.monotonic()
        async with self._client() as client:
            file_id = await self._upload(client, file_name, content)
            signed_url = await self._get_signed_url(client, file_id, file_name)
            result = await self._process(client, signed_url, file_name)
        elapsed = time.monotonic() - t0

        pages = result.get("pages") if isinstance(result, dict) else None
        logger.info(
            f"Mistral OCR 완료: {file_name} — "
            f"{len(pages) if isinstance(pages, list) else '?'}페이지, {elapsed:.1f}초"
        )
        return result

    async def _upload(self, client: httpx.AsyncClient, file_name: str, content: bytes) -> str:
        """PDF를 업로드하고 file id를 반환한다."""
        data = await self._request(
            client, "POST", "/v1/files", stage="upload", file_name=file_name,
            files={"file": (file_name, content, "application/pdf")},
            data={"purpose": "ocr"},
        )
        file_id = data.get("id")
        if not file_id:
            raise UpstreamError(f"업로드 응답에 file id가 없습니다: {file_name}", stage="upload")
        logger.debug(f"업로드 완료: {file_name} → {file_id}")
        return file_id

    async def _get_signed_url(self, client: httpx.AsyncClient, file_id: str, file_name: str) -> str:
        """업로드한 파일의 서명된 다운로드 URL을 받는다."""
        data = await self._request(
            client, "GET", f"/v1/files/{file_id}/url", stage="sign", file_name=file_name,
            params={"expiry": self.SIGNED_URL_EXPIRY_HOURS},
        )
        url = data.get("url")
        if not url:
            raise UpstreamError(f"서명 URL 응답에 url이 없습니다: {file_name}", stage="sign")
        return url

    async def _process(self, client: httpx.AsyncClient, document_url: str, file_name: str) -> dict:
        """서명 URL의 문서를 OCR한다. 이미지는 base64로 포함해서 받는다."""
        return await self._request(
            client, "POST", "/v1/ocr", stage="ocr", file_name=file_name,
            json={
                "model": self.model,
                "document": {"type": "document_url", "document_url": document_url},
                "include_image_base64": True,
            },
        )

    async def _request(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        *,
        stage: str,
        file_name: str,
        **kwargs,
    ) -> dict:
        """요청 하나를 보내고 JSON을 반환한다. 실패는 모두 UpstreamError."""
        try:
            resp = await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"Mistral {stage} 요청 실패: {file_name} — {e}")
            raise UpstreamError(f"Mistral {stage} 요청 실패: {e}", stage=stage) from e

        if resp.status_code >= 400:
            logger.error(f"Mistral {stage} 응답 {resp.status_code}: {file_name}")
            raise UpstreamError(
                f"Mistral {stage} 응답 {resp.status_code}: {resp.text[:200]}",
                stage=stage,
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise UpstreamError(f"Mistral {stage} 응답이 JSON이 아닙니다.", stage=stage) from e
        if not isinstance(data, dict):
            raise UpstreamError(f"Mistral {stage} 응답 형식이 올바르지 않습니다.", stage=stage)
        return data
