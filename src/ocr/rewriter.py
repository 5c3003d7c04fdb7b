"""이미지 마커 치환.

OCR markdown의 ![alt](target) 마커를 Obsidian식 임베드 ![[path]]로 바꾸거나,
이미지를 저장하지 못했을 때는 마커를 지운다 (존재하지 않는 이미지를 가리키는 링크를 남기지 않음).

매칭 규칙:
  target 안에 이미지 id가 "포함"되면 매칭한다 (완전 일치 아님).
  provider가 id 앞뒤에 경로나 접미사를 붙이는 경우가 있기 때문이다.
  id는 re.escape()로 리터럴 처리한다.

alt는 줄바꿈을 포함할 수 있다 (OCR이 캡션을 여러 줄로 나누는 경우).
target은 닫는 괄호와 줄바꿈을 넘지 않는다.
한 줄에 마커가 여러 개 있어도 옆 마커나 본문을 삼키지 않는다.
"""

from __future__ import annotations
import re
from typing import Optional


def marker_pattern(image_id: str) -> re.Pattern:
    """이미지 id를 가리키는 ![alt](...id...) 마커의 정규식."""
    return re.compile(
        r"!\[[^\]]*\]\([^)\n]*?" + re.escape(image_id) + r"[^)\n]*\)"
    )


def embed_link(path: str) -> str:
    """저장된 이미지 경로 → ![[path]] 임베드. 경로 구분자는 항상 "/"."""
    normalized = path.replace("\\", "/")
    return f"![[{normalized}]]"


def rewrite_or_remove_marker(
    text: str,
    image_id: str,
    replacement: Optional[str],
) -> str:
    """text 안에서 image_id를 가리키는 모든 마커를 치환하거나 지운다.

    입력:
      text: 페이지 markdown
      image_id: 이미지 id (비었거나 공백뿐이면 아무것도 하지 않음)
      replacement: 마커 자리에 넣을 문자열. None이면 마커 삭제.

    출력: 치환된 text (매칭이 없으면 원문 그대로)
    """
    if not image_id or not image_id.strip():
        return text

    new_text = "" if replacement is None else replacement
    # 함수를 넘겨야 replacement 안의 "\1", "\\" 등이 그룹 참조로 해석되지 않는다
    return marker_pattern(image_id).sub(lambda _m: new_text, text)


def count_markers(text: str, image_id: str) -> int:
    """image_id를 가리키는 마커 개수. 로그와 테스트용."""
    if not image_id or not image_id.strip():
        return 0
    return len(marker_pattern(image_id).findall(text))
