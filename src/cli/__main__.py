"""CLI 도구 — PDF → Markdown (이미지 포함) 변환기.

사용법:
    python -m cli convert <vault_path> <pdf> [<pdf> ...]
    python -m cli batch <vault_path> [<서고 안 pdf 경로> ...] [--concurrency N]
    python -m cli list-pdfs <vault_path>
    python -m cli show-config <vault_path>

pip install -e . 후 실행하거나, src/ 디렉토리에서 실행한다.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# src/ 디렉토리를 Python 경로에 추가하여 pip install 없이도 실행 가능하게 한다.
_src_dir = str(Path(__file__).resolve().parent.parent)
if _src_dir not in sys.path:
    sys.path.insert(0, _src_dir)

from core.batch import convert_vault_pdfs, list_vault_pdfs  # noqa: E402
from core.config import load_config  # noqa: E402
from core.converter import ConversionOutcome, OutcomeStatus, PdfConverter  # noqa: E402
from core.storage import LocalVaultStorage, StorageError  # noqa: E402
from ocr.mistral_provider import MistralOcrProvider  # noqa: E402

_STATUS_MARK = {
    OutcomeStatus.DONE: "✓",
    OutcomeStatus.ALREADY_EXISTS: "−",
    OutcomeStatus.FAILED: "✗",
}


def _open_vault(vault_path: str, concurrency=None):
    """서고 저장소와 설정을 연다. 서고가 없으면 종료."""
    try:
        storage = LocalVaultStorage(vault_path)
    except StorageError as e:
        print(f"오류: {e}", file=sys.stderr)
        sys.exit(1)
    try:
        config = load_config(storage.root, overrides={"concurrency_limit": concurrency})
    except ValueError as e:
        print(f"오류: {e}", file=sys.stderr)
        sys.exit(1)
    return storage, config


def _make_converter(storage, config) -> PdfConverter:
    provider = MistralOcrProvider(
        config.mistral_api_key,
        model=config.ocr_model,
        base_url=config.mistral_base_url,
    )
    return PdfConverter(provider, storage, config)


def _print_outcome(outcome: ConversionOutcome) -> None:
    mark = _STATUS_MARK[outcome.status]
    if outcome.status == OutcomeStatus.DONE:
        extra = ""
        if outcome.assembled is not None:
            extra = (
                f"  — {outcome.assembled.page_count}페이지, "
                f"이미지 {len(outcome.assembled.images)}개"
            )
        print(f"{mark} {outcome.source_name} → {outcome.document_path}{extra}")
    elif outcome.status == OutcomeStatus.ALREADY_EXISTS:
        print(f"{mark} {outcome.source_name}: 이미 존재하여 건너뜀 ({outcome.document_path})")
    else:
        print(f"{mark} {outcome.source_name}: 실패 — {outcome.error}", file=sys.stderr)


def cmd_convert(args):
    """외부 PDF 파일을 하나씩 순서대로 변환한다."""
    storage, config = _open_vault(args.vault_path)
    converter = _make_converter(storage, config)
    print(f"선택한 파일: {len(args.files)}개")

    async def _run():
        failures = 0
        for file in args.files:
            path = Path(file)
            if path.suffix.lower() != ".pdf":
                print(f"PDF가 아니므로 건너뜀: {path.name}")
                continue
            print(f"처리 중: {path.name}")
            outcome = await converter.convert_reporting(
                path.name, lambda o, p=path: converter.convert_file(p, o),
            )
            _print_outcome(outcome)
            if outcome.status == OutcomeStatus.FAILED:
                failures += 1
        return failures

    failures = asyncio.run(_run())
    if failures:
        sys.exit(1)


def cmd_batch(args):
    """서고 안 PDF를 병렬로 변환한다."""
    storage, config = _open_vault(args.vault_path, concurrency=args.concurrency)
    converter = _make_converter(storage, config)

    paths = args.paths or None
    if paths is None:
        pending = [p for p in list_vault_pdfs(storage) if not p.generated]
        if not pending:
            print("변환할 새 PDF가 없습니다.")
            return
        paths = [p.path for p in pending]

    print(f"{len(paths)}개 파일 처리 시작 (동시 작업 {config.concurrency_limit}개)")
    summary = asyncio.run(convert_vault_pdfs(converter, paths, on_outcome=_print_outcome))
    print()
    print(f"처리 완료. 성공: {summary.succeeded}, 실패: {summary.failed}")
    if summary.failed:
        sys.exit(1)


def cmd_list_pdfs(args):
    """서고의 PDF 목록과 변환 여부를 출력한다."""
    storage, _config = _open_vault(args.vault_path)
    pdfs = list_vault_pdfs(storage)

    if not pdfs:
        print("서고에 PDF 파일이 없습니다.")
        return

    for pdf in pdfs:
        status = "생성됨" if pdf.generated else "미생성"
        print(f"  [{status}] {pdf.path}")


def cmd_show_config(args):
    """현재 적용되는 설정을 출력한다."""
    _storage, config = _open_vault(args.vault_path)
    print(json.dumps(config.to_dict(), ensure_ascii=False, indent=2))


def main():
    parser = argparse.ArgumentParser(
        prog="pdf-ocr-markdown",
        description="PDF → Markdown (이미지 포함) 변환기 — CLI 도구",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="디버그 로그 출력")
    subparsers = parser.add_subparsers(dest="command")

    # convert
    p_convert = subparsers.add_parser(
        "convert",
        help="외부 PDF 파일을 변환해 서고에 저장한다",
    )
    p_convert.add_argument("vault_path", help="서고 경로")
    p_convert.add_argument("files", nargs="+", help="변환할 PDF 파일 경로")
    p_convert.set_defaults(func=cmd_convert)

    # batch
    p_batch = subparsers.add_parser(
        "batch",
        help="서고 안 PDF를 병렬로 변환한다 (생략 시 미생성 PDF 전체)",
    )
    p_batch.add_argument("vault_path", help="서고 경로")
    p_batch.add_argument("paths", nargs="*", help="서고 상대 PDF 경로")
    p_batch.add_argument("--concurrency", type=int, default=None, help="동시 작업 수 (기본: 설정값)")
    p_batch.set_defaults(func=cmd_batch)

    # list-pdfs
    p_list = subparsers.add_parser(
        "list-pdfs",
        help="서고의 PDF 목록과 변환 여부를 출력한다",
    )
    p_list.add_argument("vault_path", help="서고 경로")
    p_list.set_defaults(func=cmd_list_pdfs)

    # show-config
    p_config = subparsers.add_parser(
        "show-config",
        help="현재 적용되는 설정을 출력한다",
    )
    p_config.add_argument("vault_path", help="서고 경로")
    p_config.set_defaults(func=cmd_show_config)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    args.func(args)


if __name__ == "__main__":
    main()
