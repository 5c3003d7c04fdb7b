"""웹 앱 진입점.

사용법:
    python -m app serve --vault <서고 경로> [--port 8000] [--host 127.0.0.1]
"""

import argparse
import logging
import sys
from pathlib import Path

# src/ 디렉토리를 Python 경로에 추가
_src_dir = str(Path(__file__).resolve().parent.parent)
if _src_dir not in sys.path:
    sys.path.insert(0, _src_dir)


def main():
    parser = argparse.ArgumentParser(
        prog="pdf-ocr-markdown",
        description="PDF → Markdown 변환 웹 서버",
    )
    subparsers = parser.add_subparsers(dest="command")

    p_serve = subparsers.add_parser("serve", help="웹 서버를 실행한다")
    p_serve.add_argument("--vault", required=True, help="서고 경로")
    p_serve.add_argument("--port", type=int, default=8000, help="포트 (기본: 8000)")
    p_serve.add_argument("--host", default="127.0.0.1", help="호스트 (기본: 127.0.0.1)")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.command == "serve":
        import uvicorn
        from app.server import configure

        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

        vault_path = Path(args.vault).resolve()
        if not vault_path.is_dir():
            print(
                f"오류: 서고를 찾을 수 없습니다: {vault_path}\n"
                "→ 해결: 존재하는 디렉토리 경로를 지정하세요.",
                file=sys.stderr,
            )
            sys.exit(1)

        configure(vault_path)
        print(f"서고: {vault_path}")
        print(f"서버: http://{args.host}:{args.port}")
        uvicorn.run(
            "app.server:app",
            host=args.host,
            port=args.port,
            reload=False,
        )


if __name__ == "__main__":
    main()
