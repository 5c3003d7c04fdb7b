"""CLI 테스트 (네트워크가 필요 없는 명령만)."""

import json
import sys

import pytest

from cli.__main__ import main
from core.config import ENV_NAMES


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_NAMES.values():
        monkeypatch.delenv(name, raising=False)


def _run(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["pdf-ocr-markdown", *argv])
    main()


class TestCli:
    def test_list_pdfs(self, monkeypatch, capsys, tmp_path):
        (tmp_path / "a.pdf").write_bytes(b"%PDF")
        (tmp_path / "b.pdf").write_bytes(b"%PDF")
        (tmp_path / "a.md").write_text("x", encoding="utf-8")
        _run(monkeypatch, "list-pdfs", str(tmp_path))
        out = capsys.readouterr().out
        assert "[생성됨] a.pdf" in out
        assert "[미생성] b.pdf" in out

    def test_list_pdfs_empty(self, monkeypatch, capsys, tmp_path):
        _run(monkeypatch, "list-pdfs", str(tmp_path))
        assert "PDF 파일이 없습니다" in capsys.readouterr().out

    def test_show_config(self, monkeypatch, capsys, tmp_path):
        monkeypatch.setenv("MISTRAL_API_KEY", "secret")
        _run(monkeypatch, "show-config", str(tmp_path))
        data = json.loads(capsys.readouterr().out)
        assert data["images_folder"] == "pdf-mistral-images"
        assert data["mistral_api_key"] == "(설정됨)"

    def test_batch_nothing_pending(self, monkeypatch, capsys, tmp_path):
        (tmp_path / "a.pdf").write_bytes(b"%PDF")
        (tmp_path / "a.md").write_text("x", encoding="utf-8")
        _run(monkeypatch, "batch", str(tmp_path))
        assert "변환할 새 PDF가 없습니다" in capsys.readouterr().out

    def test_missing_vault(self, monkeypatch, capsys, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            _run(monkeypatch, "list-pdfs", str(tmp_path / "없음"))
        assert exc_info.value.code == 1
        assert "오류:" in capsys.readouterr().err

    def test_no_command(self, monkeypatch):
        with pytest.raises(SystemExit):
            _run(monkeypatch)
