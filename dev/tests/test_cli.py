from __future__ import annotations

import json
from pathlib import Path

import pytest

pytest.importorskip("pydantic")
pytest.importorskip("yaml")

import start_fwpatcher
from fwpatcher.__main__ import main as module_main

from conftest import PATCHED_BINARY, read_output

pytestmark = pytest.mark.integration


def _args(base: Path, *extra: str):
    return ["--config", str(base / "kobopatch.yaml"), "--no-pause", *extra]


def test_version_prints_banner(capsys) -> None:
    assert start_fwpatcher.main(["--version"]) == 0
    assert capsys.readouterr().out.startswith("fwpatcher ")


def test_argument_errors_exit_with_2() -> None:
    with pytest.raises(SystemExit) as excinfo:
        start_fwpatcher.main(["--no-such-flag"])
    assert excinfo.value.code == 2


def test_run_writes_output_and_log(firmware_dir: Path, capsys) -> None:
    assert start_fwpatcher.main(_args(firmware_dir)) == 0

    out = capsys.readouterr().out
    output_path = (firmware_dir / "out" / "KoboRoot.tgz").resolve()
    assert f"Successfully saved patched KoboRoot.tgz to {output_path}" in out
    assert read_output(output_path)["bin/app"][1] == PATCHED_BINARY

    log_text = (firmware_dir / "log.txt").read_text(encoding="utf-8")
    assert "Applying patch `Example patch`" in log_text
    assert "ReplaceInt" in log_text


def test_log_json(firmware_dir: Path) -> None:
    assert start_fwpatcher.main(_args(firmware_dir, "--log-json")) == 0
    lines = (firmware_dir / "log.txt").read_text(encoding="utf-8").splitlines()
    messages = [json.loads(line)["message"] for line in lines]
    assert any("Applying patch" in message for message in messages)


def test_validate_only_touches_no_archive(firmware_dir: Path, capsys) -> None:
    (firmware_dir / "update.zip").unlink()
    assert start_fwpatcher.main(_args(firmware_dir, "--validate-only")) == 0
    assert "1 patch file(s) are valid" in capsys.readouterr().out
    assert not (firmware_dir / "out" / "KoboRoot.tgz").exists()


def test_fatal_error_exits_with_1(firmware_dir: Path, capsys) -> None:
    (firmware_dir / "app.yaml").write_text("Broken:\n  - Description: no gate\n", encoding="utf-8")
    assert start_fwpatcher.main(_args(firmware_dir)) == 1

    captured = capsys.readouterr()
    assert captured.err.startswith("Fatal: no `Enabled` option in `Broken`")
    assert captured.err.count("Fatal:") == 1
    assert not (firmware_dir / "out" / "KoboRoot.tgz").exists()


def test_missing_config_is_fatal(tmp_path: Path, capsys) -> None:
    assert start_fwpatcher.main(["--config", str(tmp_path / "none.yaml"), "--no-pause"]) == 1
    assert "Fatal: Could not read" in capsys.readouterr().err


def test_windows_pause(firmware_dir: Path, monkeypatch) -> None:
    slept = []
    monkeypatch.setattr(start_fwpatcher.platform, "system", lambda: "Windows")
    monkeypatch.setattr(start_fwpatcher.time, "sleep", slept.append)

    assert start_fwpatcher.main(["--config", str(firmware_dir / "kobopatch.yaml")]) == 0
    assert slept == [start_fwpatcher.WINDOWS_PAUSE_SECONDS]

    slept.clear()
    assert start_fwpatcher.main(_args(firmware_dir)) == 0
    assert slept == []


def test_module_entry_point_delegates(firmware_dir: Path) -> None:
    assert module_main(_args(firmware_dir)) == 0
    assert (firmware_dir / "out" / "KoboRoot.tgz").exists()
