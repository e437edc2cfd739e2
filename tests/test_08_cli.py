import json

import pytest

from log_narrator import __version__, cli
from log_narrator.core.logging import configure_logging


@pytest.fixture(autouse=True)
def isolated(monkeypatch, tmp_path):
    """No settings file from the developer's tree; reset logging afterwards."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("LOG_NARRATOR_NO_COLOR", "1")
    yield
    configure_logging(force=True)


def _json_line(out: str) -> dict:
    line = next(l for l in out.splitlines() if l.startswith("{"))
    return json.loads(line)


def test_cli_dry_run(capsys):
    code = cli.main(["say", "dry run test", "--dry-run"])
    assert code == 0
    out = capsys.readouterr().out
    assert "DRY_RUN_OK" in out


def test_cli_dry_run_json(capsys):
    text = " ".join(["word " * 19 + "end."] * 3)
    code = cli.main(["say", text, "--dry-run", "--json"])
    assert code == 0

    payload = _json_line(capsys.readouterr().out)
    assert payload["ok"] is True
    assert payload["dry_run"] is True
    assert payload["text_len"] == len(text)
    assert payload["max_length"] == 100
    assert payload["speed_override"] == 1.4
    assert len(payload["chunks"]) == 3
    assert all(len(c) <= 100 for c in payload["chunks"])


def test_cli_dry_run_respects_max_length(capsys, monkeypatch):
    monkeypatch.setenv("SEIKA_MAX_TEXT_LENGTH", "10")
    code = cli.main(["say", "Alpha one. Bravo two.", "--dry-run", "--json"])
    assert code == 0
    payload = _json_line(capsys.readouterr().out)
    assert payload["chunks"] == ["Alpha one.", "Bravo two."]


def test_cli_config_redacts_password(capsys, monkeypatch):
    monkeypatch.setenv("SEIKA_PASSWORD", "hunter2")
    monkeypatch.setenv("SEIKA_CID", "1707")
    code = cli.main(["config"])
    assert code == 0

    out = capsys.readouterr().out
    data = json.loads(out[out.index("{"):])
    assert data["backend"]["password"] == "***"
    assert data["backend"]["cid"] == 1707
    assert "hunter2" not in out


def test_cli_settings_file(capsys, tmp_path):
    path = tmp_path / "custom.yaml"
    path.write_text("tts:\n  host: seika.lan\n", encoding="utf-8")
    assert cli.main(["--config", str(path), "config"]) == 0
    out = capsys.readouterr().out
    assert json.loads(out[out.index("{"):])["backend"]["host"] == "seika.lan"


def test_cli_missing_config_file(capsys, tmp_path):
    code = cli.main(["--config", str(tmp_path / "nope.yaml"), "config"])
    assert code == 2
    assert "configuration error" in capsys.readouterr().err


def test_cli_invalid_setting(capsys, monkeypatch):
    monkeypatch.setenv("SEIKA_SPEED", "5")
    code = cli.main(["say", "hello", "--dry-run"])
    assert code == 2
    assert "tts.speed" in capsys.readouterr().err


def test_cli_watch_missing_log_file(capsys, monkeypatch, tmp_path):
    monkeypatch.setenv("SEIKA_TEMP_DIR", str(tmp_path / "scratch"))
    code = cli.main(["watch", "--log-file", str(tmp_path / "missing.jsonl")])
    assert code == 1

    payload = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
    assert payload["ok"] is False
    assert payload["error"] == "FILESYSTEM_ERROR"


def test_cli_version(capsys):
    with pytest.raises(SystemExit) as exc:
        cli.main(["--version"])
    assert exc.value.code == 0
    assert __version__ in capsys.readouterr().out


def test_cli_requires_command():
    with pytest.raises(SystemExit) as exc:
        cli.main([])
    assert exc.value.code == 2

