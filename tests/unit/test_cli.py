"""Unit tests for the command-line entry point."""

import json

import pytest

from lumen_calendar.__main__ import main

pytestmark = pytest.mark.unit

SEED_YAML = """\
events:
  - id: "1"
    title: Reunión con ventas
    owner: Ana
    attendees: [Luis]
    start: "2024-06-01T09:00"
    end: "2024-06-01T10:00"
    calendarId: ventas
  - id: "2"
    type: call
    title: Llamada con proveedor
    owner: Luis
    attendees: [Ana]
    start: "2024-06-02T13:00"
    end: "2024-06-02T14:00"
    calendarId: ventas
"""


@pytest.fixture
def seed_file(tmp_path, monkeypatch):
    # Keep load_config away from any config file in the real working directory
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "seed.yaml"
    path.write_text(SEED_YAML, encoding="utf-8")
    return path


def run_cli(argv):
    with pytest.raises(SystemExit) as excinfo:
        main(argv)
    return excinfo.value.code


def test_render_prints_view_json(seed_file, capsys):
    code = run_cli(["render", "--date", "2024-06-01", "--view", "week", "--events", str(seed_file), "--search", "proveedor"])

    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["view_mode"] == "week"
    assert payload["visible_count"] == 1
    assert payload["events"][0]["title"] == "Llamada con proveedor"


def test_render_without_events_is_empty(seed_file, capsys):
    code = run_cli(["render", "--date", "2024-06-01"])

    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["visible_count"] == 0
    assert len(payload["days"]) == 42


def test_render_invalid_date_exits_2(seed_file, capsys):
    assert run_cli(["render", "--date", "someday"]) == 2
    assert "Invalid --date" in capsys.readouterr().err


def test_render_missing_events_file_exits_1(seed_file, capsys):
    assert run_cli(["render", "--date", "2024-06-01", "--events", "missing.yaml"]) == 1
    assert "Error" in capsys.readouterr().err


def test_render_requires_date():
    assert run_cli(["render"]) == 2
