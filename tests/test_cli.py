from __future__ import annotations

import json
from pathlib import Path

import pytest

from safeprune.cli import main


@pytest.fixture
def project(make_project) -> Path:
    return make_project(
        {
            "src/app/__init__.py": "",
            "src/app/legacy.py": "def _old():\n    return 1\n",
            "src/app/core.py": "def run():\n    return _step()\n\n\ndef _step():\n    return 1\n",
        }
    )


def test_json_report_to_file(project: Path, tmp_path: Path, capsys) -> None:
    out = tmp_path / "reports" / "safeprune.json"
    assert main([str(project), "--json", "--output", str(out)]) == 0
    data = json.loads(out.read_text(encoding="utf-8"))
    assert {f["path"] for f in data["files"]} >= {"src/app/legacy.py", "src/app/core.py"}
    assert "Report written" in capsys.readouterr().out


def test_text_report_to_stdout(project: Path, capsys) -> None:
    assert main([str(project)]) == 0
    assert "Dead Code Analysis Results" in capsys.readouterr().out


def test_explain(project: Path, capsys) -> None:
    assert main([str(project), "--explain", "app.core._step"]) == 0
    assert "app.core.run -> app.core._step" in capsys.readouterr().out


def test_graph_writes_dot(project: Path, tmp_path: Path) -> None:
    base = tmp_path / "graphs" / "imports"
    assert main([str(project), "--graph", str(base)]) == 0
    assert (tmp_path / "graphs" / "imports.dot").exists()


def test_fatal_error_exit_code(tmp_path: Path, capsys) -> None:
    assert main([str(tmp_path / "missing")]) == 1
    assert "failed to load project" in capsys.readouterr().err


def test_bad_config_exit_code(project: Path, capsys) -> None:
    (project / "safeprune.yaml").write_text("nonsense_key: 1\n", encoding="utf-8")
    assert main([str(project)]) == 1
    assert "invalid configuration" in capsys.readouterr().err


def test_usage_error_exit_code() -> None:
    with pytest.raises(SystemExit) as exc:
        main(["--no-such-flag"])
    assert exc.value.code == 2


def test_init_writes_example_config(tmp_path: Path) -> None:
    assert main([str(tmp_path), "--init"]) == 0
    assert (tmp_path / "safeprune.yaml").exists()
    assert main([str(tmp_path), "--init"]) == 1
