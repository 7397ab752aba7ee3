import sys
from pathlib import Path
from textwrap import dedent

import pytest

# Ensure repo_root/src is available on sys.path before any tests import project modules
REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


@pytest.fixture
def make_project(tmp_path: Path):
    """Write {relative path: source} under tmp_path and return the project root."""

    def _make(files):
        for rel, content in files.items():
            f = tmp_path / rel
            f.parent.mkdir(parents=True, exist_ok=True)
            f.write_text(dedent(content).lstrip("\n"), encoding="utf-8")
        return tmp_path

    return _make
