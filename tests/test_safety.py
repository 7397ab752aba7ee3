from __future__ import annotations

from dataclasses import replace

import pytest

from safeprune.config_loader import SafetyHeuristics
from safeprune.node_types import FileAnalysis, SafetyLevel
from safeprune.safety import SafetyScorer


def _fa(path: str = "src/app/legacy.py", functions: int = 10, unreachable: int = 10, lines: int = 40, **kw) -> FileAnalysis:
    return FileAnalysis(
        path=path, total_functions=functions, unreachable_functions=unreachable, total_lines=lines, **kw
    )


def _score(fa: FileAnalysis, **heuristics) -> FileAnalysis:
    SafetyScorer(SafetyHeuristics(**heuristics)).calculate_safety_level(fa)
    return fa


@pytest.mark.parametrize(
    "lines,penalty",
    [(0, 0), (10, 10), (11, 22), (50, 100), (51, 153), (100, 300), (101, 404)],
)
def test_size_penalty_breakpoints(lines: int, penalty: int) -> None:
    assert SafetyScorer().size_penalty(lines) == penalty


def test_score_is_monotonic_in_size() -> None:
    previous = None
    for lines in range(0, 400):
        fa = _score(_fa(functions=3, unreachable=1, lines=lines))
        if previous is not None:
            assert fa.safety_score >= previous
        previous = fa.safety_score


def test_unused_private_module_is_ultra_safe() -> None:
    fa = _score(_fa())
    assert fa.safety_score == 80 - 100 * 300
    assert fa.safety_score < 1000
    assert fa.safety_level is SafetyLevel.ULTRA_SAFE
    assert fa.reasons == []


def test_partially_unreachable_is_potentially_safe() -> None:
    fa = _score(_fa(functions=4, unreachable=2, lines=30))
    assert fa.safety_level is SafetyLevel.POTENTIALLY_SAFE
    assert "Pure utility functions - SAFER" in fa.reasons


def test_no_functions_is_never_ultra_safe() -> None:
    fa = _score(_fa(functions=0, unreachable=0, lines=5))
    assert fa.safety_level is SafetyLevel.POTENTIALLY_SAFE


def test_large_reachable_file_is_dangerous_by_score() -> None:
    fa = _score(_fa(functions=20, unreachable=0, lines=2000))
    assert fa.safety_score == 8000
    assert fa.safety_level is SafetyLevel.DANGEROUS


def test_critical_package_adds_fixed_weight() -> None:
    critical = _score(_fa(path="src/app/config/settings.py", functions=3, unreachable=3, lines=20))
    plain = _score(_fa(path="src/app/konfig/settings.py", functions=3, unreachable=3, lines=20))
    assert critical.safety_score - plain.safety_score == 100000
    assert critical.is_critical
    assert critical.reasons[0] == "Critical package - NEVER DELETE"


def test_critical_level_is_kept_as_a_floor_by_default() -> None:
    fa = _score(_fa(path="src/app/config/settings.py", functions=3, unreachable=3, lines=20))
    assert fa.safety_level is SafetyLevel.NEVER_DELETE


def test_literal_override_without_floors() -> None:
    fa = _score(
        _fa(path="src/app/config/settings.py", functions=3, unreachable=3, lines=20),
        preserve_level_floors=False,
    )
    assert fa.safety_score >= 5000
    assert fa.safety_level is SafetyLevel.DANGEROUS


def test_forced_dangerous_floor() -> None:
    kept = _score(_fa(has_tests=True))
    assert kept.safety_score < 1000
    assert kept.safety_level is SafetyLevel.DANGEROUS
    assert "Has associated tests - DANGEROUS" in kept.reasons

    dropped = _score(_fa(has_tests=True), preserve_level_floors=False)
    assert dropped.safety_level is SafetyLevel.ULTRA_SAFE


def test_signal_weights() -> None:
    base = _score(_fa()).safety_score
    assert _score(_fa(has_interfaces=True)).safety_score - base == 50000
    assert _score(_fa(has_di_usage=True)).safety_score - base == 20000
    assert _score(_fa(is_imported=True)).safety_score - base == 10000
    assert _score(_fa(has_templates=True)).safety_score - base == 3000
    assert _score(_fa(exported_functions=["a", "b"])).safety_score - base == 3000
    assert _score(_fa(declares_main=True)).safety_score - base == 10000
    assert _score(_fa(declares_init=True)).safety_score - base == 5000
    assert _score(_fa(declares_globals=True)).safety_score - base == 3000


@pytest.mark.parametrize(
    "path,reason",
    [
        ("src/app/__main__.py", "Contains main() function - DANGEROUS"),
        ("bin/tool.py", "Contains main() function - DANGEROUS"),
        ("src/app/setup_hooks.py", "Contains init() functions - DANGEROUS"),
        ("src/app/globals.py", "Contains global variables - DANGEROUS"),
        ("src/app/redis_queue.py", "Modifies application state - DANGEROUS"),
        ("src/app/helpers.py", "Pure utility functions - SAFER"),
    ],
)
def test_path_heuristics(path: str, reason: str) -> None:
    fa = _score(_fa(path=path, lines=200))
    assert reason in fa.reasons


def test_injected_heuristics() -> None:
    h = replace(SafetyHeuristics(), critical_packages=["legacy"], weights={"critical": 7})
    fa = _fa()
    SafetyScorer(h).calculate_safety_level(fa)
    assert fa.is_critical
    assert fa.safety_level is SafetyLevel.NEVER_DELETE
    assert fa.safety_score == 7 + 80 - 30000
