"""Cyclomatic complexity notes (radon). Informational only: never part of the score."""
from __future__ import annotations

import ast
from typing import Dict, List

from radon.complexity import cc_rank, cc_visit_ast

from .node_types import FileAnalysis


def function_complexity(tree: ast.AST) -> Dict[str, int]:
    """Map of function/method full name -> cyclomatic complexity."""
    try:
        blocks = cc_visit_ast(tree)
    except Exception:
        return {}
    # classes are reported alongside their methods; skip them to avoid double counting
    return {b.fullname: int(b.complexity) for b in blocks if getattr(b, "letter", "F") != "C"}


def annotate_complexity(tree: ast.AST, analysis: FileAnalysis, threshold: int = 10) -> List[str]:
    """Store the file total on the analysis; return names above ``threshold``."""
    per_function = function_complexity(tree)
    analysis.complexity = sum(per_function.values())
    hot: List[str] = []
    for name, cc in sorted(per_function.items()):
        if cc > threshold:
            hot.append(name)
            analysis.add_reason(f"High complexity function: {name} ({cc_rank(cc)}, {cc})")
    return hot
