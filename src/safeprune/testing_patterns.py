"""Test usage detector."""
from __future__ import annotations

import ast
import fnmatch
from pathlib import PurePosixPath
from typing import List, Optional

from .config_loader import TestingConventions
from .di_rules import dotted_name
from .node_types import FileAnalysis


class TestAnalyzer:
    __test__ = False  # not a pytest class

    def __init__(self, conventions: Optional[TestingConventions] = None):
        self.conventions = conventions or TestingConventions()

    def _mark(self, analysis: FileAnalysis, reason: str) -> None:
        analysis.has_tests = True
        analysis.add_reason(reason)

    def analyze(self, tree: ast.AST, analysis: FileAnalysis) -> None:
        self.detect_test_file(analysis)
        for node in ast.walk(tree):
            if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
                if self._is_test_name(node.name):
                    self._mark(analysis, "Contains test functions")
            elif isinstance(node, (ast.Import, ast.ImportFrom)):
                if self._is_test_import(node):
                    self._mark(analysis, "Imports testing packages")
            elif isinstance(node, ast.Call):
                if self._is_test_call(node):
                    self._mark(analysis, "Contains testing calls")

    def detect_test_file(self, analysis: FileAnalysis) -> None:
        name = PurePosixPath(analysis.path).name
        if any(fnmatch.fnmatch(name, pat) for pat in self.conventions.file_patterns):
            analysis.is_test_file = True
            analysis.add_reason("Test file")

    def _is_test_name(self, name: str) -> bool:
        return any(name.startswith(p) for p in self.conventions.function_prefixes)

    def _is_test_import(self, node: ast.AST) -> bool:
        if isinstance(node, ast.Import):
            names = [a.name for a in node.names]
        else:
            names = [node.module or ""]
        modules = set(self.conventions.modules)
        return any(n.split(".")[0] in modules for n in names if n)

    def _is_test_call(self, call: ast.Call) -> bool:
        func = call.func
        if not isinstance(func, ast.Attribute):
            return False
        receiver = dotted_name(func.value)
        if receiver is None:
            return False
        method = func.attr.lower()
        if self.conventions.receiver_keyword in receiver.split(".")[-1].lower():
            return True
        return any(k in method for k in self.conventions.call_keywords)

    def detect_patterns(self, tree: ast.AST) -> List[str]:
        patterns: List[str] = []
        for node in ast.walk(tree):
            if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)) and self._is_test_name(node.name):
                patterns.append(node.name)
            elif isinstance(node, ast.Call) and self._is_test_call(node):
                patterns.append(f"{dotted_name(node.func.value)}.{node.func.attr}")
        return patterns
