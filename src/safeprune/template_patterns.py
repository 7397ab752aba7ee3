"""Template usage detector."""
from __future__ import annotations

import ast
from typing import List, Optional

from .config_loader import TemplateConventions
from .di_rules import dotted_name
from .node_types import FileAnalysis


class TemplateDetector:
    def __init__(self, conventions: Optional[TemplateConventions] = None):
        self.conventions = conventions or TemplateConventions()

    def _mentions(self, name: str) -> bool:
        return self.conventions.keyword.lower() in name.lower()

    def _flag(self, analysis: FileAnalysis, reason: str) -> None:
        analysis.has_templates = True
        analysis.add_reason(reason)

    def analyze(self, tree: ast.AST, analysis: FileAnalysis) -> None:
        for node in ast.walk(tree):
            if isinstance(node, ast.Call):
                if self._is_template_call(node):
                    self._flag(analysis, "Contains template usage")
            elif isinstance(node, (ast.Import, ast.ImportFrom)):
                if self._is_template_import(node):
                    self._flag(analysis, "Imports template packages")
            elif isinstance(node, ast.ClassDef):
                if self._has_template_fields(node):
                    self._flag(analysis, "Contains template-related struct fields")

    def _is_template_call(self, call: ast.Call) -> bool:
        func = call.func
        if not isinstance(func, ast.Attribute):
            return False
        receiver = dotted_name(func.value)
        if receiver is None:
            return False
        return self._mentions(receiver.split(".")[-1]) or self._mentions(func.attr)

    def _is_template_import(self, node: ast.AST) -> bool:
        engines = self.conventions.modules
        if isinstance(node, ast.Import):
            names = [a.name for a in node.names]
        else:
            base = node.module or ""
            names = [base, *[f"{base}.{a.name}" for a in node.names]]
        for name in names:
            head = name.split(".")[0]
            if head in engines or self._mentions(name):
                return True
        return False

    def _has_template_fields(self, node: ast.ClassDef) -> bool:
        for item in ast.walk(node):
            target_names: List[str] = []
            if isinstance(item, ast.AnnAssign):
                target_names.append(dotted_name(item.target) or "")
            elif isinstance(item, ast.Assign):
                target_names.extend(dotted_name(t) or "" for t in item.targets)
            for name in target_names:
                # class attribute or self.<field>
                last = name.split(".")[-1]
                if ("." not in name or name.startswith("self.")) and self._mentions(last):
                    return True
        return False

    def detect_patterns(self, tree: ast.AST) -> List[str]:
        patterns: List[str] = []
        for node in ast.walk(tree):
            if isinstance(node, ast.Call) and self._is_template_call(node):
                patterns.append(f"{dotted_name(node.func.value)}.{node.func.attr}")
        return patterns
