"""
DI usage detector: flags files that talk to a dependency-injection framework.

The framework list comes from the registration rule table, so any framework
configured there is detected here too.
"""
from __future__ import annotations

import ast
from typing import List, Optional, Set

from .config_loader import DIConventions
from .di_rules import ANNOTATION, INVOKER, MODULE, PROVIDER, RegistrationTable, dotted_name
from .node_types import FileAnalysis, SymbolTable


class DIDetector:
    def __init__(self, conventions: Optional[DIConventions] = None, registrations: Optional[RegistrationTable] = None):
        self.conventions = conventions or DIConventions()
        self.registrations = registrations or RegistrationTable(self.conventions.frameworks)

    def analyze(self, tree: ast.AST, analysis: FileAnalysis, symbols: Optional[SymbolTable] = None) -> None:
        for node in ast.walk(tree):
            if isinstance(node, ast.Call):
                self._analyze_call(node, analysis, symbols)
            elif isinstance(node, (ast.Import, ast.ImportFrom)):
                self._analyze_import(node, analysis)
            elif isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
                self._analyze_constructor(node, analysis)
            elif isinstance(node, ast.ClassDef):
                self._analyze_container_class(node, analysis, symbols)

    def _analyze_call(self, call: ast.Call, analysis: FileAnalysis, symbols: Optional[SymbolTable]) -> None:
        fw = self.registrations.receiver_framework(call, symbols)
        rule = self.registrations.match_call(call, symbols)
        if fw is None and rule is None:
            return
        analysis.has_di_usage = True
        name = fw.name if fw is not None else rule.framework
        analysis.add_reason(f"Contains {name} dependency injection usage")
        if rule is None:
            return
        if rule.capability == PROVIDER:
            self._record_functions(call, analysis, "Provides")
        elif rule.capability == INVOKER:
            self._record_functions(call, analysis, "Invokes")
        elif rule.capability == MODULE:
            if call.args and isinstance(call.args[0], ast.Constant) and isinstance(call.args[0].value, str):
                module_name = call.args[0].value
                analysis.add_reason(f"Defines DI module: {module_name}")
        elif rule.capability == ANNOTATION:
            analysis.add_reason("Uses DI annotations")

    def _record_functions(self, call: ast.Call, analysis: FileAnalysis, verb: str) -> None:
        for arg in [*call.args, *[k.value for k in call.keywords]]:
            if isinstance(arg, ast.Lambda):
                analysis.add_reason(f"{verb} anonymous function")
                continue
            name = dotted_name(arg)
            if name:
                analysis.add_reason(f"{verb} function: {name}")

    def _analyze_import(self, node: ast.AST, analysis: FileAnalysis) -> None:
        if isinstance(node, ast.Import):
            paths = [a.name for a in node.names]
        else:
            paths = [node.module] if node.module and not node.level else []
        for path in paths:
            fw = self.registrations.framework_for_module(path)
            if fw is not None:
                analysis.has_di_usage = True
                analysis.add_reason(f"Imports {fw.name} framework")

    def _analyze_container_class(self, node: ast.ClassDef, analysis: FileAnalysis, symbols: Optional[SymbolTable]) -> None:
        for base in node.bases:
            rule = self.registrations.match_decorator(base, symbols)
            if rule is not None and rule.capability == MODULE:
                analysis.has_di_usage = True
                analysis.add_reason(f"Defines DI module: {node.name}")
        for item in node.body:
            if isinstance(item, (ast.FunctionDef, ast.AsyncFunctionDef)):
                for dec in item.decorator_list:
                    rule = self.registrations.match_decorator(dec, symbols)
                    if rule is None:
                        continue
                    analysis.has_di_usage = True
                    if rule.capability == ANNOTATION:
                        analysis.add_reason("Uses DI annotations")
                    elif rule.capability == PROVIDER:
                        analysis.add_reason(f"Provides function: {item.name}")

    def _analyze_constructor(self, fn: ast.AST, analysis: FileAnalysis) -> None:
        name = getattr(fn, "name", "")
        if self.is_constructor(name):
            analysis.add_reason(f"Contains constructor function: {name}")
            if self._has_reflection_usage(fn):
                analysis.add_reason("Uses reflection in constructor")

    def is_constructor(self, name: str) -> bool:
        return any(name.startswith(p) for p in self.conventions.constructor_prefixes)

    def _has_reflection_usage(self, fn: ast.AST) -> bool:
        calls = set(self.conventions.reflection_calls)
        modules = set(self.conventions.reflection_modules)
        for node in ast.walk(fn):
            if not isinstance(node, ast.Call):
                continue
            func = node.func
            if isinstance(func, ast.Name) and func.id in calls:
                return True
            if isinstance(func, ast.Attribute):
                receiver = dotted_name(func.value) or ""
                if receiver.split(".")[0] in modules:
                    return True
        return False

    def detect_patterns(self, tree: ast.AST, symbols: Optional[SymbolTable] = None) -> List[str]:
        """``<receiver>.<method>`` for every call on a DI framework alias."""
        patterns: List[str] = []
        for node in ast.walk(tree):
            if isinstance(node, ast.Call) and self.registrations.receiver_framework(node, symbols) is not None:
                patterns.append(f"{dotted_name(node.func.value)}.{node.func.attr}")
        return patterns

    def registered_functions(self, tree: ast.AST, capability: str, symbols: Optional[SymbolTable] = None) -> Set[str]:
        """Names handed to registration calls of ``capability`` in one tree.

        Provider-decorated methods count as provided.
        """
        names: Set[str] = set()
        for node in ast.walk(tree):
            if isinstance(node, ast.Call):
                rule = self.registrations.match_call(node, symbols)
                if rule is None or rule.capability != capability:
                    continue
                for arg in [*node.args, *[k.value for k in node.keywords]]:
                    name = dotted_name(arg)
                    if name:
                        names.add(name)
            elif capability == PROVIDER and isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
                for dec in node.decorator_list:
                    rule = self.registrations.match_decorator(dec, symbols)
                    if rule is not None and rule.capability == PROVIDER:
                        names.add(node.name)
        return names

    def is_function_provided(self, tree: ast.AST, name: str, symbols: Optional[SymbolTable] = None) -> bool:
        return name in self.registered_functions(tree, PROVIDER, symbols)

    def is_function_invoked(self, tree: ast.AST, name: str, symbols: Optional[SymbolTable] = None) -> bool:
        return name in self.registered_functions(tree, INVOKER, symbols)
