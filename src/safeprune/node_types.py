"""
Core data types shared by the loader, graph builders, detectors and scorer.
"""
from __future__ import annotations

import ast
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set


class SafetyLevel(Enum):
    """Deletion-safety classification, ordered from safest to strictest."""

    ULTRA_SAFE = "ULTRA-SAFE"
    POTENTIALLY_SAFE = "POTENTIALLY-SAFE"
    DANGEROUS = "DANGEROUS"
    NEVER_DELETE = "NEVER-DELETE"

    @property
    def rank(self) -> int:
        return _LEVEL_RANK[self]

    def __str__(self) -> str:
        return self.value


_LEVEL_RANK = {
    SafetyLevel.ULTRA_SAFE: 0,
    SafetyLevel.POTENTIALLY_SAFE: 1,
    SafetyLevel.DANGEROUS: 2,
    SafetyLevel.NEVER_DELETE: 3,
}


def qualify(module: str, *parts: str) -> str:
    """Build a qualified function key: ``module.part1.part2``."""
    names = [p for p in parts if p]
    if not module:
        return ".".join(names)
    return ".".join([module, *names])


@dataclass
class FunctionDecl:
    key: str
    name: str
    module: str
    line: int
    exported: bool = False
    class_name: Optional[str] = None  # enclosing class (dotted for nested classes)
    enclosing: Optional[str] = None  # enclosing function key for nested defs

    @property
    def is_method(self) -> bool:
        return self.class_name is not None and self.enclosing is None


@dataclass
class SymbolTable:
    """Per-module name bindings used to resolve call targets."""

    module: str
    imports: Dict[str, str] = field(default_factory=dict)  # local alias -> module or module.member
    functions: Dict[str, str] = field(default_factory=dict)  # top-level def name -> key
    classes: Dict[str, str] = field(default_factory=dict)  # top-level class name -> FQN
    methods: Dict[str, Set[str]] = field(default_factory=dict)  # class FQN -> method names
    imported_modules: Set[str] = field(default_factory=set)  # aliases bound by plain `import x`

    def resolve(self, name: str) -> Optional[str]:
        """Resolve a bare identifier through top-level defs, then imports."""
        if name in self.functions:
            return self.functions[name]
        if name in self.classes:
            return self.classes[name]
        return self.imports.get(name)


@dataclass
class SourceFile:
    path: str  # project-relative POSIX path
    module: str
    package_name: str
    total_lines: int
    tree: ast.Module
    symbols: SymbolTable
    functions: List[FunctionDecl] = field(default_factory=list)
    imported_packages: List[str] = field(default_factory=list)
    interfaces: List[str] = field(default_factory=list)
    declares_main: bool = False
    declares_init: bool = False
    declares_globals: bool = False
    abs_path: str = ""

    @property
    def exported_functions(self) -> List[str]:
        return [f.name for f in self.functions if f.exported]

    @property
    def has_interfaces(self) -> bool:
        return bool(self.interfaces)


@dataclass
class FileAnalysis:
    path: str
    module: str = ""
    package_name: str = ""
    total_functions: int = 0
    unreachable_functions: int = 0
    unreachable_names: List[str] = field(default_factory=list)
    total_lines: int = 0
    safety_level: SafetyLevel = SafetyLevel.ULTRA_SAFE
    safety_score: int = 0
    reasons: List[str] = field(default_factory=list)
    has_interfaces: bool = False
    has_di_usage: bool = False
    is_imported: bool = False
    has_tests: bool = False
    is_test_file: bool = False
    has_templates: bool = False
    is_critical: bool = False
    exported_functions: List[str] = field(default_factory=list)
    imported_packages: List[str] = field(default_factory=list)
    declares_main: bool = False
    declares_init: bool = False
    declares_globals: bool = False
    complexity: int = 0

    def add_reason(self, reason: str) -> None:
        if reason not in self.reasons:
            self.reasons.append(reason)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "module": self.module,
            "package_name": self.package_name,
            "total_functions": self.total_functions,
            "unreachable_functions": self.unreachable_functions,
            "unreachable_names": list(self.unreachable_names),
            "total_lines": self.total_lines,
            "safety_level": self.safety_level.value,
            "safety_score": self.safety_score,
            "reasons": list(self.reasons),
            "has_interfaces": self.has_interfaces,
            "has_di_usage": self.has_di_usage,
            "is_imported": self.is_imported,
            "has_tests": self.has_tests,
            "is_test_file": self.is_test_file,
            "has_templates": self.has_templates,
            "is_critical": self.is_critical,
            "exported_functions": list(self.exported_functions),
            "imported_packages": list(self.imported_packages),
            "complexity": self.complexity,
        }


@dataclass
class Results:
    files: List[FileAnalysis] = field(default_factory=list)
    ultra_safe: int = 0
    potentially_safe: int = 0
    dangerous: int = 0
    never_delete: int = 0
    skipped: Dict[str, str] = field(default_factory=dict)  # path -> error message
    warnings: List[str] = field(default_factory=list)

    @property
    def total_files(self) -> int:
        return len(self.files)

    def count(self, level: SafetyLevel) -> int:
        return {
            SafetyLevel.ULTRA_SAFE: self.ultra_safe,
            SafetyLevel.POTENTIALLY_SAFE: self.potentially_safe,
            SafetyLevel.DANGEROUS: self.dangerous,
            SafetyLevel.NEVER_DELETE: self.never_delete,
        }[level]

    def protection_summary(self) -> Dict[str, int]:
        return {
            "critical": sum(1 for f in self.files if f.is_critical),
            "di_usage": sum(1 for f in self.files if f.has_di_usage),
            "interfaces": sum(1 for f in self.files if f.has_interfaces),
            "exported": sum(1 for f in self.files if f.exported_functions),
            "tests": sum(1 for f in self.files if f.has_tests),
            "templates": sum(1 for f in self.files if f.has_templates),
            "imported": sum(1 for f in self.files if f.is_imported),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": "1.0",
            "summary": {
                "total_files": self.total_files,
                "ultra_safe": self.ultra_safe,
                "potentially_safe": self.potentially_safe,
                "dangerous": self.dangerous,
                "never_delete": self.never_delete,
                "protection": self.protection_summary(),
            },
            "files": [f.to_dict() for f in self.files],
            "skipped": dict(self.skipped),
            "warnings": list(self.warnings),
        }
