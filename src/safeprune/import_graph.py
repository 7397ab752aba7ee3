"""
Import graph: imported module -> importing modules.

A module counts as used externally when it has at least one importer other than
itself. Importing ``a.b.c`` also imports the loaded packages ``a`` and ``a.b``
(their ``__init__`` runs first).
"""
from __future__ import annotations

from typing import Callable, Dict, Iterable, Optional, Set

from .errors import GraphBuildError
from .node_types import FileAnalysis, SourceFile


class ImportGraph:
    def __init__(self) -> None:
        self.importers_of: Dict[str, Set[str]] = {}

    def add_edge(self, imported: str, importer: str) -> None:
        if not imported or imported == importer:
            return
        self.importers_of.setdefault(imported, set()).add(importer)

    def importers(self, module: str) -> Set[str]:
        return set(self.importers_of.get(module, ()))

    def is_imported(self, module: str) -> bool:
        return bool(self.importers_of.get(module))

    def edges(self) -> Iterable[tuple]:
        for imported, importers in self.importers_of.items():
            for importer in importers:
                yield imported, importer


class ImportGraphBuilder:
    def __init__(self, module_resolver: Optional[Callable[[str], str]] = None):
        self.module_resolver = module_resolver
        self.graph = ImportGraph()

    def build(self, modules: Dict[str, SourceFile]) -> ImportGraph:
        self.graph = ImportGraph()
        try:
            for module, source in modules.items():
                for imported in source.imported_packages:
                    self.graph.add_edge(imported, module)
                    parts = imported.split(".")
                    for i in range(1, len(parts)):
                        parent = ".".join(parts[:i])
                        if parent in modules:
                            self.graph.add_edge(parent, module)
        except Exception as e:
            raise GraphBuildError(f"failed to build import graph: {e}") from e
        return self.graph

    def analyze(self, file_path: str, analysis: FileAnalysis) -> None:
        module = self.module_resolver(file_path) if self.module_resolver else analysis.module
        if self.graph.is_imported(module):
            analysis.is_imported = True
            analysis.add_reason("Imported by other packages")
