"""
Reachability over a built :class:`~safeprune.call_graph.CallGraph`.

A function is reachable iff it is a root (entry point or module pseudo-node) or a
depth-first search from some root reaches it along forward edges. The graph is
frozen after construction, so the full closure is computed once and cached;
``is_reachable`` keeps the per-query search for callers holding a single key.
"""
from __future__ import annotations

from collections import deque
from typing import Callable, Dict, List, Optional, Set

from .call_graph import CallGraph
from .node_types import FileAnalysis


class ReachabilityAnalyzer:
    def __init__(self, graph: CallGraph, module_resolver: Callable[[str], str]):
        self.graph = graph
        self.module_resolver = module_resolver
        self._closure: Optional[Set[str]] = None

    def module_path_for(self, file_path: str) -> str:
        return self.module_resolver(file_path)

    def is_reachable(self, key: str) -> bool:
        roots = self.graph.roots
        if key in roots:
            return True
        visited: Set[str] = set()
        stack: List[str] = list(roots)
        while stack:
            cur = stack.pop()
            if cur in visited:
                continue
            visited.add(cur)
            if cur == key:
                return True
            for nxt in self.graph.forward.get(cur, ()):
                if nxt not in visited:
                    stack.append(nxt)
        return False

    def reachable_set(self) -> Set[str]:
        if self._closure is None:
            seen: Set[str] = set()
            stack: List[str] = list(self.graph.roots)
            while stack:
                cur = stack.pop()
                if cur in seen:
                    continue
                seen.add(cur)
                stack.extend(n for n in self.graph.forward.get(cur, ()) if n not in seen)
            self._closure = seen
        return self._closure

    def unreachable_functions(self, file_path: str) -> List[str]:
        """Sorted keys of the file's declared functions that no root reaches."""
        module = self.module_path_for(file_path)
        reachable = self.reachable_set()
        return sorted(k for k in self.graph.functions_in_module(module) if k not in reachable)

    def analyze(self, file_path: str, analysis: FileAnalysis) -> None:
        unreachable = self.unreachable_functions(file_path)
        analysis.unreachable_functions = len(unreachable)
        analysis.unreachable_names = unreachable

    def explain(self, target: str) -> Optional[List[str]]:
        """Shortest root -> target call path, or None when unreachable."""
        roots = self.graph.roots
        if target in roots:
            return [target]
        parent: Dict[str, Optional[str]] = {r: None for r in sorted(roots)}
        queue = deque(sorted(roots))
        while queue:
            cur = queue.popleft()
            for nxt in sorted(self.graph.forward.get(cur, ())):
                if nxt in parent:
                    continue
                parent[nxt] = cur
                if nxt == target:
                    path = [nxt]
                    while parent[path[-1]] is not None:
                        path.append(parent[path[-1]])
                    return list(reversed(path))
                queue.append(nxt)
        return None
