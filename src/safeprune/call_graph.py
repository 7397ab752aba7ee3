"""
Call graph construction.

Pass 1 seeds one node per declared function (plus one ``<module>`` pseudo-node
per module for import-time code) and the name-based entry points. Pass 2 walks
every module, resolves each call to a tagged :class:`CallResolution` and records
the edge in a forward and a reverse graph. DI registration calls found during
the walk mark their containing function and their function arguments as entry
points, as described by :class:`~safeprune.di_rules.RegistrationTable`.

Resolution is best-effort and never raises: calls on values with no static
information are approximated (``<module>.<receiver>.<method>``) and calls on
complex expressions are left unresolved.
"""
from __future__ import annotations

import ast
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set

from .config_loader import AnalyzerConfig
from .di_rules import RegistrationTable, dotted_name
from .errors import GraphBuildError
from .node_types import SourceFile, SymbolTable


MODULE_NODE = "<module>"


def module_node(module: str) -> str:
    """Pseudo-node holding a module's top-level (import-time) calls."""
    return f"{module}.{MODULE_NODE}" if module else MODULE_NODE


class ResolutionKind(Enum):
    RESOLVED = "resolved"
    APPROXIMATED = "approximated"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class CallResolution:
    kind: ResolutionKind
    target: Optional[str] = None

    @classmethod
    def resolved(cls, target: str) -> "CallResolution":
        return cls(ResolutionKind.RESOLVED, target)

    @classmethod
    def approximated(cls, target: str) -> "CallResolution":
        return cls(ResolutionKind.APPROXIMATED, target)

    @classmethod
    def unresolved(cls) -> "CallResolution":
        return cls(ResolutionKind.UNRESOLVED)

    @property
    def has_edge(self) -> bool:
        return self.kind is not ResolutionKind.UNRESOLVED and bool(self.target)


@dataclass
class CallSite:
    caller: str
    resolution: CallResolution
    module: str
    line: int = 0


@dataclass
class CallGraph:
    forward: Dict[str, Set[str]] = field(default_factory=dict)
    reverse: Dict[str, Set[str]] = field(default_factory=dict)
    declared: Set[str] = field(default_factory=set)
    entry_points: Set[str] = field(default_factory=set)
    module_nodes: Set[str] = field(default_factory=set)
    resolutions: List[CallSite] = field(default_factory=list)
    _owner: Dict[str, str] = field(default_factory=dict)
    _by_module: Dict[str, List[str]] = field(default_factory=dict)

    def add_node(self, key: str) -> None:
        self.forward.setdefault(key, set())
        self.reverse.setdefault(key, set())

    def add_declared(self, key: str, module: str) -> None:
        self.add_node(key)
        if key in self.declared:
            return
        self.declared.add(key)
        self._owner[key] = module
        self._by_module.setdefault(module, []).append(key)

    def add_edge(self, caller: str, callee: str) -> None:
        self.add_node(caller)
        self.add_node(callee)
        self.forward[caller].add(callee)
        self.reverse[callee].add(caller)

    @property
    def nodes(self) -> Set[str]:
        return set(self.forward)

    @property
    def roots(self) -> Set[str]:
        """Everything treated as always reachable: entry points and module pseudo-nodes."""
        return self.entry_points | self.module_nodes

    def callees(self, key: str) -> Set[str]:
        return set(self.forward.get(key, ()))

    def callers(self, key: str) -> Set[str]:
        return set(self.reverse.get(key, ()))

    def is_entry_point(self, key: str) -> bool:
        return key in self.entry_points

    def module_of(self, key: str) -> Optional[str]:
        return self._owner.get(key)

    def functions_in_module(self, module: str) -> List[str]:
        """Declared functions owned by ``module`` in declaration order."""
        return list(self._by_module.get(module, []))

    def edges(self) -> Iterable[tuple]:
        for caller, callees in self.forward.items():
            for callee in callees:
                yield caller, callee


def _is_dunder(name: str) -> bool:
    return len(name) > 4 and name.startswith("__") and name.endswith("__")


def _annotation_name(ann: Optional[ast.AST]) -> Optional[str]:
    """``Foo``/``pkg.Foo`` from an annotation, unwrapping ``Optional[...]`` and string forms."""
    if ann is None:
        return None
    if isinstance(ann, ast.Constant) and isinstance(ann.value, str):
        return ann.value.strip() or None
    if isinstance(ann, ast.Subscript):
        head = dotted_name(ann.value) or ""
        if head.split(".")[-1] == "Optional":
            return _annotation_name(ann.slice)
        return None
    if isinstance(ann, ast.BinOp) and isinstance(ann.op, ast.BitOr):
        # X | None
        for side in (ann.left, ann.right):
            if not (isinstance(side, ast.Constant) and side.value is None):
                return _annotation_name(side)
        return None
    return dotted_name(ann)


class _Scope:
    __slots__ = ("kind", "key", "local_defs", "var_types")

    def __init__(self, kind: str, key: str):
        self.kind = kind  # "module" | "class" | "function"
        self.key = key
        self.local_defs: Dict[str, str] = {}
        self.var_types: Dict[str, str] = {}


class _CallVisitor(ast.NodeVisitor):
    def __init__(self, source: SourceFile, builder: "CallGraphBuilder"):
        self.source = source
        self.module = source.module
        self.symbols: SymbolTable = source.symbols
        self.builder = builder
        self.graph = builder.graph
        self.scopes: List[_Scope] = [_Scope("module", self.module)]
        self.pseudo = module_node(self.module)
        # class key -> {attr: type}
        self.attr_types: Dict[str, Dict[str, str]] = {}

    # --- scope helpers ---
    def _caller(self) -> str:
        for scope in reversed(self.scopes):
            if scope.kind == "function":
                return scope.key
        return self.pseudo

    def _class_key(self) -> Optional[str]:
        """Innermost enclosing class, seen through methods (for self/cls)."""
        for scope in reversed(self.scopes):
            if scope.kind == "class":
                return scope.key
        return None

    def _lookup_local(self, name: str) -> Optional[str]:
        # Python scoping: class bodies are not visible from nested functions
        for scope in reversed(self.scopes):
            if scope.kind == "function" and name in scope.local_defs:
                return scope.local_defs[name]
        return None

    def _lookup_type(self, name: str) -> Optional[str]:
        for i, scope in enumerate(reversed(self.scopes)):
            if scope.kind == "class" and i != 0:
                continue
            if name in scope.var_types:
                return scope.var_types[name]
        return None

    def _bound(self, name: str) -> Optional[str]:
        """Key a bare name is bound to by a def or import, or None."""
        local = self._lookup_local(name)
        if local:
            return local
        target = self.symbols.resolve(name)
        if target:
            return self.builder.constructor_of(target)
        return None

    def _resolve_type(self, type_name: str) -> str:
        head, _, rest = type_name.partition(".")
        local = self._lookup_local(head)
        bound = local or self.symbols.resolve(head)
        if bound:
            return f"{bound}.{rest}" if rest else bound
        return f"{self.module}.{type_name}" if self.module else type_name

    # --- resolution ---
    def resolve_call(self, call: ast.Call) -> CallResolution:
        return self.resolve_callee(call.func)

    def resolve_callee(self, func: ast.AST) -> CallResolution:
        if isinstance(func, ast.Name):
            bound = self._bound(func.id)
            if bound:
                return CallResolution.resolved(bound)
            return CallResolution.approximated(f"{self.module}.{func.id}" if self.module else func.id)
        if isinstance(func, ast.Attribute):
            return self._resolve_attribute(func.value, func.attr)
        return CallResolution.unresolved()

    def _resolve_attribute(self, value: ast.AST, attr: str) -> CallResolution:
        if isinstance(value, ast.Name):
            name = value.id
            cls_key = self._class_key()
            if name in {"self", "cls"} and cls_key:
                return CallResolution.resolved(f"{cls_key}.{attr}")
            var_type = self._lookup_type(name)
            if var_type:
                return CallResolution.resolved(f"{var_type}.{attr}")
            local = self._lookup_local(name)
            if local:
                return CallResolution.resolved(f"{local}.{attr}")
            target = self.symbols.resolve(name)
            if target:
                return CallResolution.resolved(f"{target}.{attr}")
            return CallResolution.approximated(f"{self.module}.{name}.{attr}")
        # self.<field>.method() with a field type learned in this class
        if (
            isinstance(value, ast.Attribute)
            and isinstance(value.value, ast.Name)
            and value.value.id == "self"
        ):
            cls_key = self._class_key()
            field_type = (self.attr_types.get(cls_key) or {}).get(value.attr) if cls_key else None
            if field_type:
                return CallResolution.resolved(f"{field_type}.{attr}")
        dotted = dotted_name(value)
        if dotted:
            head, _, rest = dotted.partition(".")
            if head in self.symbols.imported_modules:
                return CallResolution.resolved(f"{self.symbols.imports[head]}.{rest}.{attr}")
            return CallResolution.approximated(f"{self.module}.{dotted}.{attr}")
        return CallResolution.unresolved()

    def _reference_target(self, expr: ast.AST) -> Optional[str]:
        """Declared-function key a Name/Attribute argument refers to, if any."""
        if isinstance(expr, ast.Name):
            return self._bound(expr.id)
        if isinstance(expr, ast.Attribute):
            res = self._resolve_attribute(expr.value, expr.attr)
            if res.kind is ResolutionKind.RESOLVED:
                return res.target
        return None

    # --- type learning ---
    def _learn_assign(self, target: ast.AST, value: Optional[ast.AST], annotation: Optional[ast.AST]) -> None:
        type_name = None
        if annotation is not None:
            ann = _annotation_name(annotation)
            if ann:
                type_name = self._resolve_type(ann)
        elif isinstance(value, ast.Call):
            type_name = self._constructed_type(value)
        if not type_name:
            return
        if isinstance(target, ast.Name):
            self.scopes[-1].var_types[target.id] = type_name
        elif isinstance(target, ast.Attribute) and isinstance(target.value, ast.Name) and target.value.id == "self":
            cls_key = self._class_key()
            if cls_key:
                self.attr_types.setdefault(cls_key, {})[target.attr] = type_name

    def _constructed_type(self, call: ast.Call) -> Optional[str]:
        name = dotted_name(call.func)
        if not name:
            return None
        resolved = self._resolve_type(name)
        if resolved in self.builder.class_methods or name.split(".")[-1][:1].isupper():
            return resolved
        return None

    # --- visitors ---
    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        for expr in [*node.decorator_list, *node.bases, *[k.value for k in node.keywords]]:
            self.visit(expr)
        outer = self.scopes[-1]
        key = f"{outer.key}.{node.name}" if outer.key else node.name
        if outer.kind == "function":
            outer.local_defs.setdefault(node.name, key)
        self.scopes.append(_Scope("class", key))
        for stmt in node.body:
            self.visit(stmt)
        self.scopes.pop()

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        self._handle_func(node)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:
        self._handle_func(node)

    def _handle_func(self, node: ast.AST) -> None:
        name = getattr(node, "name", "")
        outer = self.scopes[-1]
        key = f"{outer.key}.{name}" if outer.key else name

        # decorators, defaults and annotations evaluate in the enclosing scope
        for dec in node.decorator_list:
            rule = self.builder.registrations.match_decorator(dec, self.symbols)
            if rule is not None and rule.marks_caller:
                self.builder.mark_entry(key)
            self.visit(dec)
        args = node.args
        for default in [*args.defaults, *[d for d in args.kw_defaults if d is not None]]:
            self.visit(default)
        # Annotated[User, Depends(get_user)]
        for arg in [*args.posonlyargs, *args.args, *args.kwonlyargs, args.vararg, args.kwarg]:
            if arg is not None and arg.annotation is not None:
                self.visit(arg.annotation)
        if node.returns is not None:
            self.visit(node.returns)

        scope = _Scope("function", key)
        for stmt in node.body:
            if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
                scope.local_defs[stmt.name] = f"{key}.{stmt.name}"
        params = [*args.posonlyargs, *args.args, *args.kwonlyargs]
        is_method = outer.kind == "class"
        for idx, arg in enumerate(params):
            if is_method and idx == 0:
                continue
            ann = _annotation_name(arg.annotation)
            if ann:
                scope.var_types[arg.arg] = self._resolve_type(ann)

        self.scopes.append(scope)
        if is_method and name == "__init__":
            # self.x = x where x is an annotated parameter
            for stmt in ast.walk(node):
                if isinstance(stmt, ast.Assign) and isinstance(stmt.value, ast.Name):
                    ptype = scope.var_types.get(stmt.value.id)
                    for target in stmt.targets:
                        if (
                            ptype
                            and isinstance(target, ast.Attribute)
                            and isinstance(target.value, ast.Name)
                            and target.value.id == "self"
                        ):
                            self.attr_types.setdefault(outer.key, {})[target.attr] = ptype
        for stmt in node.body:
            self.visit(stmt)
        self.scopes.pop()

    def visit_Assign(self, node: ast.Assign) -> None:
        self.generic_visit(node)
        for target in node.targets:
            self._learn_assign(target, node.value, None)

    def visit_AnnAssign(self, node: ast.AnnAssign) -> None:
        self.generic_visit(node)
        self._learn_assign(node.target, node.value, node.annotation)

    def visit_Call(self, node: ast.Call) -> None:
        caller = self._caller()
        resolution = self.resolve_call(node)
        self.graph.resolutions.append(
            CallSite(caller=caller, resolution=resolution, module=self.module, line=getattr(node, "lineno", 0))
        )
        if resolution.has_edge:
            self.graph.add_edge(caller, resolution.target)

        rule = self.builder.registrations.match_call(node, self.symbols)
        arguments = RegistrationTable.function_arguments(node)
        if rule is not None:
            if rule.marks_caller:
                self.builder.mark_entry(caller)
            if rule.marks_arguments:
                for arg in arguments:
                    target = self._reference_target(arg)
                    if target:
                        self.builder.mark_entry(target)
        # Functions passed as values (callbacks) stay reachable through the caller
        for arg in arguments:
            target = self._reference_target(arg)
            if target and target in self.graph.declared:
                self.graph.add_edge(caller, target)
        self.generic_visit(node)


class CallGraphBuilder:
    """Builds a :class:`CallGraph` from the loaded modules."""

    def __init__(self, config: Optional[AnalyzerConfig] = None, registrations: Optional[RegistrationTable] = None):
        self.config = config or AnalyzerConfig()
        self.registrations = registrations or RegistrationTable(self.config.di.frameworks)
        self.graph = CallGraph()
        self.class_methods: Dict[str, Set[str]] = {}
        self._marked: Set[str] = set()

    def build(self, modules: Dict[str, SourceFile]) -> CallGraph:
        """Build the graph. On failure raises GraphBuildError; ``self.graph`` keeps what was built."""
        self.graph = CallGraph()
        self._marked = set()
        self.class_methods = {}
        for source in modules.values():
            for cls_key, methods in source.symbols.methods.items():
                self.class_methods.setdefault(cls_key, set()).update(methods)

        self._collect_nodes(modules)

        failures: List[str] = []
        for module, source in modules.items():
            try:
                _CallVisitor(source, self).visit(source.tree)
            except Exception as e:
                failures.append(f"{module}: {e}")

        self._finalize_entry_points()
        if failures:
            raise GraphBuildError("failed to build call graph: " + "; ".join(failures))
        return self.graph

    # --- pass 1 ---
    def _collect_nodes(self, modules: Dict[str, SourceFile]) -> None:
        entry_names = set(self.config.entry_function_names) | set(self.config.init_function_names)
        for module, source in modules.items():
            pseudo = module_node(module)
            self.graph.add_node(pseudo)
            self.graph.module_nodes.add(pseudo)
            for decl in source.functions:
                self.graph.add_declared(decl.key, module)
                if decl.enclosing is None and decl.name in entry_names:
                    self.graph.entry_points.add(decl.key)
                elif self.config.dunder_entry_points and _is_dunder(decl.name):
                    self.graph.entry_points.add(decl.key)
                elif decl.exported:
                    self.graph.entry_points.add(decl.key)

    # --- pass 2 helpers ---
    def mark_entry(self, key: str) -> None:
        self._marked.add(key)

    def constructor_of(self, target: str) -> str:
        """Calling a class runs its ``__init__`` when the class declares one."""
        methods = self.class_methods.get(target)
        if methods is not None and "__init__" in methods:
            return f"{target}.__init__"
        return target

    def _finalize_entry_points(self) -> None:
        for key in self._marked:
            if key in self.graph.declared:
                self.graph.entry_points.add(key)
