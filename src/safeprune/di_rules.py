"""
Dependency-injection registration rules.

A registration call hands a function to a DI container, which later calls it via
reflection; ordinary call analysis never sees that call. The rule table maps
(framework, capability, method) to "marks as entry point" so both the call-graph
builder and the DI detector share a single description of each framework.

Capabilities:
 - provider:   registers a constructor/factory (``providers.Factory(build_repo)``)
 - invoker:    runs functions at startup (``injector.Injector([configure])``)
 - module:     groups registrations into a module/container
 - annotation: marks injection points (``@inject``)
"""
from __future__ import annotations

import ast
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .node_types import SymbolTable

PROVIDER = "provider"
INVOKER = "invoker"
MODULE = "module"
ANNOTATION = "annotation"
CAPABILITIES = (PROVIDER, INVOKER, MODULE, ANNOTATION)


@dataclass(frozen=True)
class RegistrationRule:
    framework: str
    capability: str
    method: str
    marks_caller: bool = True
    marks_arguments: bool = True


@dataclass
class DIFramework:
    name: str
    modules: List[str] = field(default_factory=list)  # import prefixes
    aliases: List[str] = field(default_factory=list)  # receiver names recognised without an import
    registrations: Dict[str, List[str]] = field(default_factory=dict)  # capability -> methods

    def rules(self) -> List[RegistrationRule]:
        out: List[RegistrationRule] = []
        for capability in CAPABILITIES:
            for method in self.registrations.get(capability, []) or []:
                out.append(RegistrationRule(self.name, capability, method))
        return out

    def owns_module(self, module_path: str) -> bool:
        return any(_module_matches(module_path, m) for m in self.modules)


def default_frameworks() -> List[DIFramework]:
    return [
        DIFramework(
            name="dependency_injector",
            modules=["dependency_injector"],
            aliases=["providers", "containers"],
            registrations={
                PROVIDER: [
                    "Factory",
                    "Singleton",
                    "ThreadSafeSingleton",
                    "ThreadLocalSingleton",
                    "Callable",
                    "Coroutine",
                    "Resource",
                ],
                MODULE: ["DeclarativeContainer", "DynamicContainer", "DependenciesContainer"],
                ANNOTATION: ["inject"],
            },
        ),
        DIFramework(
            name="injector",
            modules=["injector"],
            aliases=["injector"],
            registrations={
                PROVIDER: ["provider", "multiprovider", "singleton"],
                INVOKER: ["Injector", "call_with_injection"],
                MODULE: ["Module"],
                ANNOTATION: ["inject"],
            },
        ),
        DIFramework(
            name="fastapi",
            modules=["fastapi"],
            aliases=["fastapi"],
            registrations={
                PROVIDER: ["Depends", "Security"],
            },
        ),
    ]


def _module_matches(target: str, prefix: str) -> bool:
    return target == prefix or target.startswith(prefix + ".")


def dotted_name(expr: Optional[ast.AST]) -> Optional[str]:
    """Return ``a.b.c`` for a Name/Attribute chain, else None."""
    parts: List[str] = []
    cur = expr
    while isinstance(cur, ast.Attribute):
        parts.append(cur.attr)
        cur = cur.value
    if isinstance(cur, ast.Name):
        parts.append(cur.id)
        return ".".join(reversed(parts))
    return None


class RegistrationTable:
    """Matches calls and decorators against the configured frameworks."""

    def __init__(self, frameworks: Optional[Iterable[DIFramework]] = None):
        self.frameworks: List[DIFramework] = list(frameworks if frameworks is not None else default_frameworks())
        self._rules: Dict[tuple, RegistrationRule] = {}
        for fw in self.frameworks:
            for rule in fw.rules():
                self._rules[(fw.name, rule.method)] = rule

    # --- framework lookup ---
    def framework_for_module(self, module_path: str) -> Optional[DIFramework]:
        for fw in self.frameworks:
            if fw.owns_module(module_path):
                return fw
        return None

    def framework_for_receiver(self, receiver: str, symbols: Optional[SymbolTable]) -> Optional[DIFramework]:
        """Framework whose package alias is ``receiver`` (an identifier or dotted chain)."""
        head = receiver.split(".")[0]
        bound = symbols.imports.get(head) if symbols is not None else None
        if bound:
            tail = receiver.split(".")[1:]
            target = ".".join([bound, *tail])
            fw = self.framework_for_module(target)
            if fw is not None:
                return fw
            # Bound to something else: an import shadows the configured alias
            return None
        if "." in receiver:
            return self.framework_for_module(receiver)
        for fw in self.frameworks:
            if receiver in fw.aliases:
                return fw
        return None

    def receiver_framework(self, call: ast.Call, symbols: Optional[SymbolTable]) -> Optional[DIFramework]:
        """Framework of ``alias.method(...)`` calls, whatever the method."""
        func = call.func
        if not isinstance(func, ast.Attribute):
            return None
        receiver = dotted_name(func.value)
        if not receiver:
            return None
        return self.framework_for_receiver(receiver, symbols)

    # --- rule matching ---
    def match_call(self, call: ast.Call, symbols: Optional[SymbolTable]) -> Optional[RegistrationRule]:
        return self._match_callee(call.func, symbols)

    def match_decorator(self, decorator: ast.AST, symbols: Optional[SymbolTable]) -> Optional[RegistrationRule]:
        target = decorator.func if isinstance(decorator, ast.Call) else decorator
        return self._match_callee(target, symbols)

    def _match_callee(self, func: ast.AST, symbols: Optional[SymbolTable]) -> Optional[RegistrationRule]:
        if isinstance(func, ast.Attribute):
            receiver = dotted_name(func.value)
            if not receiver:
                return None
            fw = self.framework_for_receiver(receiver, symbols)
            if fw is None:
                return None
            return self._rules.get((fw.name, func.attr))
        if isinstance(func, ast.Name) and symbols is not None:
            bound = symbols.imports.get(func.id)
            if not bound or "." not in bound:
                return None
            module_path, _, member = bound.rpartition(".")
            fw = self.framework_for_module(module_path)
            if fw is None:
                return None
            return self._rules.get((fw.name, member))
        return None

    @staticmethod
    def function_arguments(call: ast.Call) -> List[ast.AST]:
        """Positional and keyword arguments that may name a registered function."""
        out: List[ast.AST] = []
        for arg in call.args:
            if isinstance(arg, (ast.Name, ast.Attribute)):
                out.append(arg)
            elif isinstance(arg, (ast.List, ast.Tuple, ast.Set)):
                out.extend(e for e in arg.elts if isinstance(e, (ast.Name, ast.Attribute)))
        for kw in call.keywords:
            if isinstance(kw.value, (ast.Name, ast.Attribute)):
                out.append(kw.value)
        return out
