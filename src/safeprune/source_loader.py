"""
Source loading: walk the project, parse every module with ``ast`` and extract the
per-file facts the rest of the pipeline needs (declared functions, imports,
symbol bindings, interface classes and a few declaration-kind predicates).

Module names follow the import system: ``src/pkg/__init__.py`` -> ``pkg``,
``src/pkg/mod.py`` -> ``pkg.mod`` (relative to the first configured source root
containing the file).
"""
from __future__ import annotations

import ast
import fnmatch
import os
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Set

from .config_loader import AnalyzerConfig
from .errors import FileParseError, FileWalkError, ProjectLoadError
from .node_types import FileAnalysis, FunctionDecl, SourceFile, SymbolTable, qualify


def _glob_match(rel: str, pat: str) -> bool:
    # a leading "**/" also matches zero directories
    if fnmatch.fnmatch(rel, pat):
        return True
    return pat.startswith("**/") and _glob_match(rel, pat[3:])


def _is_excluded(rel: str, exclude: Iterable[str]) -> bool:
    return any(_glob_match(rel, pat) for pat in exclude)


def _is_excluded_dir(rel: str, exclude: Iterable[str]) -> bool:
    # "**/name/**" needs a trailing separator to match the directory itself
    return _is_excluded(rel, exclude) or _is_excluded(rel + "/", exclude)


def collect_py_files(
    base: Path,
    include: List[str],
    exclude: List[str],
    onerror: Optional[Callable[[OSError], None]] = None,
) -> List[Path]:
    """Recursively collect ``*.py`` files under base, pruning excluded dirs."""
    collected: List[Path] = []
    if not base.is_dir():
        return collected
    for dirpath, dirnames, filenames in os.walk(base, onerror=onerror):
        for d in list(dirnames):
            rel = (Path(dirpath) / d).relative_to(base).as_posix()
            if _is_excluded_dir(rel, exclude):
                dirnames.remove(d)
        dirnames.sort()
        for fn in sorted(filenames):
            if not fn.endswith(".py"):
                continue
            f_path = Path(dirpath) / fn
            rel = f_path.relative_to(base).as_posix()
            if _is_excluded(rel, exclude):
                continue
            if include and not any(_glob_match(rel, pat) for pat in include):
                continue
            collected.append(f_path)
    return collected


def path_to_module(file_path: Path, roots: List[Path]) -> Optional[str]:
    for root in roots:
        try:
            rel = file_path.relative_to(root)
        except ValueError:
            continue
        parts = list(rel.parts)
        if not parts:
            return None
        if parts[-1] == "__init__.py":
            parts = parts[:-1]
        else:
            parts[-1] = Path(parts[-1]).stem
        return ".".join(p for p in parts if p)
    return None


def resolve_relative_import(module: str, is_package: bool, level: int, target: Optional[str]) -> str:
    """Absolute module for ``from <level dots><target> import ...`` inside ``module``."""
    if level <= 0:
        return target or ""
    parts = module.split(".") if module else []
    if not is_package:
        parts = parts[:-1]
    drop = level - 1
    base = parts[: len(parts) - drop] if drop <= len(parts) else []
    if target:
        base = [*base, target]
    return ".".join(base)


def _is_public(name: str) -> bool:
    return not name.startswith("_")


def _static_all(tree: ast.Module) -> Optional[Set[str]]:
    """Names listed in a literal module-level ``__all__``, or None."""
    for node in tree.body:
        if isinstance(node, ast.Assign):
            targets = node.targets
        elif isinstance(node, ast.AnnAssign):
            targets = [node.target]
        else:
            continue
        if not any(isinstance(t, ast.Name) and t.id == "__all__" for t in targets):
            continue
        value = node.value
        if isinstance(value, (ast.List, ast.Tuple, ast.Set)):
            names = {
                e.value for e in value.elts if isinstance(e, ast.Constant) and isinstance(e.value, str)
            }
            return names
    return None


def _dotted(expr: Optional[ast.AST]) -> str:
    parts: List[str] = []
    cur = expr
    while isinstance(cur, ast.Attribute):
        parts.append(cur.attr)
        cur = cur.value
    if isinstance(cur, ast.Name):
        parts.append(cur.id)
    return ".".join(reversed(parts))


def _is_interface_class(node: ast.ClassDef) -> bool:
    for base in node.bases:
        target = base.value if isinstance(base, ast.Subscript) else base
        if _dotted(target).split(".")[-1] in {"ABC", "Protocol"}:
            return True
    for kw in node.keywords:
        if kw.arg == "metaclass" and _dotted(kw.value).split(".")[-1] == "ABCMeta":
            return True
    for item in node.body:
        if isinstance(item, (ast.FunctionDef, ast.AsyncFunctionDef)):
            for dec in item.decorator_list:
                if _dotted(dec).split(".")[-1] == "abstractmethod":
                    return True
    return False


def _is_main_guard(node: ast.stmt) -> bool:
    if not isinstance(node, ast.If) or not isinstance(node.test, ast.Compare):
        return False
    test = node.test
    operands = [test.left, *test.comparators]
    has_name = any(isinstance(o, ast.Name) and o.id == "__name__" for o in operands)
    has_main = any(isinstance(o, ast.Constant) and o.value == "__main__" for o in operands)
    return has_name and has_main


def _is_constant_name(name: str) -> bool:
    if name.startswith("__") and name.endswith("__"):
        return True
    return name.upper() == name


class _DeclarationCollector(ast.NodeVisitor):
    """Collect function declarations, classes and interfaces for one module."""

    def __init__(self, module: str, symbols: SymbolTable, exported_names: Optional[Set[str]]):
        self.module = module
        self.symbols = symbols
        self.exported_names = exported_names
        # innermost-last stack of ("class" | "function", key)
        self.scopes: List[tuple] = []
        self.functions: List[FunctionDecl] = []
        self.interfaces: List[str] = []
        self.has_global_stmt = False

    def _scope_key(self) -> str:
        return self.scopes[-1][1] if self.scopes else self.module

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        key = qualify(self._scope_key(), node.name)
        if not self.scopes:
            self.symbols.classes[node.name] = key
        self.symbols.methods.setdefault(key, set())
        if _is_interface_class(node):
            self.interfaces.append(node.name)
        self.scopes.append(("class", key))
        self.generic_visit(node)
        self.scopes.pop()

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        self._handle_func(node)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:
        self._handle_func(node)

    def _handle_func(self, node: ast.AST) -> None:
        name = getattr(node, "name", "")
        key = qualify(self._scope_key(), name)
        kind = self.scopes[-1][0] if self.scopes else "module"
        if kind == "module":
            exported = _is_public(name) and (self.exported_names is None or name in self.exported_names)
            self.symbols.functions[name] = key
            decl = FunctionDecl(key=key, name=name, module=self.module, line=node.lineno, exported=exported)
        elif kind == "class":
            class_key = self.scopes[-1][1]
            self.symbols.methods.setdefault(class_key, set()).add(name)
            decl = FunctionDecl(
                key=key,
                name=name,
                module=self.module,
                line=node.lineno,
                exported=_is_public(name),
                class_name=class_key[len(self.module) + 1:] if self.module else class_key,
            )
        else:
            decl = FunctionDecl(
                key=key, name=name, module=self.module, line=node.lineno, enclosing=self.scopes[-1][1]
            )
        self.functions.append(decl)
        self.scopes.append(("function", key))
        self.generic_visit(node)
        self.scopes.pop()

    def visit_Global(self, node: ast.Global) -> None:
        self.has_global_stmt = True


class SourceLoader:
    """Loads and parses the project's modules."""

    def __init__(self, config: Optional[AnalyzerConfig] = None):
        self.config = config or AnalyzerConfig()
        self.project_root = Path(self.config.project_root).resolve()
        self.roots: List[Path] = []
        self.modules: Dict[str, SourceFile] = {}
        self.load_errors: Dict[str, str] = {}

    # --- project level ---
    def load_project(self, project_root: Optional[str] = None) -> Dict[str, SourceFile]:
        """Parse every module under the configured source roots.

        A file that fails to parse is recorded in ``load_errors`` and skipped.
        Raises ProjectLoadError when the project itself cannot be loaded.
        """
        if project_root is not None:
            self.project_root = Path(project_root).resolve()
        root = self.project_root
        if not root.exists():
            raise ProjectLoadError(f"failed to load project: {root} does not exist")
        if not root.is_dir():
            raise ProjectLoadError(f"failed to load project: {root} is not a directory")

        self.roots = self._source_roots()
        if not self.roots:
            raise ProjectLoadError(f"failed to load project: no source roots found under {root}")

        self.modules = {}
        self.load_errors = {}
        seen: Set[Path] = set()
        files: List[Path] = []
        for base in self.roots:
            for f in collect_py_files(base, self.config.include, self.config.exclude):
                rf = f.resolve()
                if rf in seen:
                    continue
                seen.add(rf)
                files.append(rf)
        if not files:
            raise ProjectLoadError(f"failed to load project: no Python sources under {root}")

        # Module names first so that `from pkg import sub` can be linked to loaded submodules
        known = {m for m in (path_to_module(f, self.roots) for f in files) if m is not None}
        for f in files:
            try:
                source = self._parse(f, known)
            except FileParseError as e:
                self.load_errors[self.relative_path(f)] = str(e)
                continue
            if source.module in self.modules:
                # shadowed by an earlier root (e.g. src/ wins over .)
                continue
            self.modules[source.module] = source
        return self.modules

    def get_modules(self) -> Dict[str, SourceFile]:
        return self.modules

    def get_source_files(self, target_dir: Optional[str] = None) -> List[str]:
        """``*.py`` files under <project_root>/<target_dir>, filtered like ``load_project``.

        Raises FileWalkError if the directory is missing or cannot be walked.
        """
        target = self.project_root / (target_dir if target_dir is not None else self.config.target_dir)
        if not target.is_dir():
            raise FileWalkError(f"failed to walk directory: {target} is not a directory")

        def _raise(err: OSError) -> None:
            raise err

        try:
            files = collect_py_files(target, self.config.include, self.config.exclude, onerror=_raise)
        except OSError as e:
            raise FileWalkError(f"failed to walk directory {target}: {e}") from e
        return [str(f) for f in files]

    # --- file level ---
    def parse_file(self, file_path: str) -> SourceFile:
        """Parse a single file on demand. Raises FileParseError."""
        return self._parse(Path(file_path).resolve(), set(self.modules))

    def analyze_file(self, source: SourceFile, analysis: FileAnalysis) -> None:
        """Copy the basic per-file facts into the analysis record."""
        analysis.module = source.module
        analysis.package_name = source.package_name
        analysis.total_lines = source.total_lines
        analysis.total_functions = len(source.functions)
        analysis.exported_functions = list(source.exported_functions)
        analysis.imported_packages = list(source.imported_packages)
        analysis.declares_main = source.declares_main
        analysis.declares_init = source.declares_init
        analysis.declares_globals = source.declares_globals
        if source.has_interfaces:
            analysis.has_interfaces = True
            analysis.add_reason("Contains interface definitions")

    def module_path_for(self, file_path: str) -> str:
        """Dotted module path of a file (project-relative root found, extension dropped)."""
        p = Path(file_path)
        if not p.is_absolute():
            p = self.project_root / p
        p = p.resolve()
        roots = self.roots or self._source_roots()
        mod = path_to_module(p, roots)
        if mod is not None:
            return mod
        return path_to_module(p, [self.project_root]) or ""

    def relative_path(self, file_path: Path) -> str:
        p = Path(file_path)
        try:
            return p.resolve().relative_to(self.project_root).as_posix()
        except ValueError:
            return p.as_posix()

    # --- internals ---
    def _source_roots(self) -> List[Path]:
        roots: List[Path] = []
        for p in self.config.paths:
            base = (self.project_root / p).resolve()
            if base.is_dir() and base not in roots:
                roots.append(base)
        return roots

    def _parse(self, file_path: Path, known_modules: Set[str]) -> SourceFile:
        rel = self.relative_path(file_path)
        try:
            text = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise FileParseError(rel, str(e)) from e
        try:
            tree = ast.parse(text, filename=str(file_path))
        except (SyntaxError, ValueError, RecursionError, MemoryError) as e:
            raise FileParseError(rel, str(e) or type(e).__name__) from e

        module = self.module_path_for(str(file_path))
        is_package = file_path.name == "__init__.py"
        if is_package:
            package_name = module
        else:
            package_name = module.rpartition(".")[0]

        symbols = SymbolTable(module=module)
        imported = self._collect_imports(tree, module, is_package, symbols, known_modules)

        collector = _DeclarationCollector(module, symbols, _static_all(tree))
        try:
            collector.visit(tree)
        except RecursionError as e:
            raise FileParseError(rel, f"nesting too deep: {e}") from e

        return SourceFile(
            path=rel,
            abs_path=str(file_path),
            module=module,
            package_name=package_name,
            total_lines=len(text.splitlines()),
            tree=tree,
            symbols=symbols,
            functions=collector.functions,
            imported_packages=imported,
            interfaces=collector.interfaces,
            declares_main=self._declares_main(tree),
            declares_init=self._declares_init(tree),
            declares_globals=collector.has_global_stmt or self._declares_globals(tree),
        )

    def _collect_imports(
        self,
        tree: ast.Module,
        module: str,
        is_package: bool,
        symbols: SymbolTable,
        known_modules: Set[str],
    ) -> List[str]:
        imported: List[str] = []

        def add(name: str) -> None:
            if name and name != module and name not in imported:
                imported.append(name)

        for node in ast.walk(tree):
            if isinstance(node, ast.Import):
                for alias in node.names:
                    name = alias.name
                    add(name)
                    if alias.asname:
                        symbols.imports.setdefault(alias.asname, name)
                        symbols.imported_modules.add(alias.asname)
                    else:
                        head = name.split(".")[0]
                        symbols.imports.setdefault(head, head)
                        symbols.imported_modules.add(head)
            elif isinstance(node, ast.ImportFrom):
                source = resolve_relative_import(module, is_package, node.level or 0, node.module)
                add(source)
                for alias in node.names:
                    if alias.name == "*":
                        continue
                    target = f"{source}.{alias.name}" if source else alias.name
                    symbols.imports.setdefault(alias.asname or alias.name, target)
                    if target in known_modules:
                        add(target)
                        symbols.imported_modules.add(alias.asname or alias.name)
        return imported

    def _declares_main(self, tree: ast.Module) -> bool:
        names = set(self.config.entry_function_names)
        for node in tree.body:
            if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)) and node.name in names:
                return True
            if _is_main_guard(node):
                return True
        return False

    def _declares_init(self, tree: ast.Module) -> bool:
        names = set(self.config.init_function_names)
        for node in tree.body:
            if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)) and node.name in names:
                return True
            if isinstance(node, ast.Expr) and isinstance(node.value, (ast.Call, ast.Await)):
                return True
        return False

    @staticmethod
    def _declares_globals(tree: ast.Module) -> bool:
        for node in tree.body:
            if isinstance(node, ast.Assign):
                targets = node.targets
            elif isinstance(node, (ast.AnnAssign, ast.AugAssign)):
                if isinstance(node, ast.AnnAssign) and node.value is None:
                    continue
                targets = [node.target]
            else:
                continue
            for t in targets:
                names = [t] if isinstance(t, ast.Name) else [e for e in getattr(t, "elts", []) if isinstance(e, ast.Name)]
                if any(not _is_constant_name(n.id) for n in names):
                    return True
        return False
