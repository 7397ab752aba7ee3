"""
Configuration loader - YAML (safeprune.yaml) or pyproject.toml [tool.safeprune].

All heuristic tables (critical packages, path keywords, weights, DI frameworks)
live here as overridable data so the classifier can be exercised with
synthetic heuristics.
"""

from __future__ import annotations
from pathlib import Path
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field

import yaml

try:  # py3.11+
    import tomllib as tomli
except ImportError:
    import tomli

from .di_rules import DIFramework, default_frameworks
from .errors import ConfigError


DEFAULT_WEIGHTS: Dict[str, int] = {
    "critical": 100000,
    "interfaces": 50000,
    "di_usage": 20000,
    "imported": 10000,
    "tests": 5000,
    "templates": 3000,
    "exported": 1500,  # per exported function
    "init": 5000,
    "main": 10000,
    "globals": 3000,
    "state": 8000,
    "utility_bonus": 2000,
    "unreachable": 300,  # per percentage point
}


@dataclass
class SafetyHeuristics:
    """Keyword tables and weights used by the safety scorer."""
    critical_packages: List[str] = field(default_factory=lambda: [
        "sanitization", "logging", "config", "database", "interfaces", "errors",
        "events", "middleware/access", "middleware/session", "middleware/auth",
        "validation", "response", "module",
    ])
    state_keywords: List[str] = field(default_factory=lambda: [
        "database", "db", "sql", "sqlalchemy",
        "file", "fs", "os", "io",
        "http", "net", "url",
        "cache", "redis", "memcached",
        "queue", "kafka", "rabbitmq",
        "session", "cookie", "auth",
    ])
    utility_keywords: List[str] = field(default_factory=lambda: [
        "utils", "util", "helper", "helpers",
        "math", "string", "time", "format",
        "convert", "transform", "parse",
    ])
    init_keywords: List[str] = field(default_factory=lambda: ["init", "setup"])
    global_keywords: List[str] = field(default_factory=lambda: ["global", "var"])
    main_files: List[str] = field(default_factory=lambda: ["main.py", "__main__.py"])
    entry_dirs: List[str] = field(default_factory=lambda: ["cmd", "bin"])
    weights: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    # size penalty: lines * multiplier[i] for the first breakpoint >= lines, last multiplier beyond
    size_breakpoints: List[int] = field(default_factory=lambda: [10, 50, 100])
    size_multipliers: List[int] = field(default_factory=lambda: [1, 2, 3, 4])
    ultra_safe_threshold: int = 1000
    potentially_safe_threshold: int = 5000
    small_file_lines: int = 50
    small_file_functions: int = 5
    # Keep NEVER-DELETE / forced DANGEROUS as a lower bound on the final level
    preserve_level_floors: bool = True

    def weight(self, name: str) -> int:
        return int(self.weights.get(name, DEFAULT_WEIGHTS.get(name, 0)))


@dataclass
class DIConventions:
    frameworks: List[DIFramework] = field(default_factory=default_frameworks)
    constructor_prefixes: List[str] = field(default_factory=lambda: [
        "New", "Create", "Provide", "Make", "new_", "create_", "provide_", "make_",
    ])
    reflection_calls: List[str] = field(default_factory=lambda: [
        "getattr", "setattr", "hasattr", "delattr", "__import__", "globals", "vars",
    ])
    reflection_modules: List[str] = field(default_factory=lambda: ["inspect", "importlib"])


@dataclass
class TemplateConventions:
    keyword: str = "template"
    modules: List[str] = field(default_factory=lambda: ["jinja2", "mako", "chameleon"])


@dataclass
class TestingConventions:
    __test__ = False  # not a pytest class

    file_patterns: List[str] = field(default_factory=lambda: ["test_*.py", "*_test.py", "conftest.py"])
    function_prefixes: List[str] = field(default_factory=lambda: ["Test", "Benchmark", "Example", "test_"])
    modules: List[str] = field(default_factory=lambda: ["pytest", "unittest", "hypothesis", "mock"])
    call_keywords: List[str] = field(default_factory=lambda: ["assert", "require"])
    receiver_keyword: str = "test"


@dataclass
class AnalyzerConfig:
    """Complete analyzer configuration."""
    project_root: str = "."
    paths: List[str] = field(default_factory=lambda: ["src", "."])
    include: List[str] = field(default_factory=lambda: ["**/*.py"])
    exclude: List[str] = field(default_factory=lambda: [
        "**/.venv/**", "**/venv/**", "**/__pycache__/**",
        "**/build/**", "**/dist/**", "**/.git/**", "**/.tox/**",
        ".venv", "venv", "__pycache__", "build", "dist", ".git", ".tox",
    ])
    target_dir: str = "src"
    verbose: bool = False
    output: Optional[str] = None
    json_output: bool = False
    graph: Optional[str] = None
    graph_format: str = "svg"
    entry_function_names: List[str] = field(default_factory=lambda: ["main"])
    init_function_names: List[str] = field(default_factory=lambda: ["init", "setup"])
    dunder_entry_points: bool = True
    complexity_threshold: int = 10

    heuristics: SafetyHeuristics = field(default_factory=SafetyHeuristics)
    di: DIConventions = field(default_factory=DIConventions)
    templates: TemplateConventions = field(default_factory=TemplateConventions)
    testing: TestingConventions = field(default_factory=TestingConventions)


CONFIG_CANDIDATES = [
    "safeprune.yaml",
    "safeprune.yml",
    ".safeprune.yaml",
    ".safeprune.yml",
    "pyproject.toml",  # [tool.safeprune]
]


def load_config(config_path: Optional[Path] = None, base_dir: Optional[Path] = None) -> AnalyzerConfig:
    """
    Load configuration.

    Args:
        config_path: explicit config file; when None, look for one in base_dir (default cwd)

    Returns:
        AnalyzerConfig: defaults overlaid with the file's values
    """
    if config_path:
        return _load_config_file(Path(config_path))

    found_config = find_config_file(base_dir)
    if found_config:
        return _load_config_file(found_config)

    return AnalyzerConfig()


def find_config_file(base_dir: Optional[Path] = None) -> Optional[Path]:
    """Return the first existing config file by priority, or None."""
    base = Path(base_dir) if base_dir else Path(".")
    for name in CONFIG_CANDIDATES:
        candidate = base / name
        if candidate.exists():
            if candidate.name == "pyproject.toml":
                if _has_tool_config(candidate):
                    return candidate
                continue
            return candidate
    return None


def _load_config_file(config_path: Path) -> AnalyzerConfig:
    if not config_path.exists():
        raise ConfigError(f"config file does not exist: {config_path}")

    suffix = config_path.suffix.lower()
    if suffix in [".yaml", ".yml"]:
        return _load_yaml_config(config_path)
    elif suffix == ".toml":
        return _load_toml_config(config_path)
    else:
        raise ConfigError(f"unsupported config file format: {suffix}")


def _load_yaml_config(config_path: Path) -> AnalyzerConfig:
    try:
        with config_path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {config_path}: {e}") from e

    if not data:
        return AnalyzerConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping: {config_path}")
    return parse_config_data(data)


def _load_toml_config(config_path: Path) -> AnalyzerConfig:
    try:
        with config_path.open("rb") as f:
            data = tomli.load(f)
    except tomli.TOMLDecodeError as e:
        raise ConfigError(f"invalid TOML in {config_path}: {e}") from e

    if "tool" in data and "safeprune" in data["tool"]:
        config_data = data["tool"]["safeprune"]
    else:
        config_data = data
    return parse_config_data(config_data)


def _has_tool_config(pyproject_path: Path) -> bool:
    try:
        with pyproject_path.open("rb") as f:
            data = tomli.load(f)
    except (OSError, tomli.TOMLDecodeError):
        return False
    return "tool" in data and "safeprune" in data["tool"]


def parse_config_data(data: Dict[str, Any]) -> AnalyzerConfig:
    """Validate raw mapping data and overlay it on the defaults."""
    from .config_schema import validate_config_data

    # unset and null keys keep their defaults
    data = validate_config_data(data).model_dump(exclude_unset=True, exclude_none=True)
    config = AnalyzerConfig()

    for key in (
        "project_root", "paths", "include", "exclude", "target_dir", "verbose",
        "output", "json_output", "graph", "graph_format", "entry_function_names",
        "init_function_names", "dunder_entry_points", "complexity_threshold",
    ):
        if key in data:
            setattr(config, key, data[key])

    if "heuristics" in data:
        h = data["heuristics"] or {}
        heuristics = SafetyHeuristics()
        for key, value in h.items():
            if key == "weights":
                merged = dict(DEFAULT_WEIGHTS)
                merged.update({str(k): int(v) for k, v in (value or {}).items()})
                heuristics.weights = merged
            else:
                setattr(heuristics, key, value)
        if len(heuristics.size_multipliers) != len(heuristics.size_breakpoints) + 1:
            raise ConfigError("heuristics.size_multipliers needs one more entry than size_breakpoints")
        config.heuristics = heuristics

    if "di" in data:
        d = data["di"] or {}
        di = DIConventions()
        if "frameworks" in d:
            frameworks = [_parse_framework(item) for item in d["frameworks"] or []]
            if d.get("extend_defaults", False):
                frameworks = default_frameworks() + frameworks
            di.frameworks = frameworks
        for key in ("constructor_prefixes", "reflection_calls", "reflection_modules"):
            if key in d:
                setattr(di, key, d[key])
        config.di = di

    if "templates" in data:
        t = data["templates"] or {}
        config.templates = TemplateConventions(**t)

    if "testing" in data:
        t = data["testing"] or {}
        config.testing = TestingConventions(**t)

    return config


def _parse_framework(item: Dict[str, Any]) -> DIFramework:
    return DIFramework(
        name=str(item["name"]),
        modules=[str(m) for m in item.get("modules", []) or []],
        aliases=[str(a) for a in item.get("aliases", []) or []],
        registrations={
            str(cap): [str(m) for m in methods or []]
            for cap, methods in (item.get("registrations") or {}).items()
        },
    )


def create_example_config() -> str:
    """Return the content of an example config file."""
    return """# safeprune configuration
# Source roots; module names are computed relative to the first root containing a file
paths:
  - "src"
  - "."
# Only files under this directory are classified (the whole project is still loaded)
target_dir: "src"

include:
  - "**/*.py"
exclude:
  - "**/.venv/**"
  - "**/venv/**"
  - "**/__pycache__/**"
  - "**/build/**"
  - "**/dist/**"

entry_function_names: ["main"]
init_function_names: ["init", "setup"]

heuristics:
  critical_packages: ["config", "logging", "database", "errors", "validation"]
  # Keep NEVER-DELETE / DANGEROUS as a floor on the final level
  preserve_level_floors: true
  weights:
    exported: 1500

di:
  # Add a framework on top of the built-in ones
  extend_defaults: true
  frameworks:
    - name: "myinjector"
      modules: ["myinjector"]
      aliases: ["di"]
      registrations:
        provider: ["Provide"]
        invoker: ["Invoke"]
        module: ["Module"]
        annotation: ["Annotate"]
"""


def save_example_config(output_path: Optional[Path] = None) -> Path:
    if output_path is None:
        output_path = Path("safeprune.yaml")
    output_path.write_text(create_example_config(), encoding="utf-8")
    return output_path
