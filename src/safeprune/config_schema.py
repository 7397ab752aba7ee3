"""
Pydantic-based schema validation for safeprune configuration data.

Goals
- Catch unknown or misspelled keys early (top-level, heuristics, di, templates, testing)
- Enforce proper types for every field before it reaches the dataclasses
"""
from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError


class HeuristicsModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    critical_packages: Optional[List[str]] = None
    state_keywords: Optional[List[str]] = None
    utility_keywords: Optional[List[str]] = None
    init_keywords: Optional[List[str]] = None
    global_keywords: Optional[List[str]] = None
    main_files: Optional[List[str]] = None
    entry_dirs: Optional[List[str]] = None
    weights: Dict[str, int] = Field(default_factory=dict)
    size_breakpoints: Optional[List[int]] = None
    size_multipliers: Optional[List[int]] = None
    ultra_safe_threshold: Optional[int] = None
    potentially_safe_threshold: Optional[int] = None
    small_file_lines: Optional[int] = None
    small_file_functions: Optional[int] = None
    preserve_level_floors: Optional[bool] = None

    @field_validator("size_breakpoints")
    @classmethod
    def _ascending(cls, v: Optional[List[int]]) -> Optional[List[int]]:
        if v is not None and v != sorted(v):
            raise ValueError("size_breakpoints must be ascending")
        return v


class FrameworkModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    name: str
    modules: List[str] = Field(default_factory=list)
    aliases: List[str] = Field(default_factory=list)
    registrations: Dict[str, List[str]] = Field(default_factory=dict)

    @field_validator("registrations")
    @classmethod
    def _known_capabilities(cls, v: Dict[str, List[str]]) -> Dict[str, List[str]]:
        from .di_rules import CAPABILITIES

        unknown = sorted(set(v) - set(CAPABILITIES))
        if unknown:
            raise ValueError(f"unknown capabilities: {', '.join(unknown)}")
        return v


class DIModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    frameworks: List[FrameworkModel] = Field(default_factory=list)
    extend_defaults: bool = False
    constructor_prefixes: Optional[List[str]] = None
    reflection_calls: Optional[List[str]] = None
    reflection_modules: Optional[List[str]] = None


class TemplatesModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    keyword: Optional[str] = None
    modules: Optional[List[str]] = None


class TestingModel(BaseModel):
    __test__ = False

    model_config = ConfigDict(extra="forbid")
    file_patterns: Optional[List[str]] = None
    function_prefixes: Optional[List[str]] = None
    modules: Optional[List[str]] = None
    call_keywords: Optional[List[str]] = None
    receiver_keyword: Optional[str] = None


class ConfigModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    version: Optional[str] = None
    project_root: Optional[str] = None
    paths: Optional[List[str]] = None
    include: Optional[List[str]] = None
    exclude: Optional[List[str]] = None
    target_dir: Optional[str] = None
    verbose: Optional[bool] = None
    output: Optional[str] = None
    json_output: Optional[bool] = None
    graph: Optional[str] = None
    graph_format: Optional[str] = None
    entry_function_names: Optional[List[str]] = None
    init_function_names: Optional[List[str]] = None
    dunder_entry_points: Optional[bool] = None
    complexity_threshold: Optional[int] = None
    heuristics: Optional[HeuristicsModel] = None
    di: Optional[DIModel] = None
    templates: Optional[TemplatesModel] = None
    testing: Optional[TestingModel] = None


def validate_config_data(data: dict) -> ConfigModel:
    """Validate loaded config data.

    Raises:
        ConfigError: wrapping the pydantic ValidationError text.
    """
    try:
        return ConfigModel.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"invalid configuration: {e}") from e
