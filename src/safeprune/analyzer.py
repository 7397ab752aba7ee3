"""
Analysis orchestrator: load -> call graph -> import graph -> per-file analysis.

    from safeprune.analyzer import Analyzer

    analyzer = Analyzer(config)
    analyzer.set_verbose(True)
    results = analyzer.run()
"""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

from .call_graph import CallGraph, CallGraphBuilder
from .complexity import annotate_complexity
from .config_loader import AnalyzerConfig, load_config
from .di_patterns import DIDetector
from .di_rules import RegistrationTable
from .errors import FileParseError, FileWalkError, GraphBuildError, ProjectLoadError
from .import_graph import ImportGraph, ImportGraphBuilder
from .node_types import FileAnalysis, Results, SafetyLevel
from .reachability import ReachabilityAnalyzer
from .safety import SafetyScorer
from .source_loader import SourceLoader
from .template_patterns import TemplateDetector
from .testing_patterns import TestAnalyzer


def _warn(message: str) -> None:
    print(f"⚠️  {message}", file=sys.stderr)


class Analyzer:
    def __init__(self, config: Optional[AnalyzerConfig] = None):
        self.config = config or AnalyzerConfig()
        self.loader = SourceLoader(self.config)
        self.registrations = RegistrationTable(self.config.di.frameworks)
        self.call_graph_builder = CallGraphBuilder(self.config, self.registrations)
        self.import_graph_builder = ImportGraphBuilder(self.loader.module_path_for)
        self.di = DIDetector(self.config.di, self.registrations)
        self.templates = TemplateDetector(self.config.templates)
        self.tests = TestAnalyzer(self.config.testing)
        self.scorer = SafetyScorer(self.config.heuristics)
        self.reachability: Optional[ReachabilityAnalyzer] = None

    # --- setters ---
    def set_verbose(self, verbose: bool) -> None:
        self.config.verbose = verbose

    def set_output_file(self, output: Optional[str]) -> None:
        self.config.output = output

    def set_json_output(self, json_output: bool) -> None:
        self.config.json_output = json_output

    def set_project_root(self, root: str) -> None:
        self.config.project_root = root
        self.loader = SourceLoader(self.config)
        self.import_graph_builder = ImportGraphBuilder(self.loader.module_path_for)

    @property
    def call_graph(self) -> CallGraph:
        return self.call_graph_builder.graph

    @property
    def import_graph(self) -> ImportGraph:
        return self.import_graph_builder.graph

    def _log(self, message: str) -> None:
        if self.config.verbose:
            print(message)

    # --- pipeline ---
    def run(self) -> Results:
        """Run the whole pipeline.

        Raises:
            ProjectLoadError: the project's module set could not be loaded.
            FileWalkError: the target directory could not be enumerated.
        """
        results = Results()

        self._log(f"🔍 Loading project {Path(self.config.project_root).resolve()} ...")
        try:
            modules = self.loader.load_project()
        except ProjectLoadError:
            raise
        except OSError as e:
            raise ProjectLoadError(f"failed to load project: {e}") from e
        for path, message in sorted(self.loader.load_errors.items()):
            _warn(f"Package load error: {message}")
            results.skipped[path] = message
        self._log(f"📦 Loaded {len(modules)} modules")

        self._log("🔍 Building call graph...")
        try:
            self.call_graph_builder.build(modules)
        except GraphBuildError as e:
            _warn(f"Warning: {e}")
            results.warnings.append(str(e))
        self.reachability = ReachabilityAnalyzer(self.call_graph, self.loader.module_path_for)
        self._log(
            f"🕸️  {len(self.call_graph.declared)} functions, {len(self.call_graph.entry_points)} entry points"
        )

        self._log("🔍 Building import graph...")
        try:
            self.import_graph_builder.build(modules)
        except GraphBuildError as e:
            _warn(f"Warning: {e}")
            results.warnings.append(str(e))

        self._log("🔍 Analyzing files...")
        try:
            files = self.loader.get_source_files(self.config.target_dir)
        except FileWalkError as e:
            raise FileWalkError(f"failed to analyze files: {e}") from e

        for file_path in files:
            try:
                analysis = self.analyze_file(file_path)
            except FileParseError as e:
                if self.config.verbose:
                    _warn(f"Error analyzing {e.path}: {e}")
                results.skipped[e.path] = str(e)
                continue
            results.files.append(analysis)

        results.files.sort(key=lambda a: a.safety_score)
        for analysis in results.files:
            if analysis.safety_level is SafetyLevel.ULTRA_SAFE:
                results.ultra_safe += 1
            elif analysis.safety_level is SafetyLevel.POTENTIALLY_SAFE:
                results.potentially_safe += 1
            elif analysis.safety_level is SafetyLevel.DANGEROUS:
                results.dangerous += 1
            elif analysis.safety_level is SafetyLevel.NEVER_DELETE:
                results.never_delete += 1
        self._log(f"✅ Analyzed {results.total_files} files")
        return results

    def analyze_file(self, file_path: str) -> FileAnalysis:
        """Analyse one file against the already built graphs. Raises FileParseError."""
        source = self.loader.parse_file(file_path)
        analysis = FileAnalysis(path=source.path)

        self.loader.analyze_file(source, analysis)

        self.di.analyze(source.tree, analysis, source.symbols)
        self.templates.analyze(source.tree, analysis)
        self.tests.analyze(source.tree, analysis)

        if self.reachability is None:
            self.reachability = ReachabilityAnalyzer(self.call_graph, self.loader.module_path_for)
        self.reachability.analyze(source.abs_path, analysis)
        self.import_graph_builder.analyze(source.abs_path, analysis)
        annotate_complexity(source.tree, analysis, self.config.complexity_threshold)

        self.scorer.calculate_safety_level(analysis)
        return analysis


def analyze_project(
    project_root: str = ".",
    config: Optional[AnalyzerConfig] = None,
    config_path: Optional[str] = None,
    target_dir: Optional[str] = None,
    verbose: bool = False,
) -> Results:
    """One-call API: load config (explicit, discovered under the root, or defaults) and run."""
    if config is None:
        config = load_config(Path(config_path) if config_path else None, base_dir=Path(project_root))
    config.project_root = project_root
    if target_dir is not None:
        config.target_dir = target_dir
    if verbose:
        config.verbose = True
    return Analyzer(config).run()
