"""
Deletion-safety scoring.

Steps run in a fixed order over a populated FileAnalysis:

1. critical package override (NEVER-DELETE)
2. forced-DANGEROUS signals, each with its own weight
3. continuous adjustments: size penalty, unreachable bonus, pure-utility bonus
4. final level from the accumulated score

With ``preserve_level_floors`` (default) the level reached in steps 1-2 is a lower
bound for step 4; without it step 4 overrides unconditionally.

Path heuristics look at the project-relative POSIX path.
"""
from __future__ import annotations

from pathlib import PurePosixPath
from typing import Optional

from .config_loader import SafetyHeuristics
from .node_types import FileAnalysis, SafetyLevel


class SafetyScorer:
    def __init__(self, heuristics: Optional[SafetyHeuristics] = None):
        self.h = heuristics or SafetyHeuristics()

    def calculate_safety_level(self, analysis: FileAnalysis) -> None:
        analysis.safety_level = SafetyLevel.ULTRA_SAFE
        analysis.safety_score = 0

        self._apply_critical_package(analysis)
        self._force(analysis, analysis.has_interfaces, "interfaces", "Contains interfaces - DANGEROUS")
        self._force(analysis, analysis.has_di_usage, "di_usage", "DI framework usage - DANGEROUS")
        self._force(analysis, analysis.is_imported, "imported", "Imported elsewhere - DANGEROUS")
        self._force(analysis, analysis.has_tests, "tests", "Has associated tests - DANGEROUS")
        self._force(analysis, analysis.has_templates, "templates", "Contains template usage - DANGEROUS")
        analysis.safety_score += self.size_penalty(analysis.total_lines)
        analysis.safety_score -= self.unreachable_bonus(analysis)
        if analysis.exported_functions:
            analysis.safety_level = self._raise_level(analysis.safety_level, SafetyLevel.DANGEROUS)
            analysis.safety_score += len(analysis.exported_functions) * self.h.weight("exported")
            analysis.add_reason("Has exported functions - DANGEROUS")
        self._force(analysis, self.has_init_functions(analysis), "init", "Contains init() functions - DANGEROUS")
        self._force(analysis, self.has_main_function(analysis), "main", "Contains main() function - DANGEROUS")
        self._force(analysis, self.has_global_variables(analysis), "globals", "Contains global variables - DANGEROUS")
        self._force(analysis, self.has_state_modification(analysis), "state", "Modifies application state - DANGEROUS")
        if self.is_pure_utility(analysis):
            analysis.safety_score -= self.h.weight("utility_bonus")
            analysis.add_reason("Pure utility functions - SAFER")

        self._determine_final_level(analysis)

    # --- steps ---
    def _apply_critical_package(self, analysis: FileAnalysis) -> None:
        if self.is_critical_package(analysis.path):
            analysis.is_critical = True
            analysis.safety_level = SafetyLevel.NEVER_DELETE
            analysis.safety_score += self.h.weight("critical")
            analysis.add_reason("Critical package - NEVER DELETE")

    def _force(self, analysis: FileAnalysis, signal: bool, weight: str, reason: str) -> None:
        if not signal:
            return
        analysis.safety_level = self._raise_level(analysis.safety_level, SafetyLevel.DANGEROUS)
        analysis.safety_score += self.h.weight(weight)
        analysis.add_reason(reason)

    @staticmethod
    def _raise_level(current: SafetyLevel, level: SafetyLevel) -> SafetyLevel:
        return level if level.rank > current.rank else current

    def _determine_final_level(self, analysis: FileAnalysis) -> None:
        floor = analysis.safety_level
        score_level = self.level_for(analysis)
        if self.h.preserve_level_floors:
            analysis.safety_level = self._raise_level(floor, score_level)
        else:
            analysis.safety_level = score_level

    def level_for(self, analysis: FileAnalysis) -> SafetyLevel:
        """Level implied by the accumulated score alone."""
        if (
            analysis.safety_score < self.h.ultra_safe_threshold
            and analysis.unreachable_functions == analysis.total_functions
            and analysis.total_functions > 0
        ):
            return SafetyLevel.ULTRA_SAFE
        if analysis.safety_score < self.h.potentially_safe_threshold:
            return SafetyLevel.POTENTIALLY_SAFE
        return SafetyLevel.DANGEROUS

    # --- continuous adjustments ---
    def size_penalty(self, lines: int) -> int:
        for breakpoint, multiplier in zip(self.h.size_breakpoints, self.h.size_multipliers):
            if lines <= breakpoint:
                return lines * multiplier
        return lines * self.h.size_multipliers[-1]

    def unreachable_bonus(self, analysis: FileAnalysis) -> int:
        if analysis.total_functions <= 0:
            return 0
        pct = (analysis.unreachable_functions * 100) // analysis.total_functions
        return pct * self.h.weight("unreachable")

    # --- predicates ---
    @staticmethod
    def _path_has(path: str, keywords) -> bool:
        lowered = path.lower()
        return any(k.lower() in lowered for k in keywords)

    def is_critical_package(self, path: str) -> bool:
        return any(pkg in path for pkg in self.h.critical_packages)

    def has_state_modification(self, analysis: FileAnalysis) -> bool:
        return self._path_has(analysis.path, self.h.state_keywords)

    def is_pure_utility(self, analysis: FileAnalysis) -> bool:
        if self._path_has(analysis.path, self.h.utility_keywords):
            return True
        return analysis.total_lines <= self.h.small_file_lines and analysis.total_functions <= self.h.small_file_functions

    def has_init_functions(self, analysis: FileAnalysis) -> bool:
        return analysis.declares_init or self._path_has(analysis.path, self.h.init_keywords)

    def has_main_function(self, analysis: FileAnalysis) -> bool:
        if analysis.declares_main:
            return True
        p = PurePosixPath(analysis.path)
        if p.name in self.h.main_files:
            return True
        return any(part in self.h.entry_dirs for part in p.parts[:-1])

    def has_global_variables(self, analysis: FileAnalysis) -> bool:
        return analysis.declares_globals or self._path_has(analysis.path, self.h.global_keywords)
