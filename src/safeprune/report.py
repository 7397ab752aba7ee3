"""Text and JSON rendering of analysis results."""
from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

from .node_types import FileAnalysis, Results, SafetyLevel


def render_json(results: Results) -> str:
    return json.dumps(results.to_dict(), indent=2, ensure_ascii=False)


def _candidate_lines(fa: FileAnalysis) -> List[str]:
    lines = [
        f"  {fa.path}",
        f"    Functions: {fa.unreachable_functions}/{fa.total_functions} unreachable",
        f"    Lines: {fa.total_lines}",
        f"    Safety Score: {fa.safety_score}",
    ]
    if fa.unreachable_names:
        lines.append(f"    Unreachable functions: {', '.join(fa.unreachable_names)}")
    if fa.reasons:
        lines.append(f"    Reasons: {', '.join(fa.reasons)}")
    lines.append("")
    return lines


def _dangerous_lines(fa: FileAnalysis) -> List[str]:
    lines = [f"  {fa.path} ({fa.safety_level.value})", f"    Safety Score: {fa.safety_score}"]
    if fa.reasons:
        lines.append(f"    Protection reasons: {', '.join(fa.reasons)}")
    if fa.has_di_usage:
        lines.append("    ⚠️  Contains dependency injection usage")
    if fa.has_interfaces:
        lines.append("    ⚠️  Contains interfaces that may be implemented elsewhere")
    if fa.exported_functions:
        lines.append(f"    ⚠️  Exports functions: {', '.join(fa.exported_functions)}")
    if fa.is_imported:
        lines.append("    ⚠️  Imported by other packages")
    if fa.has_tests:
        lines.append("    ⚠️  Has associated tests")
    if fa.has_templates:
        lines.append("    ⚠️  Contains template usage")
    lines.append("")
    return lines


def render_text(results: Results) -> str:
    out: List[str] = [
        "🔍 Dead Code Analysis Results",
        "=============================",
        "",
        "📊 Summary:",
        f"  Total files analyzed: {results.total_files}",
        f"  Ultra-safe candidates: {results.ultra_safe}",
        f"  Potentially safe: {results.potentially_safe}",
        f"  Dangerous: {results.dangerous}",
        f"  Never delete: {results.never_delete}",
        "",
    ]

    prot = results.protection_summary()
    out += [
        "🛡️  Protection Summary:",
        "----------------------",
        f"  Critical packages protected: {prot['critical']}",
        f"  Files with DI usage: {prot['di_usage']}",
        f"  Files with interfaces: {prot['interfaces']}",
        f"  Files with exported functions: {prot['exported']}",
        f"  Files with tests: {prot['tests']}",
        f"  Files with templates: {prot['templates']}",
        f"  Files imported elsewhere: {prot['imported']}",
        "",
    ]

    out += ["🟢 ULTRA-SAFE Candidates (Safe to delete):", "-------------------------------------------"]
    ultra = [fa for fa in results.files if fa.safety_level is SafetyLevel.ULTRA_SAFE]
    for fa in ultra:
        out += _candidate_lines(fa)
    if not ultra:
        out.append("  No ultra-safe candidates found")
    out.append("")

    out += [
        "🟡 POTENTIALLY SAFE Candidates (Manual review recommended):",
        "--------------------------------------------------------",
    ]
    maybe = [fa for fa in results.files if fa.safety_level is SafetyLevel.POTENTIALLY_SAFE]
    for fa in maybe:
        out += _candidate_lines(fa)
    if not maybe:
        out.append("  No potentially safe candidates found")
    out.append("")

    out += ["🔴 DANGEROUS Files (DO NOT DELETE):", "-----------------------------------"]
    dangerous = [
        fa for fa in results.files if fa.safety_level in (SafetyLevel.DANGEROUS, SafetyLevel.NEVER_DELETE)
    ]
    for fa in dangerous:
        out += _dangerous_lines(fa)
    if not dangerous:
        out.append("  No dangerous files found")

    if results.skipped:
        out += ["", "⏭️  Skipped files:"]
        out += [f"  {path}: {msg}" for path, msg in sorted(results.skipped.items())]
    if results.warnings:
        out += ["", "⚠️  Warnings:"]
        out += [f"  {w}" for w in results.warnings]
    return "\n".join(out) + "\n"


def write_report(results: Results, output: Optional[str] = None, json_output: bool = False) -> str:
    """Render the report; write it to ``output`` when given, else return it for printing."""
    content = render_json(results) + "\n" if json_output else render_text(results)
    if output:
        path = Path(output)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return content
