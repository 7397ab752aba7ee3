from __future__ import annotations

from pathlib import Path
from typing import Dict, Tuple

from graphviz import Digraph
from graphviz.backend import ExecutableNotFound

from .import_graph import ImportGraph
from .node_types import Results, SafetyLevel

_LEVEL_COLORS = {
    SafetyLevel.ULTRA_SAFE: "#4CAF50",  # green
    SafetyLevel.POTENTIALLY_SAFE: "#FFC107",  # amber
    SafetyLevel.DANGEROUS: "#F44336",  # red
    SafetyLevel.NEVER_DELETE: "#7B1FA2",  # purple
}
_UNANALYZED_COLOR = "#E0E0E0"


def _get_short_name(module_name: str) -> str:
    if not module_name:
        return "root"
    return module_name.split(".")[-1]


def render_safety_graph(
    results: Results,
    import_graph: ImportGraph,
    output_base: str,
    fmt: str = "svg",
) -> Tuple[str, str]:
    """Import graph (importer -> imported) with analysed modules coloured by safety level.

    Returns (dot_path, rendered_path); rendered_path is "" when the Graphviz
    executable is not installed and only the DOT source was written.
    """
    dot = Digraph(
        "safeprune",
        graph_attr={"rankdir": "LR", "splines": "spline"},
        node_attr={"shape": "box", "style": "rounded,filled", "fontname": "Helvetica"},
        edge_attr={"arrowhead": "vee"},
    )

    analysed: Dict[str, str] = {}
    for fa in results.files:
        if not fa.module:
            continue
        analysed[fa.module] = fa.module
        label = (
            f"{_get_short_name(fa.module)}\n{fa.safety_level.value} ({fa.safety_score})\n"
            f"unreachable {fa.unreachable_functions}/{fa.total_functions}"
        )
        dot.node(fa.module, label=label, fillcolor=_LEVEL_COLORS[fa.safety_level], tooltip=fa.path)

    for imported, importer in sorted(import_graph.edges()):
        # only edges between project modules
        if imported not in analysed and importer not in analysed:
            continue
        for name in (imported, importer):
            if name not in analysed:
                analysed[name] = name
                dot.node(name, label=_get_short_name(name), fillcolor=_UNANALYZED_COLOR)
        dot.edge(importer, imported, color="black", style="dashed")

    Path(output_base).parent.mkdir(parents=True, exist_ok=True)
    dot_path = f"{output_base}.dot"
    rendered_path = f"{output_base}.{fmt}"
    dot.save(dot_path)

    try:
        dot.render(output_base, format=fmt, cleanup=True)
    except ExecutableNotFound:
        rendered_path = ""
    return dot_path, rendered_path
