from __future__ import annotations

import copy

from safeprune.call_graph import CallGraph
from safeprune.node_types import FileAnalysis
from safeprune.reachability import ReachabilityAnalyzer


def _graph() -> CallGraph:
    g = CallGraph()
    for key in ("m.a", "m.b", "m.c", "m.d", "m.e"):
        g.add_declared(key, "m")
    g.entry_points.add("m.a")
    g.add_edge("m.a", "m.b")
    g.add_edge("m.b", "m.c")
    g.add_edge("m.c", "m.b")  # mutual recursion
    g.add_edge("m.c", "m.c")  # self call
    g.add_edge("m.d", "m.e")  # island, never reached
    return g


def _analyzer(g: CallGraph) -> ReachabilityAnalyzer:
    return ReachabilityAnalyzer(g, lambda path: "m")


def test_cycles_terminate_and_agree_with_closure() -> None:
    r = _analyzer(_graph())
    assert r.reachable_set() == {"m.a", "m.b", "m.c"}
    for key in ("m.a", "m.b", "m.c"):
        assert r.is_reachable(key)
    for key in ("m.d", "m.e"):
        assert not r.is_reachable(key)


def test_entry_points_are_always_reachable() -> None:
    g = _graph()
    g.entry_points.add("m.e")
    r = _analyzer(g)
    for ep in g.entry_points:
        assert r.is_reachable(ep)


def test_reachability_is_monotonic_in_edges() -> None:
    g = _graph()
    bigger = copy.deepcopy(g)
    bigger.add_edge("m.b", "m.d")
    small = _analyzer(g).reachable_set()
    large = _analyzer(bigger).reachable_set()
    assert small <= large
    assert {"m.d", "m.e"} <= large


def test_analyze_counts_unreachable_functions_of_the_file() -> None:
    g = _graph()
    g.add_declared("other.x", "other")
    r = _analyzer(g)
    analysis = FileAnalysis(path="src/m.py", total_functions=5)
    r.analyze("src/m.py", analysis)
    assert analysis.unreachable_functions == 2
    assert analysis.unreachable_names == ["m.d", "m.e"]
    # a pure read: the graph is untouched
    assert g.callees("m.d") == {"m.e"}


def test_prefix_sharing_modules_are_not_mixed() -> None:
    g = CallGraph()
    g.add_declared("app.core.f", "app.core")
    g.add_declared("app.core_extra.g", "app.core_extra")
    r = ReachabilityAnalyzer(g, lambda path: "app.core")
    assert r.unreachable_functions("src/app/core.py") == ["app.core.f"]


def test_explain_returns_shortest_path() -> None:
    r = _analyzer(_graph())
    assert r.explain("m.c") == ["m.a", "m.b", "m.c"]
    assert r.explain("m.a") == ["m.a"]
    assert r.explain("m.e") is None
