#!/usr/bin/env python3
"""
safeprune command line.

    safeprune [PATH] [--config FILE] [--verbose] [--json] [--output FILE]
              [--graph BASE] [--target-dir DIR] [--explain KEY] [--init]

Exit codes: 0 success, 1 fatal analysis/config error, 2 usage error (argparse).
"""
from __future__ import annotations

import sys
import argparse
from pathlib import Path
from typing import List, Optional

from .errors import SafePruneError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="safeprune",
        description="Find unreachable functions and classify files by deletion safety",
    )
    parser.add_argument("path", nargs="?", default=".", help="Project root (default: current directory)")
    parser.add_argument("--config", default=None, help="Config file (YAML or pyproject.toml)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Print progress while analysing")
    parser.add_argument("--json", dest="json_output", action="store_true", help="Emit the report as JSON")
    parser.add_argument("--output", "-o", default=None, help="Write the report to this file")
    parser.add_argument("--graph", default=None, help="Render the import graph to BASE.dot / BASE.<format>")
    parser.add_argument("--format", dest="graph_format", default=None, help="Graph format (default: svg)")
    parser.add_argument("--target-dir", default=None, help="Directory (relative to PATH) whose files are classified")
    parser.add_argument("--explain", default=None, metavar="KEY", help="Show one entry-point call path to a function")
    parser.add_argument("--init", action="store_true", help="Write an example safeprune.yaml and exit")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Lazy imports keep --help fast
    from .config_loader import load_config, save_example_config

    if args.init:
        target = Path(args.path) / "safeprune.yaml"
        if target.exists():
            print(f"⚠️  Config file already exists: {target}")
            return 1
        save_example_config(target)
        print(f"✅ Config file written: {target}")
        return 0

    from .analyzer import Analyzer
    from .graphviz_render import render_safety_graph
    from .report import write_report

    try:
        config = load_config(Path(args.config) if args.config else None, base_dir=Path(args.path))
        config.project_root = args.path
        if args.target_dir is not None:
            config.target_dir = args.target_dir
        if args.verbose:
            config.verbose = True
        if args.json_output:
            config.json_output = True
        if args.output is not None:
            config.output = args.output
        if args.graph is not None:
            config.graph = args.graph
        if args.graph_format is not None:
            config.graph_format = args.graph_format

        analyzer = Analyzer(config)
        results = analyzer.run()
    except SafePruneError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    content = write_report(results, output=config.output, json_output=config.json_output)
    if config.output:
        print(f"✅ Report written: {config.output}")
    else:
        sys.stdout.write(content)

    if config.graph:
        dot_path, rendered = render_safety_graph(results, analyzer.import_graph, config.graph, config.graph_format)
        print(f"🖼️  Graph source: {dot_path}")
        if rendered:
            print(f"🖼️  Graph: {rendered}")
        else:
            print("⚠️  Graphviz executable not found; only the DOT file was written", file=sys.stderr)

    if args.explain:
        path = analyzer.reachability.explain(args.explain) if analyzer.reachability else None
        if path:
            print(f"🧭 {' -> '.join(path)}")
        else:
            print(f"🧭 {args.explain} is not reachable from any entry point")
    return 0


if __name__ == "__main__":
    sys.exit(main())
