"""
codegraph.__main__ -- CLI entry point.

Usage:
    codegraph serve [--graph-path PATH] [--config PATH] [--transport stdio|sse|streamable-http]
    codegraph stats [--graph-path PATH]
    codegraph analyze PATTERN [PATTERN ...] [--graph-path PATH]
    codegraph search QUERY [--graph-path PATH]
    codegraph read [--type TYPE ...] [--graph-path PATH]

Without --graph-path the snapshot location comes from
CODEGRAPH_GRAPH_PATH (or MEMORY_FILE_PATH), else ./codegraph.json.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from codegraph.core.config import Config
from codegraph.core.errors import GraphError


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="codegraph",
        description="codegraph -- persistent knowledge graph of a codebase, served over MCP",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )

    sub = parser.add_subparsers(dest="command")

    # -- serve -------------------------------------------------------------
    serve_p = sub.add_parser("serve", help="Start the MCP server")
    serve_p.add_argument("--graph-path", default=None, help="Path to the graph snapshot")
    serve_p.add_argument("--config", default=None, help="Path to codegraph.yaml config")
    serve_p.add_argument(
        "--transport",
        default="stdio",
        choices=["stdio", "sse", "streamable-http"],
        help="MCP transport (default: stdio)",
    )
    serve_p.add_argument("--host", default="127.0.0.1", help="Bind address for HTTP transports")
    serve_p.add_argument("--port", type=int, default=8765, help="Port for HTTP transports")

    # -- stats -------------------------------------------------------------
    stats_p = sub.add_parser("stats", help="Show graph statistics")
    stats_p.add_argument("--graph-path", default=None, help="Path to the graph snapshot")

    # -- analyze -----------------------------------------------------------
    analyze_p = sub.add_parser("analyze", help="Chunk source files into the graph")
    analyze_p.add_argument("patterns", nargs="+", help="Glob patterns (** is recursive)")
    analyze_p.add_argument("--graph-path", default=None, help="Path to the graph snapshot")

    # -- search ------------------------------------------------------------
    search_p = sub.add_parser("search", help="Search nodes")
    search_p.add_argument("query", help="Substring to look for")
    search_p.add_argument("--graph-path", default=None, help="Path to the graph snapshot")

    # -- read --------------------------------------------------------------
    read_p = sub.add_parser("read", help="Dump nodes and edges")
    read_p.add_argument(
        "--type", dest="types", action="append", default=None, help="Only nodes of this type"
    )
    read_p.add_argument("--graph-path", default=None, help="Path to the graph snapshot")

    args = parser.parse_args(argv)

    # -- Logging -----------------------------------------------------------
    # stderr only: stdout is the stdio transport
    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )

    if args.command is None:
        parser.print_help()
        return 0

    # -- Dispatch ----------------------------------------------------------
    commands = {
        "serve": _cmd_serve,
        "stats": _cmd_stats,
        "analyze": _cmd_analyze,
        "search": _cmd_search,
        "read": _cmd_read,
    }
    try:
        commands[args.command](args)
    except GraphError as exc:
        print(json.dumps(exc.to_dict(), indent=2), file=sys.stderr)
        return 1
    return 0


# ---------------------------------------------------------------------------
# Command implementations
# ---------------------------------------------------------------------------


def _open_system(args: argparse.Namespace):
    from codegraph.system import GraphSystem

    return GraphSystem(config=Config.from_env(graph_path=args.graph_path))


def _cmd_serve(args: argparse.Namespace) -> None:
    """Start the MCP server."""
    from codegraph.server import run_server

    run_server(
        graph_path=args.graph_path,
        config_path=args.config,
        transport=args.transport,
        host=args.host,
        port=args.port,
    )


def _cmd_stats(args: argparse.Namespace) -> None:
    """Print graph statistics."""
    with _open_system(args) as system:
        print(json.dumps(system.get_stats().to_dict(), indent=2))


def _cmd_analyze(args: argparse.Namespace) -> None:
    """Chunk matching files and print the analysis report."""
    with _open_system(args) as system:
        report = system.analyzer.analyze(args.patterns)
        print(json.dumps(report.to_dict(), indent=2))


def _cmd_search(args: argparse.Namespace) -> None:
    """Search nodes and print the matches."""
    with _open_system(args) as system:
        view = system.queries.search_nodes(args.query)
        if view.nodes:
            print(json.dumps(view.to_dict(), indent=2, ensure_ascii=False))
        else:
            print("No results found.")


def _cmd_read(args: argparse.Namespace) -> None:
    """Print the (optionally type-filtered) graph."""
    with _open_system(args) as system:
        flt = {"types": args.types} if args.types else None
        print(json.dumps(system.queries.read_graph(flt).to_dict(), indent=2, ensure_ascii=False))


if __name__ == "__main__":
    sys.exit(main())
