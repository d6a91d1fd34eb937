"""
faisskit CLI Entrypoint

Commands:
    faisskit build      Build an index from a description and print its stats
    faisskit benchmark  Time train/add/search on random data
    faisskit --version  Show version info
"""

from __future__ import annotations

import argparse
import json
import sys
import time
from typing import NoReturn, Optional, Sequence

import numpy as np

from faisskit.core.config import EngineConfig, configure_logging
from faisskit.core.types import MetricType


def main(argv: Optional[Sequence[str]] = None) -> NoReturn:
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(
        prog="faisskit",
        description="Typed index handles over the faiss similarity-search engine",
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level for faisskit (default: FAISSKIT_LOG_LEVEL or WARNING)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # build command
    build_parser = subparsers.add_parser("build", help="Build an index and print its stats")
    build_parser.add_argument("description", help='Index description, e.g. "IVF64,Flat"')
    build_parser.add_argument(
        "--dimension", "-d",
        type=int,
        required=True,
        help="Vector dimensionality",
    )
    build_parser.add_argument(
        "--metric",
        choices=["l2", "ip"],
        default="l2",
        help="Scoring metric (default: l2)",
    )

    # benchmark command
    bench_parser = subparsers.add_parser("benchmark", help="Time train/add/search on random data")
    bench_parser.add_argument("description", help='Index description, e.g. "IVF64,Flat"')
    bench_parser.add_argument(
        "--vectors",
        type=int,
        default=10000,
        help="Number of database vectors",
    )
    bench_parser.add_argument(
        "--dimension", "-d",
        type=int,
        default=64,
        help="Vector dimensionality",
    )
    bench_parser.add_argument(
        "--queries",
        type=int,
        default=100,
        help="Number of search queries",
    )
    bench_parser.add_argument("--k", type=int, default=10, help="Neighbours per query")
    bench_parser.add_argument(
        "--metric",
        choices=["l2", "ip"],
        default="l2",
        help="Scoring metric (default: l2)",
    )
    bench_parser.add_argument("--seed", type=int, default=42, help="Random seed")

    args = parser.parse_args(argv)

    config = EngineConfig.from_env()
    configure_logging(args.log_level or config.log_level)
    config.apply()

    if args.command == "build":
        sys.exit(_run_build(args))
    elif args.command == "benchmark":
        sys.exit(_run_benchmark(args))
    else:
        parser.print_help()
        sys.exit(0)


def _get_version() -> str:
    """Get package version."""
    from faisskit import __version__
    return __version__


def _run_build(args: argparse.Namespace) -> int:
    """Build one index and print its stats as JSON."""
    from faisskit.index.factory import index_factory

    result = index_factory(args.dimension, args.description, MetricType.parse(args.metric))
    if result.is_err():
        print(json.dumps(result.error.to_dict(), indent=2), file=sys.stderr)
        return 1
    print(json.dumps(result.unwrap().stats().to_dict(), indent=2))
    return 0


def _run_benchmark(args: argparse.Namespace) -> int:
    """Train, add and search on random vectors, printing timings."""
    from faisskit.index.factory import index_factory

    print("Running faisskit benchmark...")
    print(f"  Index:     {args.description}")
    print(f"  Vectors:   {args.vectors}")
    print(f"  Dimension: {args.dimension}")
    print(f"  Queries:   {args.queries}")

    rng = np.random.default_rng(args.seed)
    xb = rng.standard_normal((args.vectors, args.dimension), dtype=np.float32)
    xq = rng.standard_normal((args.queries, args.dimension), dtype=np.float32)

    built = index_factory(args.dimension, args.description, MetricType.parse(args.metric))
    if built.is_err():
        print(f"\n{built.error}", file=sys.stderr)
        return 1
    index = built.unwrap()

    timings: list[tuple[str, float]] = []
    for name, step in (
        ("train", lambda: index.train(xb)),
        ("add", lambda: index.add(xb)),
        ("search", lambda: index.search(xq, args.k)),
    ):
        start = time.perf_counter()
        outcome = step()
        elapsed_ms = (time.perf_counter() - start) * 1000
        if outcome.is_err():
            print(f"\n{name} failed: {outcome.error}", file=sys.stderr)
            return 1
        timings.append((name, elapsed_ms))

    print()
    for name, elapsed_ms in timings:
        print(f"  {name:<7} {elapsed_ms:10.2f} ms")
    per_query_us = timings[-1][1] * 1000 / max(args.queries, 1)
    print(f"  search per query: {per_query_us:.1f} us")
    return 0


if __name__ == "__main__":
    main()
