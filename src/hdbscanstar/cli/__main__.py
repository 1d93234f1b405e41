"""Command-line entry point for HDBSCAN* clustering."""

from __future__ import annotations

import argparse
import logging
import sys
from importlib import metadata
from pathlib import Path
from typing import Sequence

import numpy as np
import pandas as pd

from hdbscanstar.algorithm import calculate_core_distances
from hdbscanstar.cli.schema_validation import SchemaValidationError, SchemaValidator
from hdbscanstar.cluster import ClusterStateError
from hdbscanstar.constraints import HdbscanConstraint
from hdbscanstar.data import DatasetFormatError, load_constraints, load_dataset
from hdbscanstar.distances import DISTANCE_FUNCTIONS, calculate_distance_matrix
from hdbscanstar.errors import PreconditionViolationError
from hdbscanstar.runner import HdbscanParameters, run_hdbscan, run_hdbscan_on_distances
from hdbscanstar.writers import TABLE_SUFFIXES, result_frames, write_results, write_table


logger = logging.getLogger("hdbscanstar.cli")


class HdbscanCliError(RuntimeError):
    """Raised when CLI arguments cannot be satisfied."""


_SCHEMA_VALIDATOR = SchemaValidator()
_VALIDATED_TABLES = ("tree", "partition", "outlier_scores")


def _get_package_version() -> str:
    try:
        return metadata.version("hdbscan-star")
    except metadata.PackageNotFoundError:
        return "0.0.0"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hdbscan-star",
        description="Hierarchical density-based clustering (HDBSCAN*) with GLOSH outlier scores",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    version = _get_package_version()
    parser.add_argument(
        "--version",
        action="store_true",
        help=f"Show the installed hdbscan-star version ({version})",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log progress details to stderr",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="command")

    run = subparsers.add_parser(
        "run",
        help="Cluster a dataset and write the hierarchy, tree, partition and outlier scores",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    run.add_argument(
        "--input",
        required=True,
        help="Path to the dataset (CSV or JSON, one row per point)",
    )
    run.add_argument(
        "--distance-matrix",
        action="store_true",
        help="Treat --input as a precomputed N x N distance matrix",
    )
    _add_clustering_arguments(run)
    run.add_argument(
        "--min-cluster-size",
        type=int,
        default=4,
        help="Minimum number of points for a component to count as a cluster",
    )
    run.add_argument(
        "--constraints",
        help="Optional CSV of point_a,point_b,type constraints (type is ml or cl)",
    )
    run.add_argument(
        "--compact-hierarchy",
        action="store_true",
        help="Only record hierarchy levels where clusters were created",
    )
    run.add_argument(
        "--no-self-edges",
        action="store_false",
        dest="self_edges",
        help="Do not add core-distance self-loops to the spanning tree",
    )
    run.add_argument(
        "--output-dir",
        default=".",
        help="Directory where result tables are written",
    )
    run.add_argument(
        "--basename",
        help="Prefix for output files (defaults to the input file stem)",
    )
    run.add_argument(
        "--format",
        dest="table_format",
        choices=sorted(TABLE_SUFFIXES),
        default="csv",
        help="File format of the result tables",
    )
    run.set_defaults(handler=_handle_run)

    core = subparsers.add_parser(
        "core-distances",
        help="Compute the core distance of every point",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    core.add_argument(
        "--input",
        required=True,
        help="Path to the dataset (CSV or JSON, one row per point)",
    )
    core.add_argument(
        "--distance-matrix",
        action="store_true",
        help="Treat --input as a precomputed N x N distance matrix",
    )
    _add_clustering_arguments(core)
    core.add_argument(
        "--output",
        required=True,
        help="Destination for the core distances (CSV, JSON lines or Parquet)",
    )
    core.set_defaults(handler=_handle_core_distances)

    return parser


def _add_clustering_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--min-points",
        type=int,
        default=4,
        help="Neighbourhood size k used for core distances (the point itself counts)",
    )
    parser.add_argument(
        "--metric",
        choices=sorted(DISTANCE_FUNCTIONS),
        default="euclidean",
        help="Distance function applied to the input points",
    )


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if getattr(args, "version", False):
        print(f"hdbscan-star {_get_package_version()}")
        raise SystemExit(0)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        return

    try:
        handler(args)
    except HdbscanCliError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(f"Error: {exc}") from exc


def _handle_run(args: argparse.Namespace) -> None:
    params = HdbscanParameters(
        min_points=args.min_points,
        min_cluster_size=args.min_cluster_size,
        metric=args.metric,
        compact_hierarchy=args.compact_hierarchy,
        self_edges=args.self_edges,
    )

    values = _load_input(args.input)
    constraints: list[HdbscanConstraint] = []
    if args.constraints:
        constraints = _load_constraint_file(args.constraints)

    try:
        if args.distance_matrix:
            result = run_hdbscan_on_distances(values, params, constraints)
        else:
            result = run_hdbscan(values, params, constraints)
    except (PreconditionViolationError, ClusterStateError) as exc:
        raise HdbscanCliError(str(exc)) from exc

    if result.infinite_stability:
        print(
            "Warning: the cluster tree contains clusters with infinite stability; "
            "the flat partition may be unreliable (check for duplicate points).",
            file=sys.stderr,
        )

    frames = result_frames(result)
    for table in _VALIDATED_TABLES:
        _validate_output(table, frames[table])

    basename = args.basename or Path(args.input).stem
    output_dir = Path(args.output_dir).expanduser().resolve()
    try:
        written = write_results(
            result,
            output_dir,
            basename=basename,
            fmt=args.table_format,
            frames=frames,
        )
    except OSError as exc:  # pragma: no cover - unlikely in tests
        raise HdbscanCliError(f"Failed to write results to '{output_dir}': {exc}") from exc

    for table, path in written.items():
        logger.debug("Wrote %s table to %s", table, path)
    print(
        f"Found {result.metrics['num_clusters']} clusters and "
        f"{result.metrics['noise_points']} noise points; wrote results to {output_dir}",
        file=sys.stderr,
    )


def _handle_core_distances(args: argparse.Namespace) -> None:
    values = _load_input(args.input)
    try:
        distances = values if args.distance_matrix else calculate_distance_matrix(values, args.metric)
        core_distances = calculate_core_distances(distances, args.min_points)
    except PreconditionViolationError as exc:
        raise HdbscanCliError(str(exc)) from exc

    frame = pd.DataFrame(
        {
            "point_id": np.arange(len(core_distances), dtype=np.int64),
            "core_distance": core_distances,
        }
    )
    path = Path(args.output)
    try:
        write_table(frame, path)
    except OSError as exc:  # pragma: no cover - unlikely in tests
        raise HdbscanCliError(f"Failed to write output to '{path}': {exc}") from exc
    print(f"Wrote {len(frame)} core distances to {path}", file=sys.stderr)


def _validate_output(table: str, frame: pd.DataFrame) -> None:
    try:
        _SCHEMA_VALIDATOR.validate_frame(table, frame)
    except SchemaValidationError as exc:
        raise HdbscanCliError(f"{table} output failed schema validation: {exc}") from exc


def _load_input(location: str) -> np.ndarray:
    try:
        return load_dataset(location)
    except FileNotFoundError as exc:
        raise HdbscanCliError(f"Input file '{location}' was not found") from exc
    except ValueError as exc:
        raise HdbscanCliError(str(exc)) from exc


def _load_constraint_file(location: str) -> list[HdbscanConstraint]:
    try:
        return load_constraints(location)
    except FileNotFoundError as exc:
        raise HdbscanCliError(f"Constraints file '{location}' was not found") from exc
    except ValueError as exc:
        raise HdbscanCliError(str(exc)) from exc


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    main()
