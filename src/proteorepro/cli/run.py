"""
proteorepro run command - Normalization and reproducibility filtering.

Usage:
    proteorepro run --input ratios.tsv --groups groups.tsv --output results/
    proteorepro run --input ratios.csv --sep , --groups groups.tsv \\
        --output results/ --method 2-component --alpha 0.01
"""

from __future__ import annotations

import argparse
import logging
from datetime import datetime
from pathlib import Path

from proteorepro.config import PipelineConfig, load_config
from proteorepro.core.errors import ConfigurationError, ProcessingError
from proteorepro.io.loaders import load_group_assignment, read_table
from proteorepro.io.writers import (
    write_expression_table,
    write_quality_flags,
    write_summary_table,
)
from proteorepro.pipeline import AnalysisPipeline
from proteorepro.stats.mixture import MixtureMode
from proteorepro.stats.normalization import NormalizationMethod


def register_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the run subcommand."""
    parser = subparsers.add_parser(
        "run",
        help="Normalize a ratio table and mask non-reproducible measurements",
        description="Normalization followed by per-group replicate reproducibility filtering",
    )

    parser.add_argument("--config", "-c", type=Path, default=None,
                        help="Path to YAML/JSON config file (CLI args override config values)")
    parser.add_argument("--input", "-i", type=Path, required=True,
                        help="Feature × sample table with an identifier column")
    parser.add_argument("--groups", "-g", type=Path, required=True,
                        help="Two-column table mapping sample -> group")
    parser.add_argument("--output", "-o", type=Path, required=True,
                        help="Output directory")
    parser.add_argument("--sep", default="\t",
                        help="Field separator of the input tables (default: tab)")
    parser.add_argument("--id-column", default=None,
                        help="Identifier column of the input table (default: id)")
    parser.add_argument("--method", choices=[m.value for m in NormalizationMethod], default=None,
                        help="Normalization method (default: Median)")
    parser.add_argument("--mode", choices=[m.value for m in MixtureMode], default=None,
                        help="Mixture mode for 2-component normalization (default: unimodal)")
    parser.add_argument("--alpha", type=float, default=None,
                        help="Significance level of the mixed-model test (default: 0.05)")
    parser.add_argument("--z-multiplier", type=float, default=None,
                        help="Limits-of-agreement multiplier for replicate pairs (default: 3.290527)")
    parser.add_argument("--no-filter", dest="filter_enabled", action="store_false", default=True,
                        help="Skip reproducibility filtering")
    parser.add_argument("--flags", action="store_true", default=False,
                        help="Also write per-cell quality flags")
    parser.add_argument("--verbose", "-v", action="store_true", default=False,
                        help="Debug logging")

    parser.set_defaults(func=run_pipeline)


def _build_config(args: argparse.Namespace) -> PipelineConfig:
    """Config file first, then explicit CLI arguments on top."""
    raw = load_config(args.config) if args.config else {}
    config = PipelineConfig.from_dict(raw)

    if args.id_column is not None:
        config.id_column = args.id_column
    if args.method is not None:
        config.normalization.method = args.method
    if args.mode is not None:
        config.mixture.mode = args.mode
    if args.alpha is not None:
        config.reproducibility.alpha = args.alpha
    if args.z_multiplier is not None:
        config.reproducibility.z_multiplier = args.z_multiplier
    if not args.filter_enabled:
        config.reproducibility.enabled = False

    config.validate()
    return config


def run_pipeline(args: argparse.Namespace) -> int:
    """Execute the run command."""
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
    )
    logger = logging.getLogger(__name__)

    try:
        config = _build_config(args)
    except (FileNotFoundError, ConfigurationError) as e:
        print(f"ERROR: Config error: {e}")
        return 1

    start_time = datetime.now()
    print(f"\n{'='*70}")
    print("  Normalization and Reproducibility Filtering")
    print(f"{'='*70}")
    print(f"  Input:   {args.input}")
    print(f"  Groups:  {args.groups}")
    print(f"  Method:  {config.normalization.method}")
    print(f"  Output:  {args.output}")

    try:
        table = read_table(args.input, sep=args.sep, na_values=config.na_values)
        groups = load_group_assignment(args.groups, sep=args.sep)
    except (FileNotFoundError, ProcessingError) as e:
        print(f"ERROR: {e}")
        return 1

    result = AnalysisPipeline(config).run_table(table, groups)

    if result.normalized is not None:
        write_expression_table(result.normalized, args.output / "normalized.tsv")

    if not result.success:
        print(f"ERROR: {result.failure}")
        return 1

    write_expression_table(result.filtered, args.output / "filtered.tsv")
    if args.flags:
        write_quality_flags(result.filtered, args.output / "quality_flags.tsv")

    if result.reproducibility is not None:
        summary = result.reproducibility.summary()
        write_summary_table(summary, args.output / "masked_summary.tsv")
        print("\nMasked per group:")
        for _, row in summary.iterrows():
            print(
                f"  {row['group']:<12} {row['strategy']:<12} "
                f"{row['n_features_masked']:>6} features  {row['n_values_masked']:>6} values"
            )

    elapsed = datetime.now() - start_time
    logger.info(f"Finished in {elapsed.total_seconds():.1f}s")
    print(f"\nResults written to {args.output}")
    return 0
