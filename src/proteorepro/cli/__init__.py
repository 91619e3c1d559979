"""
proteorepro CLI - Command-line interface for ratio normalization and filtering.

Commands:
    proteorepro run   - Normalize and mask non-reproducible measurements
"""

import argparse
import sys
from typing import Optional, List


def main(args: Optional[List[str]] = None) -> int:
    """Main CLI dispatcher for proteorepro."""
    parser = argparse.ArgumentParser(
        prog="proteorepro",
        description="Normalization and replicate reproducibility for proteomics ratios",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  run           Normalize a ratio table and mask non-reproducible measurements

Examples:
  proteorepro run --input ratios.tsv --groups groups.tsv --output results/
  proteorepro run --input ratios.tsv --groups groups.tsv --output results/ --method Quantile
  proteorepro run --config run.yaml --input ratios.tsv --groups groups.tsv --output results/
        """
    )

    parser.add_argument(
        "--version", "-V",
        action="version",
        version="%(prog)s 0.1.0"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    from proteorepro.cli import run
    run.register_parser(subparsers)

    parsed_args = parser.parse_args(args)

    if parsed_args.command is None:
        parser.print_help()
        return 0

    return parsed_args.func(parsed_args)


if __name__ == "__main__":
    sys.exit(main())
