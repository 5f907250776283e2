#!/usr/bin/env python3
"""Command-line interface for grading a single essay."""

import argparse
import logging
import sys
import yaml
from pathlib import Path

from quill.libs.config_loader import load_all_configs
from .grader import EssayGrader

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
LOG = logging.getLogger(__name__)


def main():
    """Main entry point for grade-essay command."""
    parser = argparse.ArgumentParser(
        description='Grade one essay and print the calibrated result as YAML',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Grade an essay with settings from config
  grade-essay essays/alice/essay1.txt

  # Text came from OCR at 91% confidence (softens spelling penalties)
  grade-essay scan.txt --ocr-confidence 91

  # Save the result next to the essay instead of printing it
  grade-essay essays/alice/essay1.txt --output essays/alice/essay1.feedback.yaml

  # Override the grammar model from config
  grade-essay essays/alice/essay1.txt --model gpt-4o
        """
    )

    parser.add_argument(
        'essay',
        type=Path,
        help='Path to the essay text file'
    )
    parser.add_argument(
        '--ocr-confidence',
        type=float,
        default=None,
        help='OCR confidence percentage (0-100) when the text was scanned'
    )
    parser.add_argument(
        '--output', '-o',
        type=Path,
        default=None,
        help='Write the YAML result to this file instead of stdout'
    )
    parser.add_argument(
        '--model', '-m',
        type=str,
        default=None,
        help='Language model to use for grammar analysis (overrides config value)'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if not args.essay.is_file():
        LOG.error(f"Essay file does not exist: {args.essay}")
        sys.exit(1)

    try:
        config = load_all_configs()
        grader = EssayGrader(configs=config, model=args.model)
    except Exception as e:
        LOG.error(f"Failed to initialize grader: {e}")
        sys.exit(1)

    try:
        result = grader.grade_file(args.essay, ocr_confidence=args.ocr_confidence)
    except ValueError as e:
        LOG.error(f"Cannot grade {args.essay}: {e}")
        sys.exit(1)

    output = yaml.dump(result.to_yaml_dict(), default_flow_style=False, sort_keys=False)
    if args.output is None:
        print(output)
        return

    try:
        args.output.write_text(output)
        LOG.info(f"Feedback saved to: {args.output}")
    except OSError as e:
        LOG.error(f"Failed to save feedback: {e}")
        sys.exit(1)

    print(f"{args.essay.name}: {result.final_score} ({result.grade}) "
          f"+/-{result.calibration.uncertainty_range}")


if __name__ == "__main__":
    main()
