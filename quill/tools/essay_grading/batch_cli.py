#!/usr/bin/env python3
"""Command-line interface for batch grading a directory of learner folders."""

import argparse
import logging
import sys
from pathlib import Path
from datetime import datetime

from quill.libs.config_loader import load_all_configs
from .batch_grader import BatchGrader, FEEDBACK_SUFFIX

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
LOG = logging.getLogger(__name__)


def main():
    """Main entry point for grade-essays command."""
    parser = argparse.ArgumentParser(
        description='Grade every learner folder in a directory, tracking proficiency levels',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Layout:
  essays/
    alice/
      learner.yaml        # optional: level and recent_scores
      01_intro.txt
      02_argument.txt
    bob/
      essay.txt

Examples:
  # Grade all learners
  grade-essays --essays-dir essays/

  # Grade more learners at once
  grade-essays --essays-dir essays/ --max-threads 8

  # Save summary to specific location
  grade-essays --essays-dir essays/ --summary results.yaml
        """
    )

    parser.add_argument(
        '--essays-dir', '-e',
        type=Path,
        required=True,
        help='Directory containing one folder per learner'
    )
    parser.add_argument(
        '--summary', '-o',
        type=Path,
        default=None,
        help='Path to save summary YAML file (default: grading_summary_TIMESTAMP.yaml in essays dir)'
    )
    parser.add_argument(
        '--model', '-m',
        type=str,
        default=None,
        help='Language model to use for grammar analysis (overrides config value)'
    )
    parser.add_argument(
        '--max-threads', '-t',
        type=int,
        default=None,
        help='Maximum number of learners graded concurrently (overrides config value)'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if not args.essays_dir.is_dir():
        LOG.error(f"Essays directory does not exist: {args.essays_dir}")
        sys.exit(1)

    try:
        config = load_all_configs()
    except Exception as e:
        LOG.error(f"Failed to load configuration: {e}")
        sys.exit(1)

    try:
        batch_grader = BatchGrader(
            configs=config,
            model=args.model,
            max_concurrent=args.max_threads
        )
    except Exception as e:
        LOG.error(f"Failed to initialize batch grader: {e}")
        sys.exit(1)

    LOG.info(f"Starting batch grading of learners in {args.essays_dir}")
    results = batch_grader.grade_all(args.essays_dir)

    if not results:
        LOG.error("No essays were graded")
        sys.exit(1)

    if args.summary is None:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        summary_path = args.essays_dir / f"grading_summary_{timestamp}.yaml"
    else:
        summary_path = args.summary

    try:
        batch_grader.save_summary(results, summary_path)
    except OSError as e:
        LOG.error(f"Failed to save summary: {e}")

    successful = [r for r in results if r.success]
    failed = [r for r in results if not r.success]

    print(f"\n{'='*60}")
    print(f"Batch Grading Complete")
    print(f"{'='*60}")
    print(f"Total essays: {len(results)}")
    print(f"Successfully graded: {len(successful)}")
    print(f"Failed: {len(failed)}")

    if successful:
        avg_score = sum(r.final_score for r in successful) / len(successful)
        print(f"Average score: {avg_score:.1f}")

        print(f"\nScores:")
        for result in successful:
            line = f"  {result.learner_id}/{result.essay_name}: {result.final_score} ({result.grade})"
            event = result.grading_result.proficiency_event if result.grading_result else None
            if event is not None and event.action.value != 'stable':
                line += f" [{event.action.value}: {event.new_level.value}]"
            print(line)

    if failed:
        print(f"\nFailed essays:")
        for result in failed:
            print(f"  {result.learner_id}/{result.essay_name}: {result.error_message}")

    print(f"\nFeedback files saved next to each essay as <essay>{FEEDBACK_SUFFIX}")
    print(f"Summary saved to: {summary_path}")

    if failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
