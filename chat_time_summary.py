"""chat_time_summary.py

Print daily, monthly and overall time spent in a WhatsApp chat export.

Usage:
    python chat_time_summary.py chat.txt [--gap 5] [--mdy | --dmy]
        [--count-by start|presence] [--sessions] [--output FILE]
        [--export-dir DIR] [--verbose]
"""

from __future__ import annotations

import argparse
import logging
import os
import sys

from analytics import (
    DEFAULT_GAP_MINUTES,
    CountBy,
    ReportConfig,
    build_time_report,
    print_time_report,
    render_time_report,
    resolve_count_by,
    resolve_gap_minutes,
    save_report_files,
)
from chat_parsing import DateOrder, load_chat_lines

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Report time spent in a WhatsApp chat export, per day, month and overall",
    )
    parser.add_argument("chat_file", help="Path to the exported chat .txt file")
    parser.add_argument(
        "--gap", "-g", default=str(DEFAULT_GAP_MINUTES),
        help=f"Minutes of inactivity that end a conversation (default: {DEFAULT_GAP_MINUTES})",
    )
    order = parser.add_mutually_exclusive_group()
    order.add_argument("--mdy", dest="date_order", action="store_const", const=DateOrder.MDY,
                       help="Force month/day/year parsing")
    order.add_argument("--dmy", dest="date_order", action="store_const", const=DateOrder.DMY,
                       help="Force day/month/year parsing")
    parser.add_argument(
        "--count-by", default=CountBy.START.value,
        help="'start' counts a conversation on its first day only, "
             "'presence' on every day it touches (default: start)",
    )
    parser.add_argument("--sessions", "-s", action="store_true",
                        help="List every conversation after the totals")
    parser.add_argument("--output", "-o", help="Write the report to a file instead of stdout")
    parser.add_argument("--export-dir", help="Also write CSV/JSON tables to this directory")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser


def config_from_args(args: argparse.Namespace) -> ReportConfig:
    """Build a sanitized ``ReportConfig`` from parsed arguments."""
    return ReportConfig(
        gap_minutes=resolve_gap_minutes(args.gap),
        date_order=args.date_order,
        count_by=resolve_count_by(args.count_by),
    )


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    config = config_from_args(args)
    try:
        lines = load_chat_lines(args.chat_file)
    except FileNotFoundError:
        logger.error("Chat file not found: %s", args.chat_file)
        sys.exit(1)
    except (OSError, UnicodeDecodeError) as e:
        logger.error("Could not read %s: %s", args.chat_file, e)
        sys.exit(1)

    report = build_time_report(lines, config)
    file_name = os.path.basename(args.chat_file)

    if args.output:
        text = render_time_report(report, file_name, args.sessions)
        try:
            with open(args.output, "w", encoding="utf-8") as out:
                out.write(text)
        except OSError as e:
            logger.error("Failed to write output file %s: %s", args.output, e)
            sys.exit(1)
        print(f"Report written to {args.output}")
    else:
        print_time_report(report, file_name, args.sessions)

    if args.export_dir:
        save_report_files(report, args.export_dir)
        print(f"\nReport tables have been saved to the '{args.export_dir}' directory:")
        print("1. daily_time.json/csv - Per-day conversations and minutes")
        print("2. monthly_time.json/csv - Per-month conversations and minutes")
        print("3. sessions.json/csv - Every conversation with its span")


if __name__ == "__main__":
    main()
