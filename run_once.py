"""Entry point for performing a single crawl run."""

import argparse
import logging
import sqlite3
import sys
from pathlib import Path

from tceq_scraper.job import DEFAULT_SETTINGS_PATH, build_crawl_config, load_settings, run_once
from tceq_scraper.seeds import ConfigurationError, default_output_path


def _count_rows(database_path: str) -> dict:
    if not Path(database_path).exists():
        return {"water_systems": 0, "water_buyer_relationships": 0}
    with sqlite3.connect(database_path) as conn:
        cursor = conn.cursor()
        counts = {}
        for table in ("water_systems", "water_buyer_relationships"):
            try:
                cursor.execute(f"SELECT COUNT(*) FROM {table}")
                counts[table] = cursor.fetchone()[0]
            except sqlite3.OperationalError:
                counts[table] = 0
        return counts


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tceq-scraper",
        description="Compiles water system buyer/seller data from https://dww2.tceq.texas.gov/.",
    )
    parser.add_argument(
        "-i",
        "--input",
        required=True,
        help=(
            "CSV of water systems to crawl. It needs three columns (ws number, state code, is number), "
            "all found in the detail page URL, e.g. WaterSystemDetail.jsp?tinwsys_is_number=5969"
            "&tinwsys_st_code=TX&wsnumber=TX2270001%%20%%20%%20"
        ),
    )
    parser.add_argument(
        "-o",
        "--output",
        default=None,
        help="CSV path for the exported relationships (default: ./<unix time>_out.csv).",
    )
    parser.add_argument("-w", "--header_ws", default=None, help='Input header of the "ws number" column.')
    parser.add_argument("-s", "--header_state", default=None, help='Input header of the "state code" column.')
    parser.add_argument("-n", "--header_is", default=None, help='Input header of the "is number" column.')
    parser.add_argument("--settings", default=str(DEFAULT_SETTINGS_PATH), help="Path to settings.yaml.")
    parser.add_argument("--database", default=None, help="SQLite database path (overrides settings).")
    return parser


def main(argv=None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    args = build_parser().parse_args(argv)

    settings = load_settings(Path(args.settings))
    config = build_crawl_config(
        settings,
        input_path=Path(args.input),
        output_path=Path(args.output) if args.output else default_output_path(),
        header_overrides={
            "ws_number": args.header_ws,
            "state_code": args.header_state,
            "is_number": args.header_is,
        },
        database_path=Path(args.database) if args.database else None,
    )

    try:
        stats = run_once(config)
    except ConfigurationError as exc:
        for problem in exc.problems:
            logging.error("Configuration error: %s", problem)
        logging.info("Suggestion: %s", exc.suggestion)
        return 2

    logging.info(
        "Crawl finished: seeds=%s processed=%s failed=%s relationships_inserted=%s storage_errors=%s",
        stats.seeds_total,
        stats.seeds_processed,
        stats.seeds_failed,
        stats.relationships_inserted,
        stats.storage_errors,
    )

    counts = _count_rows(stats.database_path)
    print(f"SQLite path: {stats.database_path}")
    print(
        "Table counts -> water_systems: {systems}, water_buyer_relationships: {relationships}".format(
            systems=counts.get("water_systems", 0),
            relationships=counts.get("water_buyer_relationships", 0),
        )
    )
    print(f"Relationships exported to: {stats.output_path} ({stats.rows_exported} rows)")
    if stats.snapshots:
        print(f"Latest snapshot saved to: {stats.snapshots[-1]}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
