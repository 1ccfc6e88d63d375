"""
Seed input handling: file path checks and the CSV of water systems to crawl.

Each seed row needs three values that also appear in the detail page URL
(ws number, state code and "is" number). Column names vary between exports,
so the caller maps each logical column to a header name.
"""

from __future__ import annotations

import csv
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from .resolver import WaterSystem

logger = logging.getLogger(__name__)

CSV_SUFFIX = ".csv"


class ConfigurationError(RuntimeError):
    """Raised before any network activity when the run cannot be set up."""

    def __init__(self, problems: List[str], suggestion: str):
        super().__init__("; ".join(problems))
        self.problems = problems
        self.suggestion = suggestion


class HeaderMapping(BaseModel):
    """Header names in the seed CSV for each required column."""

    ws_number: str = Field("ws_number", description="Header of the water system number column.")
    state_code: str = Field("st_code", description="Header of the state code column.")
    is_number: str = Field("is_number", description="Header of the internal 'is' number column.")


@dataclass(frozen=True)
class Seed:
    row_number: int
    ws_number: str  # as published; may carry trailing blanks that the URL needs
    state_code: str
    is_number: str

    def to_system(self, name: Optional[str] = None) -> WaterSystem:
        return WaterSystem(
            ws_number=self.ws_number.strip(),
            state_code=self.state_code.strip(),
            name=name,
            is_number=self.is_number.strip() or None,
        )


def default_output_path(directory: Optional[Path] = None) -> Path:
    """`<directory>/<unix seconds>_out.csv`, directory defaulting to the cwd."""
    directory = Path.cwd() if directory is None else directory
    return (directory / f"{int(time.time())}_out{CSV_SUFFIX}").absolute()


def _check_csv_path(path: Path, role: str, problems: List[str]) -> Path:
    if not path.suffix:
        return path.with_suffix(CSV_SUFFIX)
    if path.suffix.lower() != CSV_SUFFIX:
        problems.append(f"{role} file is not a csv: {path}")
    return path


def validate_paths(input_path: Path, output_path: Path) -> Tuple[Path, Path]:
    """
    Normalize the input and output paths, appending `.csv` when no extension
    was given. Every problem is collected before raising.
    """
    problems: List[str] = []
    input_path = _check_csv_path(Path(input_path), "Input", problems).absolute()
    output_path = _check_csv_path(Path(output_path), "Output", problems).absolute()
    if input_path.suffix.lower() == CSV_SUFFIX and not input_path.is_file():
        problems.append(f"Input file does not exist: {input_path}")
    if problems:
        raise ConfigurationError(problems, "Pass an existing .csv file to --input and a .csv path to --output.")
    return input_path, output_path


def map_headers(headers: List[str], mapping: HeaderMapping) -> Dict[str, int]:
    """
    Locate each mapped column in the header row (exact, case-sensitive).

    Raises ConfigurationError naming every missing header at once.
    """
    positions: Dict[str, int] = {}
    wanted = mapping.dict()
    for field_name, header in wanted.items():
        if header in headers:
            positions[field_name] = headers.index(header)

    missing = [header for field_name, header in wanted.items() if field_name not in positions]
    if missing:
        raise ConfigurationError(
            [f"Missing headers from input file: {', '.join(missing)}"],
            "Double check the header names that were supplied to the -w, -s, and -n arguments.",
        )
    return positions


def load_seeds(path: Path, mapping: HeaderMapping) -> List[Seed]:
    """Read seed rows from `path`; rows without a ws number are skipped."""
    try:
        return _read_seeds(path, mapping)
    except UnicodeDecodeError as exc:
        raise ConfigurationError(
            [f"Input file is not valid UTF-8: {path} (byte {exc.start}: {exc.reason})"],
            "Re-save the input csv with UTF-8 encoding.",
        ) from exc


def _read_seeds(path: Path, mapping: HeaderMapping) -> List[Seed]:
    with Path(path).open("r", encoding="utf-8-sig", newline="") as handle:
        reader = csv.reader(handle)
        try:
            headers = next(reader)
        except StopIteration:
            raise ConfigurationError(
                [f"Header row missing from input file: {path}"],
                "The first line of the input csv must name its columns.",
            ) from None
        positions = map_headers(headers, mapping)

        seeds: List[Seed] = []
        for row_number, record in enumerate(reader, start=1):
            if not any(value.strip() for value in record):
                continue
            values = {
                field_name: record[index] if index < len(record) else ""
                for field_name, index in positions.items()
            }
            if not values["ws_number"].strip():
                logger.warning("Seed row %s has no ws number, skipping", row_number)
                continue
            seeds.append(Seed(row_number=row_number, **values))
    return seeds
