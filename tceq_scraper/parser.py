"""
Extraction engine turning a parsed detail page into raw relationship data.

The functions here focus on:
    - Locating an unlabeled table by the caption text it starts with.
    - Reading the value printed after a label cell ("Water System Name:").
    - Splitting the buyers grid, whose cells mix several fields behind
      inconsistent delimiters, into fixed five-field rows.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, NamedTuple, Optional, Pattern, Sequence

from .document import Document, Element, normalize_whitespace
from .layout import DEFAULT_DELIMITERS, PageLayout, SectionLayout

logger = logging.getLogger(__name__)

ROW_WIDTH = 5
CELL_TAGS = ("td", "th")


class RawRelationshipRow(NamedTuple):
    """Positional fields recovered from one row of the buyers table."""

    seller: str
    buyer_name: str
    buyer: str
    population: str
    availability: str

    @classmethod
    def from_fields(cls, fields: Sequence[str]) -> "RawRelationshipRow":
        """Right-pad with empty strings and drop anything past the fifth field."""
        padded = list(fields[:ROW_WIDTH]) + [""] * (ROW_WIDTH - len(fields))
        return cls(*padded)


@dataclass
class PageExtraction:
    """
    Everything pulled from one detail page.

    `fields` holds label/value sections keyed by the configured field name;
    `rows` holds the tokenized relationship rows of every "rows" section.
    `missing_sections` lists captions that were not found on the page.
    """

    fields: Dict[str, str] = field(default_factory=dict)
    rows: List[RawRelationshipRow] = field(default_factory=list)
    missing_sections: List[str] = field(default_factory=list)


def compile_delimiters(delimiters: Sequence[str]) -> Pattern[str]:
    return re.compile("|".join(f"(?:{pattern})" for pattern in delimiters))


DEFAULT_DELIMITER_RE = compile_delimiters(DEFAULT_DELIMITERS)


def _is_nested_in_row_cell(table: Element) -> bool:
    cell = table.closest(*CELL_TAGS)
    return cell is not None and cell.closest("tr") is not None


def _starts_with_caption(table: Element, caption: str) -> bool:
    tokens = table.text_tokens()
    return bool(tokens) and tokens[0] == caption


def find_table(document: Document, caption: str) -> Optional[Element]:
    """
    Return the first table, in document order, whose first non-blank text
    equals `caption`.

    Only tables nested inside a row cell are candidates. Returns None when
    the section is absent.
    """
    caption = normalize_whitespace(caption)
    for table in document.root.find_all("table"):
        if _is_nested_in_row_cell(table) and _starts_with_caption(table, caption):
            return table
    return None


def innermost_captioned_table(table: Element, caption: str) -> Element:
    """
    Descend through layout tables that start with the same caption as the
    data table they wrap, returning the deepest one.
    """
    caption = normalize_whitespace(caption)
    for nested in table.find_all("table"):
        if table.contains(nested) and _starts_with_caption(nested, caption):
            table = nested
    return table


def find_value_after_label(table: Element, label: str) -> Optional[str]:
    """
    Return the first non-blank text token after the one equal to `label`.

    The value may live in a different cell than the label. Labels must be
    given exactly as printed, trailing colon included.
    """
    label = normalize_whitespace(label)
    label_found = False
    for token in table.text_tokens():
        if label_found:
            return token
        if token == label:
            label_found = True
    return None


def split_token(token: str, delimiter_re: Pattern[str] = DEFAULT_DELIMITER_RE) -> List[str]:
    """Split a normalized cell token on every delimiter, dropping blank pieces."""
    token = normalize_whitespace(token)
    if not delimiter_re.search(token):
        return [token] if token else []
    return [piece.strip() for piece in delimiter_re.split(token) if piece.strip()]


def _owned_rows(table: Element) -> List[Element]:
    """Rows belonging to `table` itself, not to tables nested inside it."""
    return [row for row in table.find_all("tr") if row.closest("table") == table]


def tokenize_rows(table: Element, delimiters: Optional[Sequence[str]] = None) -> List[RawRelationshipRow]:
    """
    Convert each non-blank table row into a five-field relationship row.

    Field order is fixed by the page layout: seller, buyer name, buyer,
    population, availability. Short rows are padded with empty strings.
    """
    delimiter_re = DEFAULT_DELIMITER_RE if delimiters is None else compile_delimiters(delimiters)
    rows: List[RawRelationshipRow] = []
    for row in _owned_rows(table):
        fields: List[str] = []
        for token in row.text_tokens():
            fields.extend(split_token(token, delimiter_re))
        if not fields:
            continue
        if len(fields) > ROW_WIDTH:
            logger.debug("Row has %s fields, keeping the first %s: %s", len(fields), ROW_WIDTH, fields)
        rows.append(RawRelationshipRow.from_fields(fields))
    return rows


def _extract_labels(table: Element, section: SectionLayout, layout: PageLayout, result: PageExtraction) -> None:
    for label, field_name in section.labels.items():
        value = find_value_after_label(table, label)
        if value is None:
            logger.debug("Label %r not found in section %r", label, section.caption)
            continue
        result.fields.setdefault(field_name, value)


def _extract_rows(table: Element, section: SectionLayout, layout: PageLayout, result: PageExtraction) -> None:
    table = innermost_captioned_table(table, section.caption)
    for row in tokenize_rows(table, layout.delimiters):
        # The caption and any title rows carry no buyer number.
        if not row.buyer:
            logger.debug("Skipping row without buyer in section %r: %s", section.caption, list(row))
            continue
        result.rows.append(row)


SECTION_EXTRACTORS: Dict[str, Callable[[Element, SectionLayout, PageLayout, PageExtraction], None]] = {
    "labels": _extract_labels,
    "rows": _extract_rows,
}


def extract_page(document: Document, layout: PageLayout) -> PageExtraction:
    """Run every configured section through its extraction routine."""
    result = PageExtraction()
    for section in layout.sections:
        table = find_table(document, section.caption)
        if table is None:
            logger.debug("Section %r not present on page", section.caption)
            result.missing_sections.append(section.caption)
            continue
        SECTION_EXTRACTORS[section.kind](table, section, layout, result)
    return result
