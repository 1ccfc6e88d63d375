"""
Page layout configuration for the TCEQ water system detail page.

The detail page carries no ids or classes on its data tables, so each section
is described by the caption text its table starts with. Pydantic models are
used so that a missing caption or an unknown section kind raises a validation
error when settings are loaded, not halfway through a crawl.
"""

from typing import Dict, List, Literal

from pydantic import BaseModel, Field, validator

SectionKind = Literal["labels", "rows"]

DEFAULT_DELIMITERS = [r" - ", r"sells to", r"/"]


class SectionLayout(BaseModel):
    """
    One captioned table on the detail page.

    `kind` picks the extraction routine: "labels" reads the value that follows
    each label in `labels` (page label -> output field name); "rows" tokenizes
    every table row into a buyer/seller relationship row.
    """

    caption: str = Field(..., description="Leading text of the table, matched exactly after whitespace collapse.")
    kind: SectionKind = Field(..., description="Extraction routine: 'labels' or 'rows'.")
    labels: Dict[str, str] = Field(
        default_factory=dict,
        description="Label text as printed on the page (including any trailing colon) -> field name.",
    )

    @validator("caption", pre=True, always=True)
    def _collapse_caption(cls, value: str) -> str:
        """Captions are compared against whitespace-collapsed page text."""
        if isinstance(value, str):
            return " ".join(value.split())
        return value


class PageLayout(BaseModel):
    """
    All sections to extract from a detail page plus the cell delimiters used
    by the row tokenizer (regular expressions, tried together).
    """

    sections: List[SectionLayout] = Field(default_factory=list)
    delimiters: List[str] = Field(default_factory=lambda: list(DEFAULT_DELIMITERS))


def get_default_layout() -> PageLayout:
    """
    Layout of https://dww2.tceq.texas.gov/DWW/JSP/WaterSystemDetail.jsp.

    The system name sits in the "Water System Detail Information" table and
    the buyers grid in the "Buyers of Water" table. Only adjust these if the
    site changes its captions or label wording.
    """
    return PageLayout(
        sections=[
            SectionLayout(
                caption="Water System Detail Information",
                kind="labels",
                labels={"Water System Name:": "name"},
            ),
            SectionLayout(caption="Buyers of Water", kind="rows"),
        ],
        delimiters=list(DEFAULT_DELIMITERS),
    )
