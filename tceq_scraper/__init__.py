"""
TCEQ water system buyer/seller crawler package.

The modules expose:
    - document: Immutable node-arena model of a parsed HTML page.
    - layout: Page section captions, labels and cell delimiters.
    - parser: Table location, label lookup and buyers-row tokenizing.
    - resolver: Water system and relationship entities for one page.
    - seeds: Input CSV validation and seed rows.
    - storage: SQLAlchemy models and insert-or-skip helpers.
    - browser: Playwright HTTP helpers for fetching detail pages.
    - job: End-to-end crawl workflow orchestrating the above pieces.
"""

__all__ = ["document", "layout", "parser", "resolver", "seeds", "storage", "browser", "job"]
