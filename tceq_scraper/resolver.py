"""
Entity resolution for a single detail page.

Raw rows from the buyers table are turned into typed water systems and
buyer/seller relationships. Systems are keyed by `ws_number` for the whole
pass so a buyer listed twice on one page is only created once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from .parser import RawRelationshipRow


@dataclass(frozen=True)
class WaterSystem:
    ws_number: str
    state_code: str
    name: Optional[str] = None
    is_number: Optional[str] = None


@dataclass(frozen=True)
class BuyerSellerRelationship:
    seller: str
    buyer: str
    buyer_name: str = ""
    population: str = ""
    availability: str = ""

    @property
    def key(self) -> Tuple[str, str]:
        return (self.seller, self.buyer)


@dataclass
class Resolution:
    """Systems (seller first) and relationships found on one page, deduplicated."""

    systems: List[WaterSystem] = field(default_factory=list)
    relationships: List[BuyerSellerRelationship] = field(default_factory=list)


def buyer_system(row: RawRelationshipRow) -> WaterSystem:
    # State code is the identifier prefix ("TX0570030" -> "TX"); not validated.
    return WaterSystem(
        ws_number=row.buyer,
        state_code=row.buyer[:2],
        name=row.buyer_name or None,
        is_number=None,
    )


def resolve(seed: WaterSystem, rows: Iterable[RawRelationshipRow]) -> Resolution:
    """
    Build the entities for one page.

    The relationship seller always comes from `seed`; the row's own seller
    field is display text only. The first row naming a buyer wins.
    """
    systems: Dict[str, WaterSystem] = {seed.ws_number: seed}
    relationships: Dict[Tuple[str, str], BuyerSellerRelationship] = {}

    for row in rows:
        relationship = BuyerSellerRelationship(
            seller=seed.ws_number,
            buyer=row.buyer,
            buyer_name=row.buyer_name,
            population=row.population,
            availability=row.availability,
        )
        relationships.setdefault(relationship.key, relationship)
        if row.buyer not in systems:
            systems[row.buyer] = buyer_system(row)

    return Resolution(systems=list(systems.values()), relationships=list(relationships.values()))
