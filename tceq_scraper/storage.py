"""
Persistence layer built on SQLAlchemy for the water system crawler.

Two tables are defined:
    - water_systems: one row per water system number.
    - water_buyer_relationships: one row per (seller, buyer) pair.

Both upserts are insert-or-skip: an existing natural key is reported as
`UpsertOutcome.ALREADY_EXISTS` and never overwritten. Each call commits on its
own so one failing record does not take the rest of the page with it.
"""

from __future__ import annotations

import csv
import enum
from pathlib import Path
from typing import Dict

from sqlalchemy import Column, ForeignKey, Integer, String, UniqueConstraint, create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .resolver import BuyerSellerRelationship, WaterSystem

Base = declarative_base()

EXPORT_HEADER = ["seller", "seller_name", "buyer", "buyer_name", "population", "availability"]


class WaterSystemRecord(Base):
    __tablename__ = "water_systems"

    id = Column(Integer, primary_key=True)
    water_system_no = Column(String(32), nullable=False, unique=True)
    name = Column(String(256), nullable=True)
    state_code = Column(String(2), nullable=True)
    is_no = Column(String(32), nullable=True)


class RelationshipRecord(Base):
    __tablename__ = "water_buyer_relationships"

    id = Column(Integer, primary_key=True)
    seller = Column(String(32), ForeignKey("water_systems.water_system_no"), nullable=False)
    buyer = Column(String(32), ForeignKey("water_systems.water_system_no"), nullable=False)
    buyer_name = Column(String(256), nullable=True)
    population = Column(String(64), nullable=True)
    availability = Column(String(64), nullable=True)

    __table_args__ = (
        UniqueConstraint("seller", "buyer", name="uq_seller_buyer"),
    )


class UpsertOutcome(enum.Enum):
    INSERTED = "inserted"
    ALREADY_EXISTS = "already_exists"


class StorageError(RuntimeError):
    """Connectivity or schema failure while writing a record."""


def get_engine(database_path: str):
    """Create a SQLite engine, ensuring the parent directory is available."""
    Path(database_path).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(f"sqlite:///{database_path}", future=True)


def get_session_factory(database_path: str):
    engine = get_engine(database_path)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False, class_=Session)


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _fill_absent(instance: WaterSystemRecord, system: WaterSystem) -> bool:
    """Fill a missing name or is number; never replace stored values."""
    changed = False
    if _is_blank(instance.name) and not _is_blank(system.name):
        instance.name = system.name
        changed = True
    if _is_blank(instance.is_no) and not _is_blank(system.is_number):
        instance.is_no = system.is_number
        changed = True
    return changed


def upsert_system(session: Session, system: WaterSystem) -> UpsertOutcome:
    """Insert `system` unless its water system number is already stored."""
    try:
        existing = (
            session.query(WaterSystemRecord)
            .filter(WaterSystemRecord.water_system_no == system.ws_number)
            .one_or_none()
        )
        if existing is not None:
            if _fill_absent(existing, system):
                session.commit()
            return UpsertOutcome.ALREADY_EXISTS

        session.add(
            WaterSystemRecord(
                water_system_no=system.ws_number,
                name=system.name,
                state_code=system.state_code or None,
                is_no=system.is_number,
            )
        )
        session.commit()
    except IntegrityError:
        session.rollback()
        return UpsertOutcome.ALREADY_EXISTS
    except SQLAlchemyError as exc:
        session.rollback()
        raise StorageError(f"Failed to store water system {system.ws_number}: {exc}") from exc
    return UpsertOutcome.INSERTED


def upsert_relationship(session: Session, relationship: BuyerSellerRelationship) -> UpsertOutcome:
    """Insert `relationship` unless its (seller, buyer) pair is already stored."""
    try:
        existing = (
            session.query(RelationshipRecord.id)
            .filter(
                RelationshipRecord.seller == relationship.seller,
                RelationshipRecord.buyer == relationship.buyer,
            )
            .first()
        )
        if existing is not None:
            return UpsertOutcome.ALREADY_EXISTS

        session.add(
            RelationshipRecord(
                seller=relationship.seller,
                buyer=relationship.buyer,
                buyer_name=relationship.buyer_name,
                population=relationship.population,
                availability=relationship.availability,
            )
        )
        session.commit()
    except IntegrityError:
        session.rollback()
        return UpsertOutcome.ALREADY_EXISTS
    except SQLAlchemyError as exc:
        session.rollback()
        raise StorageError(
            f"Failed to store relationship {relationship.seller} -> {relationship.buyer}: {exc}"
        ) from exc
    return UpsertOutcome.INSERTED


def export_relationships(session: Session, path: Path) -> int:
    """
    Write every stored relationship to `path` as CSV.

    Rows are ordered by seller then buyer; the seller name comes from the
    water_systems table. Returns the number of data rows written.
    """
    names: Dict[str, str] = {
        number: name or ""
        for number, name in session.query(WaterSystemRecord.water_system_no, WaterSystemRecord.name)
    }
    records = (
        session.query(RelationshipRecord)
        .order_by(RelationshipRecord.seller, RelationshipRecord.buyer)
        .all()
    )

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle)
        writer.writerow(EXPORT_HEADER)
        for record in records:
            writer.writerow(
                [
                    record.seller,
                    names.get(record.seller, ""),
                    record.buyer,
                    record.buyer_name or "",
                    record.population or "",
                    record.availability or "",
                ]
            )
    return len(records)
