from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import ComparableDataSource, ComparableListing, PropertyType

DEFAULT_SEARCH_LIMIT = 50


def add_comparable(db: Session, created_by: uuid.UUID, fields: dict[str, Any]) -> ComparableListing:
    comp = ComparableListing(**fields, data_source=ComparableDataSource.MANUAL, created_by=created_by)
    db.add(comp)
    db.flush()
    return comp


def search_comparables(
    db: Session,
    zip_code: str | None = None,
    neighborhood: str | None = None,
    property_type: PropertyType | None = None,
    min_beds: int | None = None,
    max_beds: int | None = None,
    min_sqft: int | None = None,
    max_sqft: int | None = None,
    limit: int = DEFAULT_SEARCH_LIMIT,
) -> list[ComparableListing]:
    stmt = select(ComparableListing)
    if zip_code:
        stmt = stmt.where(ComparableListing.zip_code == zip_code)
    if neighborhood:
        stmt = stmt.where(ComparableListing.neighborhood.ilike(f"%{neighborhood}%"))
    if property_type:
        stmt = stmt.where(ComparableListing.property_type == property_type)
    if min_beds is not None:
        stmt = stmt.where(ComparableListing.beds >= min_beds)
    if max_beds is not None:
        stmt = stmt.where(ComparableListing.beds <= max_beds)
    if min_sqft is not None:
        stmt = stmt.where(ComparableListing.sqft >= min_sqft)
    if max_sqft is not None:
        stmt = stmt.where(ComparableListing.sqft <= max_sqft)
    stmt = stmt.order_by(ComparableListing.sold_date.desc().nulls_last()).limit(limit)
    return list(db.scalars(stmt).all())


def comparable_payload(comp: ComparableListing) -> dict[str, Any]:
    return {
        "id": str(comp.id),
        "address": comp.address,
        "zip_code": comp.zip_code,
        "neighborhood": comp.neighborhood,
        "property_type": PropertyType(comp.property_type).value,
        "beds": comp.beds,
        "baths": comp.baths,
        "sqft": comp.sqft,
        "list_price": comp.list_price,
        "sold_price": comp.sold_price,
        "days_on_market": comp.days_on_market,
        "sold_date": comp.sold_date.isoformat() if comp.sold_date else None,
        "data_source": ComparableDataSource(comp.data_source).value,
    }
