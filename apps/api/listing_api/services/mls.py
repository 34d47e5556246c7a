from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any

import httpx
from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..auth import RequestContext, get_membership, require_team_member
from ..clock import as_utc, utcnow
from ..models import MLSConnection, MLSProvider, Team, TeamRole
from ..settings import settings
from .audit import write_audit_log
from .provider_errors import classify_error
from .token_vault import decrypt_token, encrypt_token

logger = logging.getLogger(__name__)


def _first(*values: Any, default: Any = None) -> Any:
    for value in values:
        if value:
            return value
    return default


def _reso_address(data: dict[str, Any]) -> str | None:
    address = (data.get("Property") or {}).get("Address") or {}
    if not address.get("StreetName"):
        return _first(data.get("UnparsedAddress"), data.get("Address"))
    street = " ".join(
        part for part in (address.get("StreetNumber"), address.get("StreetName"), address.get("StreetSuffix")) if part
    )
    return f"{street}, {address.get('City', '')}, {address.get('StateOrProvince', '')} {address.get('PostalCode', '')}".strip()


def _normalize_reso(data: dict[str, Any]) -> dict[str, Any]:
    prop = data.get("Property") or {}
    photos = [
        _first(media.get("MediaURL"), media.get("Url"))
        for media in data.get("Media") or []
        if isinstance(media, dict) and (media.get("MediaCategory") == "Photo" or media.get("Type") == "Photo")
    ]
    return {
        "mls_number": _first(data.get("ListingId"), data.get("MLSNumber"), data.get("MlsNumber")),
        "address": _reso_address(data),
        "beds": _first(prop.get("BedroomsTotal"), data.get("BedroomsTotal"), data.get("Beds")),
        "baths": _first(prop.get("BathroomsTotalInteger"), data.get("BathroomsTotalInteger"), data.get("Baths")),
        "sqft": _first(prop.get("LivingArea"), data.get("LivingArea"), data.get("SquareFeet")),
        "property_type": _first(data.get("PropertyType"), prop.get("PropertyType"), default="Other"),
        "list_price": _first(data.get("ListPrice"), data.get("ListPriceDisplay")),
        "year_built": _first(prop.get("YearBuilt"), data.get("YearBuilt")),
        "lot_size": _first(prop.get("LotSizeSquareFeet"), data.get("LotSizeSquareFeet")),
        "description": _first(data.get("PublicRemarks"), data.get("Remarks"), data.get("Description"), default=""),
        "photos": [url for url in photos if url],
        "amenities": _first(data.get("Features"), prop.get("Features"), default=[]),
    }


def _normalize_bright(data: dict[str, Any]) -> dict[str, Any]:
    address = data.get("address")
    if isinstance(address, dict):
        address = address.get("full")
    return {
        "mls_number": _first(data.get("mlsNumber"), data.get("MLSNumber")),
        "address": _first(address, data.get("fullAddress")),
        "beds": _first(data.get("bedrooms"), data.get("beds")),
        "baths": _first(data.get("bathrooms"), data.get("baths")),
        "sqft": _first(data.get("squareFeet"), data.get("sqft"), data.get("livingArea")),
        "property_type": _first(data.get("propertyType"), data.get("propertySubType"), default="Other"),
        "list_price": _first(data.get("listPrice"), data.get("price")),
        "year_built": data.get("yearBuilt"),
        "lot_size": data.get("lotSize"),
        "description": _first(data.get("remarks"), data.get("description"), default=""),
        "photos": _first(data.get("photos"), (data.get("media") or {}).get("photos"), default=[]),
        "amenities": data.get("features") or [],
    }


def _normalize_generic(data: dict[str, Any]) -> dict[str, Any]:
    return {
        "mls_number": _first(data.get("mls_number"), data.get("mlsNumber"), data.get("MLSNumber"), data.get("id")),
        "address": _first(data.get("address"), data.get("Address"), data.get("fullAddress"), default=""),
        "beds": _first(data.get("beds"), data.get("bedrooms"), data.get("BedroomsTotal")),
        "baths": _first(data.get("baths"), data.get("bathrooms"), data.get("BathroomsTotalInteger")),
        "sqft": _first(data.get("sqft"), data.get("squareFeet"), data.get("square_feet"), data.get("LivingArea")),
        "property_type": _first(data.get("property_type"), data.get("propertyType"), data.get("PropertyType"), default="Other"),
        "list_price": _first(data.get("list_price"), data.get("listPrice"), data.get("ListPrice")),
        "year_built": _first(data.get("year_built"), data.get("yearBuilt"), data.get("YearBuilt")),
        "lot_size": _first(data.get("lot_size"), data.get("lotSize"), data.get("LotSizeSquareFeet")),
        "description": _first(
            data.get("description"), data.get("Description"), data.get("remarks"), data.get("PublicRemarks"), default=""
        ),
        "photos": _first(data.get("photos"), data.get("Photos"), (data.get("media") or {}).get("photos"), default=[]),
        "amenities": _first(data.get("amenities"), data.get("Amenities"), data.get("features"), default=[]),
    }


NORMALIZERS = {
    MLSProvider.RESO_WEB_API: _normalize_reso,
    MLSProvider.BRIGHT_MLS: _normalize_bright,
}


NUMERIC_FIELDS = ("beds", "baths", "sqft", "list_price", "lot_size")
TEXT_FIELDS = ("address", "property_type")


def _number(value: Any) -> float | int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value.replace(",", "").replace("$", "").strip())
        except ValueError:
            return None
    return None


def _string_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item not in (None, "") and not isinstance(item, (dict, list))]
    return []


def _clean(normalized: dict[str, Any]) -> dict[str, Any]:
    """Coerce vendor values into the shapes the API returns; unusable values become empty."""
    cleaned = dict(normalized)
    for field in NUMERIC_FIELDS:
        cleaned[field] = _number(normalized.get(field))
    year_built = _number(normalized.get("year_built"))
    cleaned["year_built"] = int(year_built) if year_built is not None else None
    for field in TEXT_FIELDS:
        value = normalized.get(field)
        cleaned[field] = str(value) if value is not None and not isinstance(value, (dict, list)) else None
    mls_number = normalized.get("mls_number")
    if mls_number is not None and not isinstance(mls_number, (str, int)):
        mls_number = str(mls_number)
    cleaned["mls_number"] = mls_number
    description = normalized.get("description")
    cleaned["description"] = description if isinstance(description, str) else ""
    cleaned["photos"] = _string_list(normalized.get("photos"))
    cleaned["amenities"] = _string_list(normalized.get("amenities"))
    return cleaned


def normalize_property(data: dict[str, Any], provider: MLSProvider | str) -> dict[str, Any]:
    normalizer = NORMALIZERS.get(MLSProvider(provider), _normalize_generic)
    return {**_clean(normalizer(data)), "raw_data": data}


def connect(
    db: Session,
    context: RequestContext,
    provider: MLSProvider,
    mls_name: str,
    api_base_url: str | None,
    access_token: str | None,
    refresh_token: str | None = None,
    token_expires_at: datetime | None = None,
    team_id: uuid.UUID | None = None,
    metadata_json: dict[str, Any] | None = None,
) -> MLSConnection:
    if team_id is not None:
        team = db.get(Team, team_id)
        if team is None or team.owner_id != context.current_user_id:
            require_team_member(
                db, team_id, context, roles={TeamRole.ADMIN}, detail="Only team owners/admins can connect MLS"
            )
        scope = MLSConnection.team_id == team_id
    else:
        scope = MLSConnection.user_id == context.current_user_id

    connection = db.scalar(
        select(MLSConnection).where(MLSConnection.provider == provider, MLSConnection.mls_name == mls_name, scope)
    )
    if connection is None:
        connection = MLSConnection(
            provider=provider,
            mls_name=mls_name,
            user_id=None if team_id is not None else context.current_user_id,
            team_id=team_id,
        )
        db.add(connection)

    connection.api_base_url = api_base_url
    connection.access_token_enc = encrypt_token(access_token)
    connection.refresh_token_enc = encrypt_token(refresh_token)
    connection.token_expires_at = token_expires_at
    connection.metadata_json = metadata_json or {}
    connection.is_active = True
    db.flush()
    write_audit_log(
        db,
        context,
        "mls.connected",
        "mls_connection",
        connection.id,
        {"provider": provider.value, "mls_name": mls_name, "team_id": str(team_id) if team_id else None},
    )
    return connection


def _authorize_pull(db: Session, context: RequestContext, connection: MLSConnection, team_id: uuid.UUID | None) -> None:
    if connection.team_id is not None:
        if team_id != connection.team_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Team ID mismatch")
        if get_membership(db, connection.team_id, context.current_user_id) is None:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a team member")
    elif connection.user_id != context.current_user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")


def fetch_property(
    connection: MLSConnection, mls_number: str, transport: httpx.BaseTransport | None = None
) -> dict[str, Any]:
    access_token = decrypt_token(connection.access_token_enc)
    headers = {"Accept": "application/json", "Content-Type": "application/json"}
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"
    base_url = (connection.api_base_url or "").rstrip("/")
    with httpx.Client(timeout=settings.http_timeout_seconds, transport=transport) as client:
        response = client.get(f"{base_url}/properties/{mls_number}", headers=headers)
        response.raise_for_status()
        payload = response.json()
    if not isinstance(payload, dict):
        raise ValueError("MLS response was not a JSON object")
    return normalize_property(payload, connection.provider)


def pull(
    db: Session,
    context: RequestContext,
    connection_id: uuid.UUID,
    mls_number: str,
    team_id: uuid.UUID | None = None,
    transport: httpx.BaseTransport | None = None,
) -> dict[str, Any]:
    connection = db.scalar(
        select(MLSConnection).where(MLSConnection.id == connection_id, MLSConnection.is_active.is_(True))
    )
    if connection is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="MLS connection not found or inactive")
    _authorize_pull(db, context, connection, team_id)

    if connection.token_expires_at is not None and as_utc(connection.token_expires_at) <= utcnow():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "TOKEN_EXPIRED", "message": "MLS access token expired", "requires_refresh": True},
        )

    try:
        return fetch_property(connection, mls_number, transport=transport)
    except (httpx.HTTPError, ValueError) as exc:
        error = classify_error(exc, provider=MLSProvider(connection.provider).value)
        logger.warning("mls pull failed for connection %s: %s", connection.id, error.category)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"code": "MLS_FETCH_FAILED", "message": "Failed to fetch property from MLS", "details": str(error)},
        ) from exc
