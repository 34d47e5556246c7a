from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from openai import OpenAI

from ..settings import settings
from .geocoding import GeoResult

logger = logging.getLogger(__name__)

MLS_MIN_WORDS = 350
MLS_MAX_WORDS = 450
DEFAULT_FACT_CHECK_SCORE = 75
MOCK_FACT_CHECK_SCORE = 92
NUMBERED_CAPTION = re.compile(r"\d+\.\s*([^\d]+)")
CAPTION_HEADER = re.compile(r"^(caption|post|social)", re.IGNORECASE)


@dataclass
class PropertyDetails:
    address: str
    bedrooms: int = 0
    bathrooms: float = 0
    square_feet: int = 0
    property_type: str = "single_family"
    amenities: list[str] = field(default_factory=list)


@dataclass
class ListingCopy:
    mls_description: str
    airbnb_description: str | None = None
    social_captions: list[str] | None = None


def word_count(text: str) -> int:
    return len(text.split())


def openai_client() -> OpenAI:
    return OpenAI(api_key=settings.openai_api_key, timeout=settings.http_timeout_seconds)


def chat(prompt: str, system: str, model: str | None = None, temperature: float = 0.7, max_tokens: int | None = None) -> str:
    kwargs: dict[str, Any] = {}
    if max_tokens is not None:
        kwargs["max_tokens"] = max_tokens
    response = openai_client().chat.completions.create(
        model=model or settings.openai_model,
        messages=[{"role": "system", "content": system}, {"role": "user", "content": prompt}],
        temperature=temperature,
        **kwargs,
    )
    return (response.choices[0].message.content or "").strip()


def _property_lines(details: PropertyDetails, features: list[str]) -> str:
    amenities = ", ".join(details.amenities) if details.amenities else "None specified - do not mention any specific amenities"
    return "\n".join(
        [
            f"- Address: {details.address}",
            f"- Bedrooms: {details.bedrooms}",
            f"- Bathrooms: {details.bathrooms}",
            f"- Square feet: {details.square_feet}",
            f"- Property type: {details.property_type.replace('_', ' ')}",
            f"- Confirmed amenities: {amenities}",
            f"- Visual features from photos: {', '.join(features) or 'None'}",
        ]
    )


def _location_lines(geo: GeoResult, neighborhood: dict[str, Any]) -> str:
    lines = [f"- Neighborhood: {neighborhood.get('name')}"]
    if neighborhood.get("description"):
        lines.append(f"- About the area: {neighborhood['description']}")
    if neighborhood.get("vocabulary"):
        lines.append(f"- Local vocabulary: {', '.join(neighborhood['vocabulary'])}")
    for item in geo.distances_to_landmarks:
        lines.append(f"- {item.name}: {item.drive_time_minutes} minutes ({item.distance_miles} miles)")
    return "\n".join(lines)


def _mock_mls_description(details: PropertyDetails, geo: GeoResult, neighborhood: dict[str, Any], features: list[str]) -> str:
    area = neighborhood.get("name") or "Charleston Area"
    home = details.property_type.replace("_", " ")
    sentences = [
        f"Welcome to {details.address}, a {details.bedrooms} bedroom, {details.bathrooms} bath {home} offering "
        f"{details.square_feet} square feet of thoughtfully arranged living space in {area}.",
        "From the moment you arrive, the home presents a warm and welcoming first impression that sets the tone for everything inside.",
        "Natural light moves easily through the main living areas, creating rooms that feel open, comfortable and ready for everyday life.",
        "The layout balances gathering spaces with quiet corners, so mornings, weeknights and weekends all have room to breathe.",
    ]
    if details.amenities:
        sentences.append(f"Confirmed features include {', '.join(details.amenities)}, each adding comfort and convenience.")
    if features:
        sentences.append(f"Photos show {', '.join(features)}, details that buyers will notice right away.")
    if neighborhood.get("description"):
        sentences.append(neighborhood["description"])
    for item in geo.distances_to_landmarks[:4]:
        sentences.append(f"{item.name} is about {item.drive_time_minutes} minutes away, roughly {item.distance_miles} miles by car.")
    filler = [
        "The kitchen is positioned to keep the cook connected to conversation while meals come together.",
        "Bedrooms are set apart from the main living space, giving everyone a comfortable place to rest and recharge.",
        "Storage has been considered throughout, keeping daily essentials organized and out of sight.",
        "Outdoor time is easy to enjoy here, whether that means a slow coffee in the morning or dinner as the evening cools.",
        "The surrounding streets offer a friendly rhythm of neighbors, errands and local favorites close to home.",
        "Every room has been presented with care, ready for the next owners to add their own personality and style.",
        "Commutes, school runs and weekend outings are simplified by the convenient location and nearby routes.",
        "Lowcountry living means mild winters, long summer evenings and plenty of reasons to spend time outside.",
        "This is a home that works as well for a quiet night in as it does for hosting family and friends.",
    ]
    index = 0
    while word_count(" ".join(sentences)) < MLS_MIN_WORDS + 10:
        sentences.append(filler[index % len(filler)])
        index += 1
    sentences.append("Schedule your private showing today and see how easily this home fits the way you want to live.")
    return " ".join(sentences)


def _mock_airbnb_description(details: PropertyDetails, neighborhood: dict[str, Any]) -> str:
    area = neighborhood.get("name") or "Charleston Area"
    return (
        f"Stay in {area} at this {details.bedrooms} bedroom, {details.bathrooms} bath retreat with room for the whole group. "
        "Spend mornings planning the day over coffee and evenings relaxing after exploring the Lowcountry. "
        f"Guests enjoy {', '.join(details.amenities) if details.amenities else 'a comfortable, well-kept space'} "
        "and an easy base for restaurants, beaches and history."
    )


def _mock_social_captions(details: PropertyDetails, neighborhood: dict[str, Any]) -> list[str]:
    area = neighborhood.get("name") or "Charleston Area"
    return [
        f"Just listed in {area}: {details.bedrooms} beds, {details.bathrooms} baths and {details.square_feet} sq ft of Lowcountry living.",
        f"Feature spotlight at {details.address}. Book a showing and see the details in person.",
        f"Love {area}? This one checks the boxes on location, space and style. Message us for details.",
    ]


def generate_mls_description(
    details: PropertyDetails,
    geo: GeoResult,
    neighborhood: dict[str, Any],
    features: list[str],
) -> str:
    if settings.ai_mode != "live":
        return _mock_mls_description(details, geo, neighborhood, features)

    system = "You are an expert Charleston real estate copywriter. Only mention confirmed features."
    prompt = (
        f"Write an MLS listing description of {MLS_MIN_WORDS}-{MLS_MAX_WORDS} words.\n\n"
        f"Property:\n{_property_lines(details, features)}\n\n"
        f"Location (use these drive times exactly if mentioned):\n{_location_lines(geo, neighborhood)}"
    )
    description = chat(prompt, system)
    count = word_count(description)
    if MLS_MIN_WORDS <= count <= MLS_MAX_WORDS:
        return description
    logger.info("mls description out of range (%s words); regenerating once", count)
    retry_prompt = (
        f"{prompt}\n\nYour previous draft was {count} words. "
        f"It MUST be between {MLS_MIN_WORDS} and {MLS_MAX_WORDS} words."
    )
    return chat(retry_prompt, system)


def generate_airbnb_description(details: PropertyDetails, geo: GeoResult, neighborhood: dict[str, Any], features: list[str]) -> str:
    if settings.ai_mode != "live":
        return _mock_airbnb_description(details, neighborhood)
    prompt = (
        "Write a 200-250 word Airbnb listing description for guests.\n\n"
        f"Property:\n{_property_lines(details, features)}\n\nLocation:\n{_location_lines(geo, neighborhood)}"
    )
    return chat(prompt, "You write vacation rental listings. Only mention confirmed amenities.")


def parse_social_captions(text: str) -> list[str]:
    numbered = [match.strip() for match in NUMBERED_CAPTION.findall(text)]
    if len(numbered) >= 2:
        return numbered[:3]
    blocks = [block.strip() for block in text.split("\n\n") if len(block.strip()) > 20]
    if len(blocks) >= 2:
        return blocks[:3]
    lines = [
        line.strip()
        for line in text.split("\n")
        if len(line.strip()) > 20 and not CAPTION_HEADER.match(line.strip())
    ]
    return lines[:3]


def generate_social_captions(details: PropertyDetails, geo: GeoResult, neighborhood: dict[str, Any], features: list[str]) -> list[str]:
    if settings.ai_mode != "live":
        return _mock_social_captions(details, neighborhood)
    prompt = (
        "Write 3 short social media captions for this listing as a numbered list (1., 2., 3.). "
        "First: lifestyle hook. Second: key features. Third: call to action.\n\n"
        f"Property:\n{_property_lines(details, features)}\n\nLocation:\n{_location_lines(geo, neighborhood)}"
    )
    return parse_social_captions(chat(prompt, "You write concise real estate social posts."))


def generate_descriptions(
    details: PropertyDetails,
    geo: GeoResult,
    neighborhood: dict[str, Any],
    features: list[str],
    include_airbnb: bool = False,
    include_social: bool = False,
) -> ListingCopy:
    copy = ListingCopy(mls_description=generate_mls_description(details, geo, neighborhood, features))
    if include_airbnb:
        copy.airbnb_description = generate_airbnb_description(details, geo, neighborhood, features)
    if include_social:
        copy.social_captions = generate_social_captions(details, geo, neighborhood, features)
    return copy


def parse_score(text: str, default: int = DEFAULT_FACT_CHECK_SCORE) -> int:
    match = re.search(r"\d+", text)
    score = int(match.group(0)) if match else default
    return min(100, max(0, score))


def fact_check(description: str, details: PropertyDetails, features: list[str], geo: GeoResult | None = None) -> int:
    """Score 0-100 for how well the copy sticks to verified facts."""
    if settings.ai_mode != "live":
        return MOCK_FACT_CHECK_SCORE
    distances = ""
    if geo is not None and geo.distances_to_landmarks:
        distances = "\nVerified driving distances:\n" + "\n".join(
            f"- {item.name}: {item.drive_time_minutes} minutes ({item.distance_miles} miles)" for item in geo.distances_to_landmarks
        )
    prompt = (
        f"Review this listing description for accuracy.\n\nDescription:\n{description}\n\n"
        f"Property data:\n{_property_lines(details, features)}{distances}\n\n"
        "Rate confidence 0-100 that every claim is supported. Respond with just a number."
    )
    try:
        return parse_score(chat(prompt, "You are a meticulous real estate compliance reviewer.", temperature=0))
    except Exception:
        logger.exception("fact-check failed; using default score")
        return DEFAULT_FACT_CHECK_SCORE


def market_narrative(area: str, median_price: float, days_on_market_avg: float, price_per_sqft: float) -> str:
    fallback = (
        f"The {area} shows a median sold price of ${median_price:,.0f} "
        f"with an average of {round(days_on_market_avg)} days on market."
    )
    if settings.ai_mode != "live":
        return fallback
    prompt = (
        f"Write a 2-3 sentence market summary for {area}. Median sold price ${median_price:,.0f}, "
        f"average ${price_per_sqft:,.0f} per square foot, average {round(days_on_market_avg)} days on market."
    )
    try:
        return chat(prompt, "You are a residential real estate market analyst.", model=settings.openai_report_model, max_tokens=300) or fallback
    except Exception:
        logger.exception("market narrative generation failed")
        return fallback
