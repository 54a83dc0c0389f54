from __future__ import annotations

from tourguide.models import PlaceDetails, PointOfInterest

DEFAULT_SUMMARY = "A notable location worth exploring."


def humanize_category(category: str) -> str:
    return category.replace("_", " ").strip() or "point of interest"


def fallback_summary(poi: PointOfInterest) -> str:
    if poi.summary:
        return poi.summary
    if poi.rating is not None:
        return f"A {humanize_category(poi.category)} with a {poi.rating:.1f}/5 rating."
    return DEFAULT_SUMMARY


def summarize(poi: PointOfInterest, details: PlaceDetails | None) -> tuple[str, str, str]:
    """(name, category, fact) for a POI, preferring enrichment data when present."""
    if details is None:
        return poi.name, poi.category, fallback_summary(poi)
    fact = details.editorial_summary or poi.summary
    if not fact and details.rating is not None:
        fact = f"A {humanize_category(details.category)} with a {details.rating:.1f}/5 rating."
    return details.name or poi.name, details.category or poi.category, fact or DEFAULT_SUMMARY


def location_update_text(poi: PointOfInterest, details: PlaceDetails | None, distance_m: float) -> str:
    name, category, fact = summarize(poi, details)
    return (
        f"Context update: the user is now about {round(distance_m)}m from {name}, "
        f"a {humanize_category(category)} at [{poi.latitude:.6f}, {poi.longitude:.6f}]. "
        f"A key fact about it: {fact}"
    )


def periodic_pitch_text(poi: PointOfInterest, details: PlaceDetails | None, distance_m: float) -> str:
    name, category, fact = summarize(poi, details)
    return (
        f"Did you know? Around {round(distance_m)}m away is {name}, "
        f"a {humanize_category(category)} at [{poi.latitude:.6f}, {poi.longitude:.6f}]. "
        f"{fact} Mention it only if it fits the conversation."
    )
