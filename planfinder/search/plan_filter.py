"""
Plan query engine for the catalog search screen.
Filters a plan collection by structured criteria and orders the matches
newest first.
"""

from typing import List, Any, Optional, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from loguru import logger

from ..core.filename_codec import UNKNOWN


# Record keys (camelCase, as rendered by the API) and ORM attribute names
FIELD_ATTRIBUTES = {
    "layout": "layout",
    "floors": "floors",
    "totalArea": "total_area",
    "siteArea": "site_area",
    "direction": "direction",
    "features": "features",
    "favorite": "favorite",
    "createdAt": "created_at",
}


@dataclass
class SearchFilters:
    """Search criteria. Fields left as None impose no constraint."""
    layout: Optional[str] = None
    floors: Optional[str] = None
    min_area: Optional[float] = None
    max_area: Optional[float] = None
    min_site_area: Optional[float] = None
    max_site_area: Optional[float] = None
    direction: Optional[str] = None
    features: List[str] = field(default_factory=list)
    favorite_only: bool = False

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "SearchFilters":
        """
        Build filters from HTTP query parameters.

        "-" or empty for layout/floors/direction means "any". Features arrive
        comma separated. favoriteOnly is only enabled by the string "true".
        """
        def token(name: str) -> Optional[str]:
            value = params.get(name)
            if value is None:
                return None
            value = str(value).strip()
            if not value or value == UNKNOWN:
                return None
            return value

        def number(name: str) -> Optional[float]:
            value = params.get(name)
            if value is None or str(value).strip() == "":
                return None
            try:
                return float(value)
            except (TypeError, ValueError):
                logger.debug(f"Ignoring non-numeric filter {name}={value!r}")
                return None

        features_str = params.get("features") or ""
        features = [f.strip() for f in str(features_str).split(",") if f.strip()]

        return cls(
            layout=token("layout"),
            floors=token("floors"),
            min_area=number("minArea"),
            max_area=number("maxArea"),
            min_site_area=number("minSiteArea"),
            max_site_area=number("maxSiteArea"),
            direction=token("direction"),
            features=features,
            favorite_only=params.get("favoriteOnly") == "true",
        )


def _get(plan: Any, key: str) -> Any:
    """Read a field from a camelCase record or an object with snake_case attributes."""
    if isinstance(plan, Mapping):
        return plan.get(key)
    return getattr(plan, FIELD_ATTRIBUTES[key], None)


def feature_matches(requested: str, plan_features: Sequence[str]) -> bool:
    """A requested feature matches when it contains, or is contained in, any plan feature."""
    return any(
        requested in feature or feature in requested
        for feature in plan_features if isinstance(feature, str)
    )


def _within(value: Any, low: Optional[float], high: Optional[float]) -> bool:
    """Inclusive bounds check. A missing or non-numeric value fails any bound."""
    if low is None and high is None:
        return True
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value != value:
        return False
    if low is not None and value < low:
        return False
    if high is not None and value > high:
        return False
    return True


def matches_filters(plan: Any, filters: SearchFilters) -> bool:
    """Check a single plan against every specified criterion."""
    if filters.layout and _get(plan, "layout") != filters.layout:
        return False

    if filters.floors and _get(plan, "floors") != filters.floors:
        return False

    if not _within(_get(plan, "totalArea"), filters.min_area, filters.max_area):
        return False

    if not _within(_get(plan, "siteArea"), filters.min_site_area, filters.max_site_area):
        return False

    if filters.direction and _get(plan, "direction") != filters.direction:
        return False

    if filters.features:
        plan_features = _get(plan, "features") or []
        if not all(feature_matches(feature, plan_features) for feature in filters.features):
            return False

    if filters.favorite_only and not _get(plan, "favorite"):
        return False

    return True


def _created_at_key(plan: Any) -> float:
    """Sort key for creation time; plans without a usable timestamp sort last."""
    created_at = _get(plan, "createdAt")
    if created_at is None:
        return float("-inf")

    if isinstance(created_at, str):
        value = created_at.strip()
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        try:
            created_at = datetime.fromisoformat(value)
        except ValueError:
            logger.debug(f"Unparseable createdAt {created_at!r}, sorting last")
            return float("-inf")

    if not isinstance(created_at, datetime):
        return float("-inf")

    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return created_at.timestamp()


def search_plans(all_plans: Sequence[Any], filters: SearchFilters) -> List[Any]:
    """
    Filter plans and sort them by creation time, newest first.

    Args:
        all_plans: Plan records (camelCase mappings or ORM objects)
        filters: Search criteria

    Returns:
        New list of matching plans; the input is left untouched
    """
    matches = [plan for plan in all_plans if matches_filters(plan, filters)]
    matches.sort(key=_created_at_key, reverse=True)

    logger.debug(f"Plan search matched {len(matches)} of {len(all_plans)} plans")
    return matches
