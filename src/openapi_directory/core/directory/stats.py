"""
Derived views over raw directory entries: summary rows, search matching,
provider statistics and the directory-wide summary.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from openapi_directory.core.models import (
    ApiSummary,
    DirectorySummary,
    PopularApi,
    ProviderStats,
    RecentUpdate,
)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
DESCRIPTION_LIMIT = 200
TOP_N = 10

Entries = Dict[str, Dict[str, Any]]


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO timestamp; anything unparsable is the epoch."""
    if not isinstance(value, str) or not value:
        return EPOCH
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def preferred_info(entry: Dict[str, Any]) -> Dict[str, Any]:
    """``info`` of the preferred version, or an empty dict."""
    versions = entry.get("versions") or {}
    version = versions.get(entry.get("preferred")) if isinstance(versions, dict) else None
    if not isinstance(version, dict):
        return {}
    info = version.get("info")
    return info if isinstance(info, dict) else {}


def provider_of(api_id: str, info: Dict[str, Any]) -> str:
    return info.get("x-providerName") or api_id.split(":")[0] or "Unknown"


def truncate(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text


def summary_row(api_id: str, entry: Dict[str, Any], source: Optional[str] = None) -> ApiSummary:
    """Compact listing row for one directory entry."""
    info = preferred_info(entry)
    return ApiSummary(
        id=api_id,
        title=info.get("title") or "Untitled API",
        description=truncate(info.get("description") or "", DESCRIPTION_LIMIT),
        provider=provider_of(api_id, info),
        preferred=str(entry.get("preferred") or ""),
        categories=list(info.get("x-apisguru-categories") or []),
        source=source,
    )


def summary_rows(apis: Entries) -> List[ApiSummary]:
    return [summary_row(api_id, entry) for api_id, entry in apis.items()]


def matches_query(api_id: str, entry: Dict[str, Any], query: str) -> bool:
    """Case-insensitive match on the id or any version's title, description or provider."""
    needle = query.lower()
    if needle in api_id.lower():
        return True

    for version in (entry.get("versions") or {}).values():
        info = version.get("info") if isinstance(version, dict) else None
        if not isinstance(info, dict):
            continue
        for key in ("title", "description", "x-providerName"):
            value = info.get(key)
            if isinstance(value, str) and needle in value.lower():
                return True
    return False


def filter_apis(apis: Entries, query: str, provider: Optional[str] = None) -> Entries:
    """Entries matching ``query``; ``provider`` keeps only ids containing it."""
    return {
        api_id: entry
        for api_id, entry in apis.items()
        if (not provider or provider in api_id) and matches_query(api_id, entry, query)
    }


def _version_records(entry: Dict[str, Any]) -> List[Dict[str, Any]]:
    versions = entry.get("versions")
    if isinstance(versions, dict):
        return [v for v in versions.values() if isinstance(v, dict)]
    # Registries sometimes return the version record itself
    if isinstance(entry.get("added"), str) or isinstance(entry.get("updated"), str):
        return [entry]
    return []


def calculate_provider_stats(apis: Optional[Entries]) -> ProviderStats:
    """
    Version counts and date extremes for one provider's APIs.

    ``latest_update`` is the newest ``updated`` timestamp; ``oldest_api`` and
    ``newest_api`` are the ids with the earliest and latest ``added`` date.
    """
    if not apis:
        return ProviderStats(
            total_apis=0,
            total_versions=0,
            latest_update=format_timestamp(EPOCH),
            oldest_api="",
            newest_api="",
        )

    total_versions = 0
    latest_update = EPOCH
    oldest: Optional[Tuple[datetime, str]] = None
    newest: Optional[Tuple[datetime, str]] = None

    for api_id, entry in apis.items():
        records = _version_records(entry) if isinstance(entry, dict) else []
        total_versions += len(records)

        for record in records:
            updated = parse_timestamp(record.get("updated"))
            if updated > latest_update:
                latest_update = updated

            added = parse_timestamp(record.get("added"))
            if oldest is None or added < oldest[0]:
                oldest = (added, api_id)
            if newest is None or added > newest[0]:
                newest = (added, api_id)

    return ProviderStats(
        total_apis=len(apis),
        total_versions=total_versions,
        latest_update=format_timestamp(latest_update),
        oldest_api=oldest[1] if oldest else "",
        newest_api=newest[1] if newest else "",
    )


def build_summary(apis: Entries) -> DirectorySummary:
    """Totals, categories and the top popular and recently updated APIs."""
    providers = set()
    categories = set()
    scored: List[Dict[str, Any]] = []

    for api_id, entry in apis.items():
        info = preferred_info(entry)
        provider = provider_of(api_id, info)
        providers.add(provider)
        categories.update(c for c in info.get("x-apisguru-categories") or [] if isinstance(c, str))

        records = _version_records(entry)
        popularity = info.get("x-apisguru-popularity") or 0
        latest = max((parse_timestamp(r.get("updated")) for r in records), default=EPOCH)

        scored.append({
            "id": api_id,
            "title": info.get("title") or "Untitled API",
            "provider": provider,
            "score": len(entry.get("versions") or {}) * 10 + popularity,
            "updated": latest,
        })

    popular = sorted(scored, key=lambda item: item["score"], reverse=True)[:TOP_N]
    recent = sorted(scored, key=lambda item: item["updated"], reverse=True)[:TOP_N]

    return DirectorySummary(
        total_apis=len(apis),
        total_providers=len(providers),
        categories=sorted(categories),
        popular_apis=[
            PopularApi(id=item["id"], title=item["title"], provider=item["provider"])
            for item in popular
        ],
        recent_updates=[
            RecentUpdate(id=item["id"], title=item["title"], updated=item["updated"].date().isoformat())
            for item in recent
        ],
    )
