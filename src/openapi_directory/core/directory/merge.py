"""
Merge utilities for combining two directory snapshots.

All functions are pure. On every id collision the second ("secondary")
argument wins; the aggregator chains calls to get custom > secondary >
primary precedence across three sources.
"""

from typing import Any, Dict, Iterable, List, Union

from openapi_directory.core.directory.stats import Entries, summary_row
from openapi_directory.core.directory.validation import validate_metrics, validate_providers
from openapi_directory.core.models import (
    ApiSummary,
    ConflictInfo,
    DirectoryMetrics,
    Pagination,
    PaginatedResults,
)
from openapi_directory.utils.logging import get_logger

logger = get_logger(__name__)

PRIMARY = "primary"
SECONDARY = "secondary"

MetricsLike = Union[DirectoryMetrics, Dict[str, Any]]


def merge_api_lists(primary: Entries, secondary: Entries) -> Entries:
    """Overlay ``secondary`` onto ``primary`` by id."""
    merged = dict(primary)
    merged.update(secondary)
    return merged


def merge_providers(primary: Any, secondary: Any) -> Dict[str, List[str]]:
    """Sanitized, deduplicated and sorted union of two provider responses."""
    validated_primary = validate_providers(primary)
    validated_secondary = validate_providers(secondary)
    validated_primary.log("primary providers")
    validated_secondary.log("secondary providers")

    unique = set(validated_primary.data["data"]) | set(validated_secondary.data["data"])
    return {"data": sorted(unique)}


def relevance_score(row: ApiSummary, query: str) -> int:
    """Rank a row against a query; higher is more relevant."""
    needle = query.lower()
    provider = row.provider.lower()
    api_id = row.id.lower()

    if provider == needle:
        return 100
    if needle in provider:
        return 80
    if api_id.startswith(needle):
        return 60
    if needle in api_id:
        return 40
    if needle in row.title.lower():
        return 20
    return 10


def rank_search_results(
    primary: Iterable[ApiSummary],
    secondary: Iterable[ApiSummary],
    query: str,
) -> List[ApiSummary]:
    """
    Deduplicate two result lists and order them by relevance.

    Rows are tagged with their source. Ties on score prefer secondary rows,
    then fall back to id order.
    """
    unique: Dict[str, ApiSummary] = {}
    for row in primary:
        unique[row.id] = row.model_copy(update={"source": PRIMARY})
    for row in secondary:
        unique[row.id] = row.model_copy(update={"source": SECONDARY})

    def sort_key(row: ApiSummary):
        boost = 1 if row.source == SECONDARY else 0
        return (-relevance_score(row, query), -boost, row.id)

    return sorted(unique.values(), key=sort_key)


def paginate(rows: List[ApiSummary], page: int, limit: int) -> PaginatedResults:
    """Slice a 1-based page out of ``rows``."""
    offset = (page - 1) * limit
    return PaginatedResults(
        results=rows[offset:offset + limit],
        pagination=Pagination.compute(page, limit, len(rows)),
    )


def merge_search_results(
    primary: PaginatedResults,
    secondary: PaginatedResults,
    query: str,
    page: int,
    limit: int,
) -> PaginatedResults:
    """Merge two search result pages, rank them and slice the requested page."""
    ranked = rank_search_results(primary.results, secondary.results, query)
    return paginate(ranked, page, limit)


def entry_from_row(row: ApiSummary) -> Dict[str, Any]:
    """Rebuild a minimal directory entry from a summary row."""
    return {
        "preferred": row.preferred,
        "versions": {
            row.preferred: {
                "info": {
                    "title": row.title,
                    "version": row.preferred,
                    "description": row.description,
                    "x-providerName": row.provider,
                    "x-apisguru-categories": list(row.categories),
                },
                "swaggerUrl": "",
                "swaggerYamlUrl": "",
                "openapiVer": "3.0.0",
            },
        },
    }


def merge_paginated_apis(
    primary: PaginatedResults,
    secondary: PaginatedResults,
    page: int,
    limit: int,
) -> PaginatedResults:
    """
    Merge two listing pages and re-slice the requested page from the union.

    Rows are rebuilt into entries and merged with secondary precedence
    before slicing, so rows at page boundaries are neither lost nor repeated.
    """
    primary_apis = {row.id: entry_from_row(row) for row in primary.results}
    secondary_apis = {row.id: entry_from_row(row) for row in secondary.results}
    merged = merge_api_lists(primary_apis, secondary_apis)

    rows = [summary_row(api_id, entry) for api_id, entry in merged.items()]
    return paginate(rows, page, limit)


def _metrics_dict(metrics: Any) -> Any:
    if isinstance(metrics, DirectoryMetrics):
        return metrics.model_dump(by_alias=True)
    return metrics


def aggregate_metrics(
    primary: MetricsLike,
    secondary: MetricsLike,
    primary_ids: Iterable[str],
    secondary_ids: Iterable[str],
) -> DirectoryMetrics:
    """
    Combine two metrics snapshots without double-counting shared APIs.

    ``numAPIs`` is the exact size of the id union. ``numEndpoints`` is an
    estimate: the primary count scaled by the share of primary-only ids,
    plus the whole secondary count.
    """
    validated_primary = validate_metrics(_metrics_dict(primary))
    validated_secondary = validate_metrics(_metrics_dict(secondary))
    validated_primary.log("primary metrics")
    validated_secondary.log("secondary metrics")
    p = validated_primary.data
    s = validated_secondary.data

    primary_set = set(primary_ids)
    secondary_set = set(secondary_ids)
    overlap = len(primary_set & secondary_set)
    unique_apis = len(primary_set) + len(secondary_set) - overlap

    if primary_set:
        primary_weight = (len(primary_set) - overlap) / len(primary_set)
    else:
        primary_weight = 1.0
    endpoints = round(p["numEndpoints"] * primary_weight + s["numEndpoints"])

    total_specs = p["numSpecs"] or unique_apis
    if s["numSpecs"]:
        total_specs = p["numSpecs"] + s["numSpecs"] - overlap

    merged = dict(p)
    merged.update(numSpecs=total_specs, numAPIs=unique_apis, numEndpoints=endpoints)
    return DirectoryMetrics.model_validate(merged)


def get_conflict_info(primary_ids: Iterable[str], secondary_ids: Iterable[str]) -> ConflictInfo:
    primary_set = set(primary_ids)
    secondary_list = list(dict.fromkeys(secondary_ids))
    conflicting = [api_id for api_id in secondary_list if api_id in primary_set]

    return ConflictInfo(
        total_conflicts=len(conflicting),
        conflicting_apis=conflicting,
        primary_only_count=len(primary_set) - len(conflicting),
        secondary_only_count=len(secondary_list) - len(conflicting),
    )
