# -*- coding: utf-8 -*-
"""
Filter Service
Immutable filter updates, cascading region -> branch options and
latest-wins request generations

A filter change never mutates the current request: it produces a new
AnalyticsRequest. Each refetch is tagged with a generation token and only
the result carrying the latest token is accepted.
"""

import logging
import threading
from typing import Any, Iterable, List, Optional, Tuple

from lendpulse.services.core_engine import AnalyticsRequest

logger = logging.getLogger(__name__)

FILTER_ALIASES = {
    'region': 'region_id',
    'branch': 'branch_id',
    'sortBy': 'sort_by',
    'dateRange': 'date_range',
}

FILTER_KEYS = (
    'dimension', 'date_range', 'custom_window', 'region_id', 'branch_id',
    'sort_by', 'direction', 'limit', 'as_of',
)


def derive_branch_options(all_branches: Iterable, selected_region: Optional[str],
                          regions: Optional[Iterable] = None) -> List:
    """
    Branches selectable under a region.

    `selected_region` may be a region id or a region name; None, '' and 'all'
    select every branch.
    """
    branches = list(all_branches)
    if selected_region is None or str(selected_region).strip().lower() in ('', 'all'):
        return branches

    selected = str(selected_region).strip()
    region_ids = {selected}
    for region in regions or ():
        if region.name == selected:
            region_ids.add(region.id)

    return [b for b in branches if b.region_id in region_ids]


def apply_filter_change(request, key: str, value: Any) -> Tuple[Any, bool]:
    """
    New request with one filter changed.

    Returns:
        (new_request, changed). Changing the region resets the branch and
        leaving `custom` drops the custom window. Every change, sort included,
        must be refetched under a new generation.
    """
    field_name = FILTER_ALIASES.get(key, key)
    if field_name not in FILTER_KEYS:
        raise ValueError(f"Unknown filter '{key}'")

    if getattr(request, field_name) == value:
        return request, False

    update = {field_name: value}
    if field_name == 'region_id':
        update['branch_id'] = None
    if field_name == 'date_range' and value != 'custom':
        update['custom_window'] = None

    new_request = AnalyticsRequest.model_validate(dict(request.model_dump(), **update))

    logger.debug(f"Filter {field_name} -> {value!r}")
    return new_request, True


class RequestGenerationTracker:
    """Monotonic generation tokens; only the latest issued token is current"""

    def __init__(self):
        self._lock = threading.Lock()
        self._latest = 0
        self._result = None

    def issue(self) -> int:
        with self._lock:
            self._latest += 1
            return self._latest

    def is_current(self, token: int) -> bool:
        with self._lock:
            return token == self._latest

    def accept(self, token: int, result) -> bool:
        """Store `result` if it belongs to the latest generation; stale results are dropped"""
        with self._lock:
            if token != self._latest:
                logger.debug(f"Discarding stale result for generation {token} (latest {self._latest})")
                return False
            self._result = result
            return True

    @property
    def result(self):
        with self._lock:
            return self._result


class FilterSession:
    """Current filter selection of one dashboard consumer"""

    def __init__(self, request):
        self.request = request
        self.tracker = RequestGenerationTracker()

    def change(self, key: str, value: Any) -> Optional[int]:
        """Apply a filter change; returns the generation token to fetch under, or None if nothing changed"""
        self.request, changed = apply_filter_change(self.request, key, value)
        if not changed:
            return None
        return self.tracker.issue()

    def start(self) -> int:
        return self.tracker.issue()

    def deliver(self, token: int, result) -> bool:
        return self.tracker.accept(token, result)

    @property
    def result(self):
        return self.tracker.result
