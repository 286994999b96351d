# -*- coding: utf-8 -*-
"""
LendPulse - Ranker / truncator
Stable ordering of result rows and top-N limits
"""

import logging
import re
from typing import Any, List, Optional

from config import ANALYTICS_CONFIG

logger = logging.getLogger(__name__)

_CAMEL_BOUNDARY = re.compile(r'(?<!^)(?=[A-Z])')


def to_snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub('_', name).lower()


def to_camel(name: str) -> str:
    head, *rest = name.split('_')
    return head + ''.join(part.capitalize() for part in rest)


class Ranker:
    """
    Sorts records (dataclasses or dicts) by a field, then truncates.

    Sort keys may be given in snake_case or camelCase. Ties keep input order.
    Truncation happens after sorting and never feeds back into summaries.
    """

    DIRECTIONS = ('asc', 'desc')

    def rank(self, records: List, sort_key: str, direction: str = 'desc',
             limit: Optional[int] = None) -> List:
        if direction not in self.DIRECTIONS:
            raise ValueError(f"Sort direction must be 'asc' or 'desc', got '{direction}'")
        if limit is not None and limit < 0:
            raise ValueError(f"Limit must be non-negative, got {limit}")
        if not records:
            return []

        getter = self._getter(records[0], sort_key)
        ordered = sorted(records, key=getter, reverse=(direction == 'desc'))

        if limit is not None:
            ordered = ordered[:limit]
        return ordered

    def rank_delinquency(self, records: List, sort_by: str = 'amount',
                         limit: Optional[int] = None, direction: Optional[str] = None) -> List:
        """
        Delinquency lists: amount (desc), percentage (asc), days (desc) or any record field.

        An explicit direction overrides the preset's default direction.
        """
        sorts = ANALYTICS_CONFIG['DELINQUENCY_SORTS']
        if sort_by in sorts:
            sort_key, default_direction = sorts[sort_by]
        else:
            sort_key, default_direction = sort_by, 'desc'
        direction = direction or default_direction
        return self.rank(records, sort_key, direction, limit)

    @staticmethod
    def _getter(sample: Any, sort_key: str):
        candidates = (sort_key, to_snake(sort_key), to_camel(sort_key))

        if isinstance(sample, dict):
            for name in candidates:
                if name in sample:
                    return lambda r, _n=name: _sort_value(r.get(_n))
        else:
            for name in candidates:
                if hasattr(sample, name):
                    return lambda r, _n=name: _sort_value(getattr(r, _n))

        raise ValueError(f"Unknown sort key '{sort_key}'")


def _sort_value(value):
    if isinstance(value, str):
        return (1, value.lower())
    if value is None:
        return (0, 0)
    return (1, value)


ranker = Ranker()
