"""Group, filter and sort NEO records for display.

Everything here is pure: the accumulated record list is never modified and
the result is rebuilt on every read.
"""

from datetime import date
from typing import Dict, Iterable, List, Optional

from .schemas import FilterOptions, Neo


def group_by_date(neos: Iterable[Neo]) -> Dict[date, List[Neo]]:
    """Bucket records by their first close-approach date.

    Records without any close approach have no date to group by and are
    left out.
    """

    groups: Dict[date, List[Neo]] = {}
    for neo in neos:
        approach = neo.first_approach
        if approach is None:
            continue
        groups.setdefault(approach.close_approach_date, []).append(neo)
    return groups


def date_in_range(day: date, start: Optional[date], end: Optional[date]) -> bool:
    if start and not end:
        return day == start
    if start and day < start:
        return False
    if end and day > end:
        return False
    return True


def size_key(neo: Neo) -> float:
    return neo.mean_diameter_km


def distance_key(neo: Neo) -> float:
    approach = neo.first_approach
    if approach is None or approach.miss_distance.kilometers is None:
        return 0.0
    return approach.miss_distance.kilometers


SORT_KEYS = {
    "size": size_key,
    "distance": distance_key,
}


def apply_filters(neos: Iterable[Neo], options: FilterOptions) -> Dict[date, List[Neo]]:
    descending = options.sort_order == "desc"
    key = SORT_KEYS.get(options.sort_by)

    result: Dict[date, List[Neo]] = {}
    for day, group in group_by_date(neos).items():
        if not date_in_range(day, options.start_date, options.end_date):
            continue
        if options.show_hazardous_only:
            group = [n for n in group if n.is_potentially_hazardous_asteroid]
        # grouping already orders by date, so "date" leaves groups as fetched
        if key is not None:
            group = sorted(group, key=key, reverse=descending)
        if group:
            result[day] = group

    return {day: result[day] for day in sorted(result, reverse=descending)}
