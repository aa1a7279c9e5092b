"""Rate Calendar Evaluator and Rate Selector

Pure functions: no clock, no storage. Nights are calendar dates in the
property's local calendar.
"""
import math
from datetime import date
from typing import Iterable, List, Optional, Sequence, Tuple

from domain.entities import RoomRate, RoomType
from domain.enums import RateSource
from domain.errors import AmbiguousRate, NoApplicableRate
from domain.value_objects import DateRange, NightlyRate


def applies(rate: RoomRate, night: date) -> bool:
    """Does ``rate`` apply to the night starting on ``night``"""
    if not rate.is_active:
        return False
    if night < rate.valid_from:
        return False
    if rate.valid_to is not None and night > rate.valid_to:
        return False
    return rate.applies_on_weekday(night.weekday())


def specificity_key(rate: RoomRate) -> Tuple:
    """Sort key, most specific first.

    Non-default before default, then the narrower validity window
    (open-ended counts as widest), then fewer applicable weekdays, then
    the later ``valid_from``.
    """
    if rate.valid_to is None:
        window = math.inf
    else:
        window = (rate.valid_to - rate.valid_from).days
    return (
        rate.is_default,
        window,
        rate.applicable_weekday_count,
        -rate.valid_from.toordinal(),
    )


def candidates_for(rates: Iterable[RoomRate], room_type: RoomType, night: date) -> List[RoomRate]:
    return [
        rate for rate in rates
        if rate.room_type_id == room_type.room_type_id and applies(rate, night)
    ]


def pick_rate(room_type: RoomType, rates: Sequence[RoomRate], night: date) -> Optional[RoomRate]:
    """Most specific applicable rate for one night, None when none applies"""
    candidates = sorted(candidates_for(rates, room_type, night), key=specificity_key)
    if not candidates:
        return None
    if len(candidates) > 1:
        best_key = specificity_key(candidates[0])
        tied = [rate for rate in candidates if specificity_key(rate) == best_key]
        if len(tied) > 1:
            raise AmbiguousRate(night, sorted((rate.rate_id for rate in tied), key=str))
    return candidates[0]


def select_rates(room_type: RoomType, rates: Sequence[RoomRate], stay: DateRange) -> List[NightlyRate]:
    """Price every night of ``stay`` for ``room_type``.

    Falls back to the room type's own base rate on nights no rate covers.
    Raises NoApplicableRate when that is missing too and AmbiguousRate when
    two rates are equally specific for a night.
    """
    nightly: List[NightlyRate] = []
    for night in stay.each_night():
        rate = pick_rate(room_type, rates, night)
        if rate is not None:
            nightly.append(NightlyRate(
                night=night,
                amount=rate.base_rate,
                source=RateSource.RATE,
                rate_id=rate.rate_id,
                rate_name=rate.name,
            ))
        elif room_type.base_rate is not None and room_type.base_rate.amount > 0:
            nightly.append(NightlyRate(
                night=night,
                amount=room_type.base_rate,
                source=RateSource.BASE_RATE,
            ))
        else:
            raise NoApplicableRate(room_type.room_type_id, night)
    return nightly


def rates_used(rates: Sequence[RoomRate], nightly: Sequence[NightlyRate]) -> List[RoomRate]:
    """The distinct rates behind a priced stay, in first-night order"""
    by_id = {rate.rate_id: rate for rate in rates}
    used: List[RoomRate] = []
    seen = set()
    for snapshot in nightly:
        if snapshot.rate_id is not None and snapshot.rate_id not in seen:
            seen.add(snapshot.rate_id)
            used.append(by_id[snapshot.rate_id])
    return used
