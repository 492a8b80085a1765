from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Mapping


@dataclass(frozen=True, slots=True)
class ServicePeriod:
    """Date range and weekday mask (Monday first) a service runs on."""

    start_date: date
    end_date: date
    weekdays: tuple[bool, bool, bool, bool, bool, bool, bool]

    def runs_on(self, day: date) -> bool:
        in_range = self.start_date <= day <= self.end_date
        return in_range and self.weekdays[day.weekday()]


@dataclass(frozen=True, slots=True)
class ServiceCalendar:
    """Answers whether a service id operates on a given date.

    ``exceptions`` maps (service_id, date) to True (service added) or False
    (service removed/cancelled) and overrides the regular periods.
    """

    periods: Mapping[str, tuple[ServicePeriod, ...]] = field(default_factory=dict)
    exceptions: Mapping[tuple[str, date], bool] = field(default_factory=dict)

    def runs_on(self, service_id: str, day: date) -> bool:
        override = self.exceptions.get((service_id, day))
        if override is not None:
            return override

        return any(p.runs_on(day) for p in self.periods.get(service_id, ()))

    @property
    def is_empty(self) -> bool:
        return not self.periods and not self.exceptions
