from __future__ import annotations

from abc import ABC, abstractmethod

from rail_isochrones.domain.algorithms.timetable_graph import TimetableGraph


class ITimetableRepository(ABC):
    """Port for loading a service-day timetable into an in-memory graph."""

    @abstractmethod
    def load_timetable(self) -> TimetableGraph:
        raise NotImplementedError
