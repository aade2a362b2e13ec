from __future__ import annotations

from typing import Iterable

PLAN_SEPARATOR = " → "


class Plan:
    """
    An ordered course sequence.

    Identity is the course *set*: two plans with the same courses in a
    different order are equal and hash the same, so alternative traversals
    that reach the same set collapse in a set of plans. Never mutated after
    construction.
    """

    __slots__ = ("courses", "course_set")

    def __init__(self, courses: Iterable[str] = ()):
        ordered = tuple(dict.fromkeys(courses))
        object.__setattr__(self, "courses", ordered)
        object.__setattr__(self, "course_set", frozenset(ordered))

    def __setattr__(self, name, value):
        raise AttributeError("Plan is immutable")

    @classmethod
    def empty(cls) -> "Plan":
        return cls(())

    @classmethod
    def of(cls, course: str) -> "Plan":
        return cls((course,))

    @staticmethod
    def merge(first: "Plan", second: "Plan") -> "Plan":
        """Concatenation of both sequences; `first` leads."""
        return Plan(first.courses + second.courses)

    def append(self, course: str) -> "Plan":
        return Plan(self.courses + (course,))

    @property
    def size(self) -> int:
        return len(self.courses)

    def __len__(self) -> int:
        return len(self.courses)

    def is_empty(self) -> bool:
        return not self.courses

    def contains(self, course: str) -> bool:
        return course in self.course_set

    def __contains__(self, course) -> bool:
        return course in self.course_set

    def __iter__(self):
        return iter(self.courses)

    @property
    def last_course(self) -> str:
        """Most recently added course, '' for the empty plan."""
        return self.courses[-1] if self.courses else ""

    def sort_key(self) -> tuple:
        return (len(self.courses), self.courses)

    def to_list(self) -> list[str]:
        return list(self.courses)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Plan):
            return NotImplemented
        return self.course_set == other.course_set

    def __hash__(self) -> int:
        return hash(self.course_set)

    def __str__(self) -> str:
        return PLAN_SEPARATOR.join(self.courses)

    def __repr__(self) -> str:
        return f"Plan({list(self.courses)!r})"
