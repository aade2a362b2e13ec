import os
import re
import sys
from typing import Iterable, List

from closure import expand_taken_with_provenance
from normalizer import is_special, normalize_code
from plan import Plan
from requirement import And, Leaf, Or, Requirement, is_direct_special, is_satisfied
from topo import sort_topologically

COURSE_NUMBER_RE = re.compile(r"\d+")
DEFAULT_MAX_PLANS = 5000


class PlanFinderError(RuntimeError):
    """Enumeration could not complete."""


class PlanLimitExceeded(PlanFinderError):
    def __init__(self, limit: int, target: str | None = None):
        where = f" for {target}" if target else ""
        super().__init__(f"More than {limit} candidate plans{where}; narrow the request.")
        self.limit = limit
        self.target = target


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.environ.get(name, "")
    try:
        return max(minimum, int(raw))
    except (TypeError, ValueError):
        return default


def default_max_plans() -> int:
    return _env_int("MAX_PLANS", DEFAULT_MAX_PLANS, minimum=1)


def extract_course_number(course: str) -> int | None:
    """First run of digits in an id ("CS 2110" -> 2110), None if there is none."""
    m = COURSE_NUMBER_RE.search(course or "")
    return int(m.group()) if m else None


def compare_by_number(course1: str, course2: str) -> int:
    """
    Orders ids by course number, falling back to plain string order when
    either id has no number or the numbers tie. Returns -1, 0 or 1.
    """
    num1 = extract_course_number(course1)
    num2 = extract_course_number(course2)
    if num1 is not None and num2 is not None and num1 != num2:
        return -1 if num1 < num2 else 1
    if course1 == course2:
        return 0
    return -1 if course1 < course2 else 1


def _unique(plans: Iterable[Plan]) -> List[Plan]:
    # First representative of each course set wins; keeps output deterministic.
    return list(dict.fromkeys(plans))


class PlanFinder:
    """
    Enumerates every minimal plan that reaches a target course.

    The taken set is closure-expanded once at construction; each request gets
    its own finder. The store is only read.
    """

    def __init__(self, store, taken: Iterable[str] = (), max_plans: int | None = None):
        self.store = store
        self.taken_closure, self.assumptions = expand_taken_with_provenance(taken, store)
        self.max_plans = max_plans if max_plans is not None else default_max_plans()
        self._target: str | None = None

    def find_plans(self, target_course: str) -> List[Plan]:
        """
        All plans for `target_course`, each topologically ordered and ending
        with the target, sorted by size then by course sequence.

          taken closure contains target -> [Plan.empty()]
          target has no prerequisites   -> [Plan([target])]
        """
        target = normalize_code(target_course)
        if target is None:
            raise ValueError("target course is required")
        self._target = target

        if target in self.taken_closure:
            return [Plan.empty()]

        tree = self.store.get(target)
        if tree is None:
            return [Plan.of(target)]

        try:
            prereq_plans = self._explore(tree, self.taken_closure, frozenset([target]))
            result = _unique(
                sort_topologically(plan.append(target), self.store)
                for plan in prereq_plans
            )
        except RecursionError as exc:
            raise PlanFinderError(f"Requirements for {target} are nested too deeply to enumerate.") from exc
        result.sort(key=Plan.sort_key)
        return result

    def explore(self, node: Requirement, context=None) -> List[Plan]:
        """Plans satisfying a single requirement tree against `context`."""
        if context is None:
            context = self.taken_closure
        return self._explore(node, frozenset(context), frozenset())

    def _check_limit(self, plans: List[Plan]) -> List[Plan]:
        if len(plans) > self.max_plans:
            raise PlanLimitExceeded(self.max_plans, self._target)
        return plans

    def _explore(self, node: Requirement, context: frozenset, expanding: frozenset) -> List[Plan]:
        if isinstance(node, Leaf):
            return self._explore_leaf(node.content, context, expanding)
        if isinstance(node, Or):
            return self._explore_or(node, context, expanding)
        if isinstance(node, And):
            return self._explore_and(node, context, expanding)
        raise TypeError(f"Unknown requirement node: {node!r}")

    def _explore_leaf(self, course: str, context: frozenset, expanding: frozenset) -> List[Plan]:
        if course in context:
            return [Plan.empty()]
        if is_special(course):
            return [Plan.of(course)]

        tree = self.store.get(course)
        if tree is None:
            return [Plan.of(course)]
        if course in expanding:
            print(
                f"[WARN] Prerequisite cycle through {course}; treating it as having no prerequisites.",
                file=sys.stderr,
            )
            return [Plan.of(course)]

        prereq_plans = self._explore(tree, context, expanding | {course})
        # Post-order: the course follows its own prerequisites.
        return _unique(plan.append(course) for plan in prereq_plans)

    def _explore_or(self, node: Or, context: frozenset, expanding: frozenset) -> List[Plan]:
        if is_satisfied(node, context):
            return [Plan.empty()]

        # A right-leaning chain Or(a, Or(b, c)) is walked level by level in a
        # loop. At each level a bare special/permission leaf is dropped in
        # favour of a concrete sibling; only the immediate children count.
        plans: List[Plan] = []
        current: Requirement = node
        while isinstance(current, Or):
            left_special = is_direct_special(current.left)
            right_special = is_direct_special(current.right)
            if right_special and not left_special:
                plans.extend(self._explore(current.left, context, expanding))
                return self._check_limit(_unique(plans))
            if not left_special or right_special:
                plans.extend(self._explore(current.left, context, expanding))
                self._check_limit(_unique(plans))
            current = current.right
        plans.extend(self._explore(current, context, expanding))
        return self._check_limit(_unique(plans))

    def _explore_and(self, node: And, context: frozenset, expanding: frozenset) -> List[Plan]:
        left_plans = self._explore(node.left, context, expanding)

        merged: dict[Plan, None] = {}
        for left_plan in left_plans:
            # Whatever the left side plans counts as covered on the right.
            extended = context | left_plan.course_set
            right_plans = self._explore(node.right, extended, expanding)
            for right_plan in right_plans:
                if left_plan.is_empty() or right_plan.is_empty():
                    combined = Plan.merge(left_plan, right_plan)
                elif compare_by_number(left_plan.last_course, right_plan.last_course) > 0:
                    combined = Plan.merge(right_plan, left_plan)
                else:
                    combined = Plan.merge(left_plan, right_plan)
                merged.setdefault(combined, None)
            if len(merged) > self.max_plans:
                raise PlanLimitExceeded(self.max_plans, self._target)
        return list(merged)


def find_plans(store, target_course: str, taken: Iterable[str] = (), max_plans: int | None = None) -> List[Plan]:
    """Convenience wrapper: a fresh PlanFinder per call."""
    return PlanFinder(store, taken, max_plans=max_plans).find_plans(target_course)
