from normalizer import is_special
from plan import Plan
from requirement import leaf_ids


def _prereqs_in_plan(course: str, plan: Plan, store) -> list[str]:
    """Leaves of `course`'s tree that are also plan members, first-seen order."""
    tree = store.get(course)
    if tree is None:
        return []
    return [leaf for leaf in leaf_ids(tree) if leaf in plan.course_set]


def sort_topologically(plan: Plan, store) -> Plan:
    """
    Orders a plan so every prerequisite precedes the course that needs it.

    DFS post-order over regular courses in generation order. Special and
    permission entries are placed directly before the course whose tree they
    came from, once each. Only plan members are visited: the trees also name
    alternatives that were pruned from this plan.
    """
    ordered: list[str] = []
    visited: set[str] = set()

    def _visit(course: str) -> None:
        if course in visited:
            return
        visited.add(course)

        prereqs = _prereqs_in_plan(course, plan, store)
        for prereq in prereqs:
            if not is_special(prereq):
                _visit(prereq)

        for prereq in prereqs:
            if is_special(prereq) and prereq not in visited:
                visited.add(prereq)
                ordered.append(prereq)

        ordered.append(course)

    for course in plan.courses:
        if not is_special(course):
            _visit(course)

    # Special entries no tree in the plan claims; keep them ahead of the target.
    orphans = [c for c in plan.courses if c not in visited]
    if orphans:
        ordered = ordered[:-1] + orphans + ordered[-1:]

    return Plan(ordered)
