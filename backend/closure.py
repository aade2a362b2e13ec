"""
Closure expansion of a taken-course set.

Taking a course implies its prerequisites were cleared somehow, so every leaf
reachable through a taken course's tree counts as satisfied. Both sides of an
OR are assumed; the student's actual choice is unknown and anything reachable
was an alternative they had to clear. Permission leaves are course-specific
and never carried over.
"""

from typing import Dict, FrozenSet, Iterable, List, Set, Tuple

from normalizer import KIND_PERMISSION, course_kind, normalize_input
from requirement import iter_leaves


def _collect_implied(
    course: str,
    store,
    closure: Set[str],
) -> List[str]:
    """
    Adds everything implied by `course` to `closure` (in place) and returns the
    ids newly added, in discovery order. Ids already in `closure` are never
    revisited, which also stops cycles in malformed data.
    """
    added: List[str] = []
    stack = [course]
    while stack:
        current = stack.pop()
        tree = store.get(current)
        if tree is None:
            continue
        for leaf in iter_leaves(tree):
            if course_kind(leaf) == KIND_PERMISSION:
                continue
            if leaf in closure:
                continue
            closure.add(leaf)
            added.append(leaf)
            stack.append(leaf)
    return added


def expand_taken(taken: Iterable[str], store) -> FrozenSet[str]:
    """Taken set plus everything transitively implied by it."""
    closure, _ = expand_taken_with_provenance(taken, store)
    return closure


def expand_taken_with_provenance(
    taken: Iterable[str],
    store,
) -> Tuple[FrozenSet[str], List[Dict]]:
    """
    Expand taken courses and return deterministic provenance rows for the
    inferred assumptions.

    Returns:
      (closure, assumption_rows)

    assumption_rows item shape:
      {
        "source_taken": str,
        "assumed": List[str],
      }
    Each inferred id is attributed to the first taken course (in input order)
    that implied it.
    """
    if not isinstance(taken, (str, list, tuple, set, frozenset)):
        taken = list(taken)
    ordered_taken = normalize_input(taken)
    closure: Set[str] = set(ordered_taken)
    assumption_rows: List[Dict] = []

    for source_course in ordered_taken:
        added = _collect_implied(source_course, store, closure)
        if added:
            assumption_rows.append({
                "source_taken": source_course,
                "assumed": sorted(added),
            })

    return frozenset(closure), assumption_rows
