from requirement import course_codes


def build_reverse_prereq_map(store) -> dict[str, list[str]]:
    """
    Builds a reverse prerequisite map: for each course, which courses directly
    name it anywhere in their requirement tree (either side of an OR counts).

    Returns: {"CS 2110": ["CS 3110", "CS 4320", "CS 5320"], ...}

    Only direct prerequisites (one level deep). Special and permission leaves
    are not courses and never appear as keys.
    """
    reverse: dict[str, list[str]] = {}

    for course_code in store.courses():
        tree = store.get(course_code)
        if tree is None:
            continue
        for prereq_code in course_codes(tree):
            reverse.setdefault(prereq_code, [])
            if course_code not in reverse[prereq_code]:
                reverse[prereq_code].append(course_code)

    return reverse


def compute_chain_depths(
    reverse_map: dict[str, list[str]],
) -> dict[str, int]:
    """
    Longest run of dependents reachable from each course in `reverse_map`.

    CS 1110 -> CS 2110 -> CS 3110 -> CS 4820 -> CS 4830
    gives CS 1110 depth 4 and CS 4830 depth 0. Memoized, so each course is
    resolved once per store load.
    """
    depths: dict[str, int] = {}
    visiting: set[str] = set()

    def _resolve(course: str) -> int:
        if course in depths:
            return depths[course]
        if course in visiting:
            return 0  # cycle
        visiting.add(course)
        dependents = reverse_map.get(course, [])
        depth = max((_resolve(d) + 1 for d in dependents), default=0)
        visiting.discard(course)
        depths[course] = depth
        return depth

    for course in reverse_map:
        _resolve(course)
    return depths


def get_direct_unlocks(
    course_code: str,
    reverse_map: dict[str, list[str]],
    limit: int = 10,
) -> list[str]:
    """Courses that name `course_code` directly, in store order, at most `limit`."""
    return list(reverse_map.get(course_code, ()))[:limit]
