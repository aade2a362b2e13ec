import re

# Matches: DEPT NNNN, DEPT-NNNN, DEPTNNNN, cs2110, MATH 1920, BIOMG 3310, etc.
CANONICAL = re.compile(r'^([A-Za-z]{2,6})\s*[-]?\s*(\d{3,4}[A-Za-z]?)$')
WHITESPACE_RE = re.compile(r'\s+')

SPECIAL_PREFIX = "SPECIAL"
PERMISSION_PREFIX = "PERMISSION"

KIND_REGULAR = "regular"
KIND_SPECIAL = "special"
KIND_PERMISSION = "permission"


def normalize_code(raw) -> str | None:
    """
    Normalizes a course id to its canonical form.

    Course-looking input is rewritten to 'DEPT NNNN' ('cs2110', 'CS-2110',
    ' cs  2110 ' -> 'CS 2110'). Anything else (special requirement and
    permission leaves) is trimmed, upper-cased and has inner whitespace
    collapsed. Returns None for blank input.
    """
    if raw is None:
        return None
    s = str(raw).strip()
    if not s:
        return None
    m = CANONICAL.match(s)
    if m:
        return f"{m.group(1).upper()} {m.group(2).upper()}"
    return WHITESPACE_RE.sub(" ", s).upper()


def course_kind(course_id: str) -> str:
    """Kind of a normalized id, decided by its reserved prefix."""
    if course_id.startswith(SPECIAL_PREFIX):
        return KIND_SPECIAL
    if course_id.startswith(PERMISSION_PREFIX):
        return KIND_PERMISSION
    return KIND_REGULAR


def is_special(course_id: str) -> bool:
    """True for special-requirement and permission ids."""
    return course_kind(course_id) != KIND_REGULAR


def normalize_input(raw_value) -> list[str]:
    """
    Splits comma/newline/semicolon-separated input (or a list of ids) and
    normalizes each code. Order is preserved and duplicates dropped.

      "cs1110, MATH 1110\\nCS 1110" -> ["CS 1110", "MATH 1110"]
    """
    if raw_value is None:
        return []
    if isinstance(raw_value, (set, frozenset)):
        tokens = sorted(str(v) for v in raw_value if v is not None)
    elif isinstance(raw_value, (list, tuple)):
        tokens = [str(v) for v in raw_value if v is not None]
    else:
        tokens = re.split(r'[,\n;]+', str(raw_value))

    codes: list[str] = []
    seen: set[str] = set()
    for token in tokens:
        normalized = normalize_code(token)
        if normalized is None or normalized in seen:
            continue
        seen.add(normalized)
        codes.append(normalized)
    return codes
