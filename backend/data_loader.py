import csv
import os
import sys
import threading

import pandas as pd

from normalizer import normalize_code
from prereq_parser import PrereqParseError, parse_token_string, to_token_string
from requirement import Requirement

TSV_COLUMNS = ["COURSE_CODE", "PREREQ_STRING", "TOKENS", "STATUS"]
STATUS_OK_PREFIX = "OK"
DEFAULT_STORE_FILE = "prereqs.tsv"


class StoreLoadError(RuntimeError):
    """The requirement store could not be read at all."""


class RequirementStore:
    """
    Course id → canonical token string, parsed into Requirement trees on first
    access and cached for the life of the store.

    Parsing is guarded by a lock so concurrent requests can hit a cold cache.
    A token string that fails to parse is logged once and the course is then
    treated as having no prerequisites.
    """

    def __init__(self, token_strings: dict, prose: dict | None = None, stats: dict | None = None):
        self._token_strings: dict[str, str] = {}
        for code, tokens in token_strings.items():
            normalized = normalize_code(code)
            if normalized and tokens is not None and str(tokens).strip():
                self._token_strings[normalized] = str(tokens).strip()
        self._prose = {normalize_code(k): v for k, v in (prose or {}).items() if normalize_code(k)}
        self._cache: dict[str, Requirement] = {}
        self._lock = threading.Lock()
        self.parse_failures: dict[str, str] = {}
        self.stats = {
            "loaded": len(self._token_strings),
            "skipped_invalid": 0,
            "skipped_malformed": 0,
        }
        if stats:
            self.stats.update(stats)

    @classmethod
    def from_trees(cls, trees: dict) -> "RequirementStore":
        """Builds a store from already-built trees (fixture stores)."""
        return cls({code: to_token_string(tree) for code, tree in trees.items()})

    def __len__(self) -> int:
        return len(self._token_strings)

    def __contains__(self, course) -> bool:
        return self.has_requirement(course)

    def courses(self) -> list[str]:
        """Ids with a stored token string, in load order."""
        return list(self._token_strings)

    def token_string(self, course: str) -> str | None:
        return self._token_strings.get(normalize_code(course) or "")

    def prose(self, course: str) -> str | None:
        return self._prose.get(normalize_code(course) or "")

    def has_requirement(self, course: str) -> bool:
        return self.get(course) is not None

    def get(self, course: str) -> Requirement | None:
        """Parsed tree for `course`, or None when it has no (usable) prerequisites."""
        code = normalize_code(course)
        if code is None or code not in self._token_strings:
            return None
        cached = self._cache.get(code)
        if cached is not None:
            return cached
        if code in self.parse_failures:
            return None

        with self._lock:
            cached = self._cache.get(code)
            if cached is not None:
                return cached
            if code in self.parse_failures:
                return None
            try:
                tree = parse_token_string(self._token_strings[code])
            except (PrereqParseError, RecursionError) as exc:
                print(f"[WARN] Failed to parse prereqs for {code}: {exc}", file=sys.stderr)
                self.parse_failures[code] = str(exc)
                return None
            if tree is None:
                self.parse_failures[code] = "empty token string"
                return None
            self._cache[code] = tree
            return tree

    def warm(self) -> int:
        """Parses every stored course eagerly. Returns the number of parse failures."""
        for code in self._token_strings:
            self.get(code)
        return len(self.parse_failures)


def _resolve_store_file(data_path: str) -> str:
    if os.path.isdir(data_path):
        return os.path.join(data_path, DEFAULT_STORE_FILE)
    return data_path


def load_data(data_path: str) -> RequirementStore:
    """
    Loads the tab-separated prerequisite store. Raises on file errors.

    Expected columns (header row):
      COURSE_CODE    PREREQ_STRING    TOKENS    STATUS
      CS 2110        CS 1110 or ...   COURSE(CS 1110) OR ...    OK

    Rows whose STATUS does not start with OK are skipped (no prerequisites);
    rows missing a course code or tokens are skipped as malformed.
    """
    path = _resolve_store_file(data_path)
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Prerequisite store not found: {path}")

    # Rows with extra fields are dropped by the reader; keep count of them.
    overlong_rows: list[list[str]] = []

    def _skip_bad_line(fields: list[str]):
        overlong_rows.append(fields)
        return None

    try:
        df = pd.read_csv(
            path,
            sep="\t",
            dtype=str,
            keep_default_na=False,
            quoting=csv.QUOTE_NONE,
            engine="python",
            on_bad_lines=_skip_bad_line,
        )
    except (OSError, ValueError, pd.errors.ParserError) as exc:
        raise StoreLoadError(f"Could not read prerequisite store {path}: {exc}") from exc

    missing_cols = [c for c in TSV_COLUMNS if c not in df.columns]
    if missing_cols:
        raise StoreLoadError(f"Prerequisite store {path} is missing columns: {missing_cols}")

    df = df[TSV_COLUMNS].fillna("")
    for col in TSV_COLUMNS:
        df[col] = df[col].astype(str).str.strip()

    malformed_mask = (df["COURSE_CODE"] == "") | (df["STATUS"] == "")
    status_ok = df["STATUS"].str.upper().str.startswith(STATUS_OK_PREFIX)
    invalid_mask = ~malformed_mask & ~status_ok
    empty_tokens_mask = ~malformed_mask & status_ok & (df["TOKENS"] == "")

    skipped_malformed = (
        len(overlong_rows) + int(malformed_mask.sum()) + int(empty_tokens_mask.sum())
    )
    skipped_invalid = int(invalid_mask.sum())
    good = df[~malformed_mask & status_ok & ~empty_tokens_mask]

    token_strings: dict[str, str] = {}
    prose: dict[str, str] = {}
    for _, row in good.iterrows():
        code = normalize_code(row["COURSE_CODE"])
        if code is None:
            skipped_malformed += 1
            continue
        token_strings[code] = row["TOKENS"]
        prose[code] = row["PREREQ_STRING"]

    if skipped_malformed:
        print(f"[WARN] {skipped_malformed} malformed row(s) skipped in {path}", file=sys.stderr)
    if skipped_invalid:
        print(
            f"[WARN] {skipped_invalid} row(s) flagged invalid upstream; "
            "those courses are treated as having no prerequisites.",
            file=sys.stderr,
        )

    store = RequirementStore(
        token_strings,
        prose=prose,
        stats={"skipped_invalid": skipped_invalid, "skipped_malformed": skipped_malformed},
    )
    print(f"[INFO] Loaded {len(store)} courses with prerequisites from {path}")
    return store
