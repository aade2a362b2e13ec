"""
Print every plan that reaches one or more target courses.

Usage:
    python scripts/find_plans.py
    python scripts/find_plans.py "CS 4820" --taken "CS 1110, MATH 1110"
    python scripts/find_plans.py CS4830 --data path/to/prereqs.tsv --limit 5
"""

import argparse
import os
import sys

REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, os.path.join(REPO_ROOT, "backend"))

from data_loader import StoreLoadError, load_data
from normalizer import normalize_code, normalize_input
from plan_finder import PlanFinder, PlanFinderError

DEFAULT_DATA_PATH = os.path.join(REPO_ROOT, "data", "prereqs.tsv")
DEFAULT_TARGETS = ["CS 4701", "CS 3780", "CS 4820"]


def format_target_report(target: str, taken: list[str], plans: list, limit: int) -> str:
    lines = [
        "========================================",
        f"Target: {target}",
        f"Already taken: {', '.join(taken) if taken else '(none)'}",
        "========================================",
        f"Found {len(plans)} plan(s):",
    ]
    for i, plan in enumerate(plans[:limit], start=1):
        label = str(plan) if not plan.is_empty() else "(nothing left to take)"
        lines.append(f"Plan {i} ({plan.size} courses):")
        lines.append(f"  {label}")
    if len(plans) > limit:
        lines.append(f"... and {len(plans) - limit} more plans")
    return "\n".join(lines)


def run(targets: list[str], taken: list[str], data_path: str, limit: int) -> int:
    try:
        store = load_data(data_path)
    except (FileNotFoundError, StoreLoadError) as exc:
        print(f"[FATAL] {exc}", file=sys.stderr)
        return 1

    status = 0
    for raw_target in targets:
        target = normalize_code(raw_target)
        if target is None:
            continue
        finder = PlanFinder(store, taken)
        try:
            plans = finder.find_plans(target)
        except PlanFinderError as exc:
            print(f"[WARN] {target}: {exc}", file=sys.stderr)
            status = 2
            continue
        print()
        print(format_target_report(target, taken, plans, limit))
    return status


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="List every plan that reaches a target course.")
    parser.add_argument("targets", nargs="*", default=DEFAULT_TARGETS, help="Target course ids")
    parser.add_argument("--taken", default="", help="Comma-separated courses already taken")
    parser.add_argument("--data", default=os.environ.get("DATA_PATH") or DEFAULT_DATA_PATH,
                        help="Path to the prerequisite TSV")
    parser.add_argument("--limit", type=int, default=10, help="Plans shown per target")
    args = parser.parse_args(argv)

    return run(args.targets, normalize_input(args.taken), args.data, max(1, args.limit))


if __name__ == "__main__":
    raise SystemExit(main())
