import os
import sys
import time
import threading
import hashlib
import json
from collections import OrderedDict, defaultdict

# Ensure backend/ is on sys.path so sibling imports work
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException
from dotenv import load_dotenv

from normalizer import normalize_code, normalize_input
from data_loader import load_data
from plan_finder import PlanFinder, PlanFinderError, PlanLimitExceeded, default_max_plans
from requirement import format_requirement
from unlocks import build_reverse_prereq_map, compute_chain_depths, get_direct_unlocks

load_dotenv()

app = Flask(__name__)

VERSION = "1.2.0"

# ── Paths ─────────────────────────────────────────────────────────────────────
BACKEND_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.dirname(BACKEND_DIR)
_DEFAULT_DATA_PATH = os.path.join(PROJECT_ROOT, "data", "prereqs.tsv")
_env_data_path = os.environ.get("DATA_PATH")
if not _env_data_path:
    DATA_PATH = _DEFAULT_DATA_PATH
elif not os.path.isabs(_env_data_path):
    DATA_PATH = os.path.join(PROJECT_ROOT, _env_data_path)
else:
    DATA_PATH = _env_data_path
_data_lock = threading.Lock()
_data_mtime = None

# -- Rate limiting (manual token bucket, 30 req/min per IP) ----------------
_RATE_LIMIT_MAX = 30
_RATE_LIMIT_WINDOW = 60  # seconds
_RATE_LIMIT_MAX_TRACKED_IPS = 1024
_rate_limit_lock = threading.Lock()
_rate_limit_tracker: dict[str, list[float]] = defaultdict(list)


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.environ.get(name, "")
    try:
        return max(minimum, float(raw))
    except (TypeError, ValueError):
        return default


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.environ.get(name, "")
    try:
        return max(minimum, int(raw))
    except (TypeError, ValueError):
        return default


_SLOW_REQUEST_LOG_MS = _env_float("SLOW_REQUEST_LOG_MS", 750.0, minimum=0.0)
_REQUEST_CACHE_SIZE = _env_int("REQUEST_CACHE_SIZE", 128, minimum=1)
_MAX_PLANS = default_max_plans()
_CORS_ORIGIN = os.environ.get("CORS_ORIGIN", "").strip()


class _LruResponseCache:
    """Thread-safe bounded in-memory cache for JSON-serializable responses."""

    def __init__(self, max_size: int):
        self.max_size = max(1, int(max_size))
        self._lock = threading.Lock()
        self._items: OrderedDict[str, dict] = OrderedDict()

    def get(self, key: str):
        with self._lock:
            if key not in self._items:
                return None
            value = self._items.pop(key)
            self._items[key] = value
            return value

    def set(self, key: str, value: dict) -> None:
        with self._lock:
            if key in self._items:
                self._items.pop(key)
            self._items[key] = value
            while len(self._items) > self.max_size:
                self._items.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


_plans_response_cache = _LruResponseCache(_REQUEST_CACHE_SIZE)


def _cache_enabled() -> bool:
    return not app.config.get("TESTING", False)


def _stable_payload_hash(payload) -> str:
    normalized = payload if payload is not None else {}
    encoded = json.dumps(
        normalized,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=True,
    ).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def _data_version_tag() -> str:
    return "none" if _data_mtime is None else str(_data_mtime)


def _request_cache_key(prefix: str, payload) -> str:
    return f"{prefix}:{_data_version_tag()}:{_stable_payload_hash(payload)}"


def _clear_request_caches() -> None:
    _plans_response_cache.clear()


def _prune_idle_ips(now: float) -> None:
    """Drops IPs with no request inside the window. Caller holds _rate_limit_lock."""
    idle = [
        ip for ip, timestamps in _rate_limit_tracker.items()
        if not timestamps or now - timestamps[-1] >= _RATE_LIMIT_WINDOW
    ]
    for ip in idle:
        del _rate_limit_tracker[ip]


def _check_rate_limit(ip: str) -> bool:
    """Return True if request is allowed, False if rate-limited."""
    now = time.time()
    with _rate_limit_lock:
        if len(_rate_limit_tracker) > _RATE_LIMIT_MAX_TRACKED_IPS:
            _prune_idle_ips(now)
        timestamps = _rate_limit_tracker[ip]
        _rate_limit_tracker[ip] = [t for t in timestamps if now - t < _RATE_LIMIT_WINDOW]
        if len(_rate_limit_tracker[ip]) >= _RATE_LIMIT_MAX:
            return False
        _rate_limit_tracker[ip].append(now)
        return True


def _data_file_mtime(path: str):
    try:
        if os.path.isdir(path):
            mtimes = [
                os.path.getmtime(os.path.join(path, f))
                for f in os.listdir(path)
                if f.endswith(".tsv")
            ]
            return max(mtimes) if mtimes else None
        return os.path.getmtime(path)
    except OSError:
        return None


def _load_store(path: str):
    """Load the store and parse every tree up front so requests never parse."""
    store = load_data(path)
    failures = store.warm()
    if failures:
        print(
            f"[WARN] {failures} course(s) failed to parse and are treated as having no prerequisites: "
            f"{sorted(store.parse_failures)}",
            file=sys.stderr,
        )
    return store


# ── Startup data load ──────────────────────────────────────────────────────────
try:
    _store = _load_store(DATA_PATH)
    _data_mtime = _data_file_mtime(DATA_PATH)
    print(f"[OK] Loaded {len(_store)} courses from {DATA_PATH}")
except FileNotFoundError:
    # If DATA_PATH env var is stale, fall back to the bundled store.
    if DATA_PATH != _DEFAULT_DATA_PATH and os.path.exists(_DEFAULT_DATA_PATH):
        print(
            f"[WARN] DATA_PATH not found ({DATA_PATH}); "
            f"falling back to default store ({_DEFAULT_DATA_PATH}).",
            file=sys.stderr,
        )
        DATA_PATH = _DEFAULT_DATA_PATH
        _store = _load_store(DATA_PATH)
        _data_mtime = _data_file_mtime(DATA_PATH)
        print(f"[OK] Loaded {len(_store)} courses from {DATA_PATH}")
    else:
        print(f"[FATAL] Data file not found: {DATA_PATH}", file=sys.stderr)
        sys.exit(1)
except Exception as exc:
    print(f"[FATAL] Failed to load data: {exc}", file=sys.stderr)
    sys.exit(1)

_reverse_map = build_reverse_prereq_map(_store)
_chain_depths = compute_chain_depths(_reverse_map)


def _reload_data_if_changed(force: bool = False) -> bool:
    """
    Hot-reload the requirement store when DATA_PATH changes on disk.
    Requests already running keep the store they started with.

    Returns True when a reload occurred, else False.
    """
    global _store, _reverse_map, _chain_depths, _data_mtime

    candidate_mtime = _data_file_mtime(DATA_PATH)
    if not force:
        if candidate_mtime is None:
            return False
        if _data_mtime is not None and candidate_mtime <= _data_mtime:
            return False

    with _data_lock:
        latest_mtime = _data_file_mtime(DATA_PATH)
        if not force:
            if latest_mtime is None:
                return False
            if _data_mtime is not None and latest_mtime <= _data_mtime:
                return False

        try:
            new_store = _load_store(DATA_PATH)
            new_reverse_map = build_reverse_prereq_map(new_store)
            new_chain_depths = compute_chain_depths(new_reverse_map)
        except Exception as exc:
            print(f"[WARN] Data reload failed; keeping previous store: {exc}", file=sys.stderr)
            return False

        _store = new_store
        _reverse_map = new_reverse_map
        _chain_depths = new_chain_depths
        _data_mtime = latest_mtime if latest_mtime is not None else candidate_mtime
        _clear_request_caches()
        print(f"[OK] Reloaded {len(new_store)} courses from {DATA_PATH}")
        return True


def _refresh_data_if_needed() -> None:
    try:
        _reload_data_if_changed()
    except Exception as exc:
        print(f"[WARN] Data reload check failed: {exc}", file=sys.stderr)


# -- Security headers ------------------------------------------------------
@app.before_request
def _start_request_timer():
    g._request_start_time = time.perf_counter()


@app.after_request
def _add_security_headers(response):
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["Referrer-Policy"] = "same-origin"
    if _CORS_ORIGIN:
        response.headers["Access-Control-Allow-Origin"] = _CORS_ORIGIN
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"

    started = getattr(g, "_request_start_time", None)
    if started is not None:
        duration_ms = (time.perf_counter() - started) * 1000.0
        if duration_ms >= _SLOW_REQUEST_LOG_MS:
            endpoint = request.endpoint or "unknown"
            print(
                f"[SLOW] {request.method} {request.path} "
                f"endpoint={endpoint} status={response.status_code} duration_ms={duration_ms:.1f}"
            )
    return response


# -- Health endpoint --------------------------------------------------------
@app.route("/health", methods=["GET"])
def health_endpoint():
    return jsonify({
        "status": "ok",
        "version": VERSION,
        "courses_loaded": len(_store),
        "parse_failures": len(_store.parse_failures),
    })


# -- Input validation ------------------------------------------------------
def _body_value(body: dict, *names):
    for name in names:
        if name in body:
            return body[name]
    return None


def _validate_plans_body(body):
    """Returns (error_code, message) on invalid input, (None, None) on success."""
    if not isinstance(body, dict):
        return "INVALID_INPUT", "Request body must be a JSON object."
    target_raw = _body_value(body, "targetCourse", "target_course")
    if not isinstance(target_raw, str) or normalize_code(target_raw) is None:
        return "INVALID_INPUT", "targetCourse is required."
    taken_raw = _body_value(body, "takenCourses", "taken_courses")
    if taken_raw is not None and not isinstance(taken_raw, (str, list)):
        return "INVALID_INPUT", "takenCourses must be a list or a comma-separated string."
    if isinstance(taken_raw, list) and not all(isinstance(c, str) for c in taken_raw):
        return "INVALID_INPUT", "takenCourses must contain only strings."
    return None, None


def _error_response(status: int, error_code: str, message: str):
    return jsonify({
        "mode": "error",
        "error": {
            "error_code": error_code,
            "message": message,
        },
    }), status


def _serialize_plan(plan) -> dict:
    return {
        "courses": plan.to_list(),
        "course_set": sorted(plan.course_set),
        "size": plan.size,
    }


# ── 500 handler ────────────────────────────────────────────────────────────────
@app.errorhandler(Exception)
def handle_unexpected_error(e):
    if isinstance(e, HTTPException):
        return _error_response(e.code or 500, e.name.upper().replace(" ", "_"), e.description or e.name)
    print(f"[ERROR] Unhandled exception: {e!r}", file=sys.stderr)
    return _error_response(500, "SERVER_ERROR", "An unexpected server error occurred.")


# ── Routes ─────────────────────────────────────────────────────────────────────
@app.route("/plans", methods=["POST"])
def plans_endpoint():
    """All plans that reach targetCourse given takenCourses."""
    _refresh_data_if_needed()

    body = request.get_json(force=True, silent=True)
    if body is None:
        return _error_response(400, "INVALID_INPUT", "Request body must be valid JSON.")

    if _cache_enabled():
        ip = request.remote_addr or "unknown"
        if not _check_rate_limit(ip):
            return _error_response(429, "RATE_LIMITED", "Too many requests. Try again in a minute.")

    error_code, message = _validate_plans_body(body)
    if error_code:
        return _error_response(400, error_code, message)

    cache_key = _request_cache_key("plans", body)
    if _cache_enabled():
        cached = _plans_response_cache.get(cache_key)
        if cached is not None:
            return jsonify(cached)

    store = _store
    target = normalize_code(_body_value(body, "targetCourse", "target_course"))
    taken = normalize_input(_body_value(body, "takenCourses", "taken_courses"))

    finder = PlanFinder(store, taken, max_plans=_MAX_PLANS)
    try:
        plans = finder.find_plans(target)
    except PlanLimitExceeded as exc:
        return _error_response(422, "PLAN_LIMIT_EXCEEDED", str(exc))
    except PlanFinderError as exc:
        return _error_response(422, "PLAN_SEARCH_FAILED", str(exc))

    response_payload = {
        "mode": "plans",
        "target_course": target,
        "taken_courses": taken,
        "plan_count": len(plans),
        "plans": [_serialize_plan(p) for p in plans],
        "assumptions": finder.assumptions,
    }
    if _cache_enabled():
        _plans_response_cache.set(cache_key, response_payload)
    return jsonify(response_payload)


@app.route("/courses/<path:course_code>", methods=["GET"])
def course_endpoint(course_code):
    """Stored prerequisite data for one course."""
    _refresh_data_if_needed()
    store = _store
    code = normalize_code(course_code)
    if code is None or store.token_string(code) is None:
        return jsonify({"error": f"{course_code} has no stored prerequisites"}), 404

    tree = store.get(code)
    return jsonify({
        "course_code": code,
        "prereq_string": store.prose(code) or "",
        "tokens": store.token_string(code),
        "requirement": format_requirement(tree) if tree is not None else None,
        "parse_error": store.parse_failures.get(code),
        "unlocks": get_direct_unlocks(code, _reverse_map),
        "chain_depth": _chain_depths.get(code, 0),
    })


# Root POST mirrors /plans for clients that post straight to the service URL.
app.add_url_rule("/", endpoint="root_plans", view_func=plans_endpoint, methods=["POST"])

# -- Canonical API routes ------------------------------------------------
app.add_url_rule("/api/health", endpoint="api_health", view_func=health_endpoint, methods=["GET"])
app.add_url_rule("/api/plans", endpoint="api_plans", view_func=plans_endpoint, methods=["POST"])
app.add_url_rule(
    "/api/courses/<path:course_code>",
    endpoint="api_course",
    view_func=course_endpoint,
    methods=["GET"],
)


# -- API catch-all (404 for unknown /api/* routes) -------------------
@app.route("/api/<path:rest>", methods=["GET", "POST", "PUT", "DELETE", "PATCH"])
def api_catch_all(rest):
    return jsonify({"error": f"/api/{rest} not found"}), 404


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8080))
    debug = os.environ.get("FLASK_DEBUG", "0") == "1"
    app.run(host="0.0.0.0", port=port, debug=debug)
