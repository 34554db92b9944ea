"""
Ingest routes. One row per call, no dedup: a client that fires twice is
counted twice.
"""
import json
import logging

from flask import Blueprint, abort, jsonify, request

from .db import get_store
from .errors import reports_failure
from .timekeys import format_instant, now_utc

logger = logging.getLogger(__name__)

bp = Blueprint("tracking", __name__, url_prefix="/api/track")


# -----------------------------------------------------------------------------
# Request helpers
# -----------------------------------------------------------------------------
def _clip(value, size):
    """str(value)[:size], or None for missing / empty values."""
    if value is None or value == "":
        return None
    return str(value)[:size]


def client_ip(req) -> str:
    forwarded = req.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip()[:100]
    return (req.remote_addr or "")[:100]


def request_fingerprint(req):
    """
    Ambient request metadata stored with page views.
    """
    return {
        "user_agent": req.headers.get("User-Agent", "")[:1000],
        "referrer": req.headers.get("Referer", "")[:2000],
        "ip": client_ip(req),
    }


def utm_fields(data):
    return {
        "utm_source": _clip(data.get("utm_source"), 255),
        "utm_medium": _clip(data.get("utm_medium"), 255),
        "utm_campaign": _clip(data.get("utm_campaign"), 255),
    }


def _as_int(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _body():
    # Non-object JSON bodies carry no fields
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _scores(value):
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


def _ok():
    return jsonify({"success": True})


def _record(table, values):
    values["created_at"] = format_instant(now_utc())
    row_id = get_store().insert(table, values)
    logger.debug("tracked %s #%s", table, row_id)


def _record_feature(event_type, payload):
    _record("feature_events", {"event_type": event_type, "payload": json.dumps(payload, ensure_ascii=False)})


# -----------------------------------------------------------------------------
# Routes
# -----------------------------------------------------------------------------
@bp.route("/pageview", methods=["POST"])
@reports_failure("Failed to track pageview")
def pageview():
    """
    Body: { "page": "home", "utm_source": ..., "utm_medium": ..., "utm_campaign": ... }
    """
    data = _body()
    meta = request_fingerprint(request)
    _record("page_views", {
        "page": _clip(data.get("page"), 500),
        **meta,
        **utm_fields(data),
    })
    return _ok()


@bp.route("/quiz-progress", methods=["POST"])
@reports_failure("Failed to track quiz progress")
def quiz_progress():
    """
    Body: { "session_id": "...", "question_number": 6, "action": "start|answer|complete" }
    """
    data = _body()
    _record("quiz_progress", {
        "session_id": _clip(data.get("session_id"), 100),
        "question_number": _as_int(data.get("question_number")),
        "action": _clip(data.get("action"), 50),
        "user_agent": request.headers.get("User-Agent", "")[:1000],
        **utm_fields(data),
    })
    return _ok()


@bp.route("/diagnosis", methods=["POST"])
@reports_failure("Failed to track diagnosis")
def diagnosis():
    data = _body()
    _record("diagnosis_results", {
        "type_code": _clip(data.get("typeCode"), 50),
        "type_name": _clip(data.get("typeName"), 255),
        "scores": _scores(data.get("scores")),
        "user_agent": request.headers.get("User-Agent", "")[:1000],
    })
    return _ok()


@bp.route("/love-fortune", methods=["POST"])
@reports_failure("Failed to track love-fortune")
def love_fortune():
    data = _body()
    _record_feature("love_fortune", {
        "type_code": data.get("typeCode") or None,
        "gender": data.get("gender") or None,
        "has_lover": data.get("hasLover") or None,
    })
    return _ok()


@bp.route("/compatibility", methods=["POST"])
@reports_failure("Failed to track compatibility")
def compatibility():
    data = _body()
    _record_feature("compatibility", {
        "my_type": data.get("myType") or None,
        "partner_type": data.get("partnerType") or None,
    })
    return _ok()


@bp.route("/diagnosis-code", methods=["POST"])
@reports_failure("Failed to track diagnosis-code")
def diagnosis_code():
    data = _body()
    code, type_ = data.get("code"), data.get("type")
    if not code or not type_:
        abort(400, description="code and type required")
    _record_feature("diagnosis_code", {
        "code": str(code).upper(),
        "type": str(type_).upper(),
    })
    return _ok()
