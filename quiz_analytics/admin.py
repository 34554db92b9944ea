"""
Admin dashboard API.

Routes (all need the x-api-key header):
    GET /api/admin/dashboard                   - Totals, today (JST), last 7 days
    GET /api/admin/analytics                   - Period summary + daily series
    GET /api/admin/analytics/hourly            - Views/diagnoses by JST hour
    GET /api/admin/analytics/weekday           - Views/diagnoses by JST weekday
    GET /api/admin/analytics/devices           - mobile / tablet / desktop split
    GET /api/admin/analytics/referrers         - Top referring domains
    GET /api/admin/analytics/pages             - Views per page label
    GET /api/admin/analytics/conversion        - home -> quiz -> result -> completed
    GET /api/admin/analytics/heatmap           - weekday x hour matrix
    GET /api/admin/analytics/dropout           - Quiz dropout by milestone
    GET /api/admin/analytics/traffic-sources   - Source cascade + platforms
    GET /api/admin/analytics/utm               - UTM source/medium/campaign counts
    GET /api/admin/analytics/campaign/<name>   - One campaign by day and page
    GET /api/admin/analytics/features          - Feature usage counts
    GET /api/admin/diagnosis/recent            - Latest diagnosis results
    GET /api/admin/diagnosis-codes             - Issued diagnosis codes
    GET /api/admin/export/diagnosis            - CSV
    GET /api/admin/export/pageviews            - CSV

startDate/endDate are JST calendar dates. The default window differs per
route (hourly: 7 days, exports: everything since 2020-01-01, rest: 30 days).
"""
import hmac
import json
import logging

from flask import Blueprint, Response, abort, current_app, jsonify, request

from . import aggregate as agg
from .classify import SOURCE_LABELS, device_class, device_platform, referrer_domain, traffic_source
from .config import ANALYTICS_ROW_LIMIT, DASHBOARD_ROW_LIMIT, EXPORT_EPOCH
from .db import Where, get_store
from .errors import reports_failure
from .export import DIAGNOSIS_COLUMNS, PAGEVIEW_COLUMNS, to_csv
from .timekeys import day_bounds, days_ago_key, resolve_range, today_key

logger = logging.getLogger(__name__)

bp = Blueprint("admin", __name__, url_prefix="/api/admin")

FEATURE_TYPES = (
    ("loveFortune", "love_fortune"),
    ("compatibility", "compatibility"),
    ("diagnosisCode", "diagnosis_code"),
)


@bp.before_request
def require_api_key():
    if request.method == "OPTIONS":
        return None
    api_key = request.headers.get("x-api-key", "")
    expected = current_app.config["ADMIN_API_KEY"]
    if not hmac.compare_digest(api_key.encode("utf-8"), expected.encode("utf-8")):
        abort(401, description="Unauthorized")


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def _period(default_days=30, default_start=None):
    """
    Resolve startDate/endDate for this request.
    Returns (start_date, end_date, Where).
    """
    try:
        start_date, end_date, start_iso, end_iso = resolve_range(
            request.args.get("startDate"),
            request.args.get("endDate"),
            default_days=default_days,
            default_start=default_start,
        )
    except ValueError as exc:
        abort(400, description=str(exc))
    logger.info("%s: %s .. %s", request.endpoint, start_date, end_date)
    return start_date, end_date, Where(start=start_iso, end=end_iso)


def _today():
    today = today_key()
    start_iso, end_iso = day_bounds(today, today)
    return Where(start=start_iso, end=end_iso)


def _limit_arg(default, maximum):
    try:
        value = int(request.args.get("limit", default))
    except ValueError:
        value = default
    if value <= 0:
        value = default
    return min(value, maximum)


def _with_eq(where: Where, **equals) -> Where:
    return Where(start=where.start, end=where.end, equals=equals)


# -----------------------------------------------------------------------------
# Dashboard
# -----------------------------------------------------------------------------
@bp.route("/dashboard")
@reports_failure("Failed to get dashboard data")
def dashboard():
    store = get_store()
    today = _today()

    week_start, week_end = day_bounds(days_ago_key(7), today_key())
    week = Where(start=week_start, end=week_end)

    views = store.select("page_views", ["created_at"], week, limit=DASHBOARD_ROW_LIMIT)
    diagnoses = store.select("diagnosis_results", ["created_at"], week, limit=DASHBOARD_ROW_LIMIT)

    return jsonify({
        "totalViews": store.count("page_views"),
        "totalUU": agg.unique_visitors(store.select("page_views", ["ip"])),
        "todayViews": store.count("page_views", today),
        "todayUU": agg.unique_visitors(store.select("page_views", ["ip"], today)),
        "totalDiagnosis": store.count("diagnosis_results"),
        "todayDiagnosis": store.count("diagnosis_results", today),
        "typeStats": agg.type_stats(store.select("diagnosis_results", ["type_code", "type_name"])),
        "dailyViews": agg.daily_series(views),
        "dailyDiagnosis": agg.daily_series(diagnoses),
    })


@bp.route("/analytics")
@reports_failure("Failed to get analytics")
def analytics():
    start_date, end_date, where = _period(30)
    store = get_store()

    views = store.select("page_views", ["created_at", "ip"], where, limit=ANALYTICS_ROW_LIMIT)
    diagnoses = store.select(
        "diagnosis_results", ["created_at", "type_code", "type_name"], where, limit=ANALYTICS_ROW_LIMIT
    )

    return jsonify({
        "period": {"start": start_date, "end": end_date},
        "periodViews": store.count("page_views", where),
        "periodUU": agg.unique_visitors(store.select("page_views", ["ip"], where)),
        "periodDiagnosis": store.count("diagnosis_results", where),
        "dailyViews": agg.daily_series(views),
        "dailyUU": agg.daily_unique_visitors(views),
        "dailyDiagnosis": agg.daily_series(diagnoses),
        "typeStats": agg.type_stats(diagnoses),
    })


# -----------------------------------------------------------------------------
# Time-of-day views
# -----------------------------------------------------------------------------
@bp.route("/analytics/hourly")
@reports_failure("Failed to get hourly analytics")
def hourly():
    _, _, where = _period(7)
    store = get_store()
    return jsonify({
        "hourlyViews": agg.hourly_series(store.select("page_views", ["created_at"], where)),
        "hourlyDiagnosis": agg.hourly_series(store.select("diagnosis_results", ["created_at"], where)),
    })


@bp.route("/analytics/weekday")
@reports_failure("Failed to get weekday analytics")
def weekday():
    _, _, where = _period(30)
    store = get_store()
    return jsonify({
        "weekdayViews": agg.weekday_series(store.select("page_views", ["created_at"], where)),
        "weekdayDiagnosis": agg.weekday_series(store.select("diagnosis_results", ["created_at"], where)),
    })


@bp.route("/analytics/heatmap")
@reports_failure("Failed to get heatmap data")
def heatmap():
    _, _, where = _period(30)
    rows = get_store().select("page_views", ["created_at"], where)
    return jsonify(agg.heatmap(rows))


# -----------------------------------------------------------------------------
# Audience views
# -----------------------------------------------------------------------------
@bp.route("/analytics/devices")
@reports_failure("Failed to get device analytics")
def devices():
    _, _, where = _period(30)
    rows = get_store().select("page_views", ["user_agent"], where)

    counts = {"mobile": 0, "tablet": 0, "desktop": 0}
    for row in rows:
        counts[device_class(row["user_agent"])] += 1

    return jsonify({"devices": counts, "percentages": agg.percentages(counts)})


@bp.route("/analytics/referrers")
@reports_failure("Failed to get referrer analytics")
def referrers():
    _, _, where = _period(30)
    rows = get_store().select("page_views", ["referrer"], where)
    series = agg.aggregate(rows, lambda r: referrer_domain(r["referrer"]), by="count", limit=10)
    return jsonify({"referrers": agg.relabel(series, "domain")})


@bp.route("/analytics/pages")
@reports_failure("Failed to get page analytics")
def pages():
    _, _, where = _period(30)
    rows = get_store().select("page_views", ["page"], where)
    return jsonify({"pages": agg.top_values(rows, "page", skip_empty=False)})


@bp.route("/analytics/traffic-sources")
@reports_failure("Failed to get traffic sources")
def traffic_sources():
    _, _, where = _period(30)
    rows = get_store().select(
        "page_views", ["referrer", "utm_source", "utm_medium", "utm_campaign", "user_agent"], where
    )

    platforms = {"ios": 0, "android": 0, "pc_mac": 0, "pc_windows": 0, "other": 0}
    buckets = {key: [] for key in SOURCE_LABELS}
    for row in rows:
        platforms[device_platform(row["user_agent"])] += 1
        bucket, detail = traffic_source(row)
        buckets[bucket].append(detail)

    sources = {}
    for key, label in SOURCE_LABELS.items():
        details = agg.aggregate(
            buckets[key], lambda d: d, predicate=lambda d: d is not None, by="count", limit=10
        )
        sources[key] = {
            "count": len(buckets[key]),
            "label": label,
            "details": agg.relabel(details, "name"),
        }

    shares = agg.percentages(platforms)
    return jsonify({
        "total": len(rows),
        "sources": sources,
        "devices": {key: {"count": platforms[key], "percent": shares[key]} for key in platforms},
    })


@bp.route("/analytics/utm")
@reports_failure("Failed to get UTM analytics")
def utm():
    _, _, where = _period(30)
    rows = get_store().select(
        "page_views", ["utm_source", "utm_medium", "utm_campaign"], where, limit=ANALYTICS_ROW_LIMIT
    )
    tracked = sum(1 for r in rows if r["utm_source"])
    return jsonify({
        "sources": agg.top_values(rows, "utm_source", "source"),
        "mediums": agg.top_values(rows, "utm_medium", "medium"),
        "campaigns": agg.top_values(rows, "utm_campaign", "campaign"),
        "directCount": len(rows) - tracked,
        "totalTracked": tracked,
    })


@bp.route("/analytics/campaign/<path:campaign>")
@reports_failure("Failed to get campaign analytics")
def campaign(campaign):
    _, _, where = _period(30)
    rows = get_store().select(
        "page_views", ["page", "utm_source", "utm_medium", "created_at"], _with_eq(where, utm_campaign=campaign)
    )
    return jsonify({
        "campaign": campaign,
        "totalViews": len(rows),
        "dailyData": agg.daily_series(rows),
        "pageData": agg.top_values(rows, "page"),
    })


# -----------------------------------------------------------------------------
# Funnels
# -----------------------------------------------------------------------------
@bp.route("/analytics/conversion")
@reports_failure("Failed to get conversion analytics")
def conversion():
    _, _, where = _period(30)
    store = get_store()
    return jsonify(agg.conversion_funnel(
        home=store.count("page_views", _with_eq(where, page="home")),
        quiz=store.count("page_views", _with_eq(where, page="quiz")),
        result=store.count("page_views", _with_eq(where, page="result")),
        completed=store.count("diagnosis_results", where),
    ))


@bp.route("/analytics/dropout")
@reports_failure("Failed to get dropout analytics")
def dropout():
    _, _, where = _period(30)
    rows = get_store().select("quiz_progress", ["session_id", "question_number", "action"], where)
    return jsonify(agg.dropout_funnel(rows))


# -----------------------------------------------------------------------------
# Features / diagnosis lists
# -----------------------------------------------------------------------------
@bp.route("/analytics/features")
@reports_failure("Failed to get feature analytics")
def features():
    start_date, end_date, where = _period(30)
    today = _today()
    store = get_store()

    body = {"period": {"start": start_date, "end": end_date}}
    for name, event_type in FEATURE_TYPES:
        body[name] = {
            "total": store.count("feature_events", Where(equals={"event_type": event_type})),
            "period": store.count("feature_events", _with_eq(where, event_type=event_type)),
            "today": store.count("feature_events", _with_eq(today, event_type=event_type)),
        }
    return jsonify(body)


@bp.route("/diagnosis/recent")
@reports_failure("Failed to get recent diagnosis")
def recent_diagnosis():
    rows = get_store().select(
        "diagnosis_results", ["id", "type_code", "type_name", "created_at"], limit=_limit_arg(50, 1000)
    )
    return jsonify(rows)


@bp.route("/diagnosis-codes")
@reports_failure("Failed to get diagnosis codes")
def diagnosis_codes():
    _, _, where = _period(default_start=EXPORT_EPOCH)
    rows = get_store().select(
        "feature_events",
        ["id", "payload", "created_at"],
        _with_eq(where, event_type="diagnosis_code"),
        limit=_limit_arg(100, 500),
    )

    codes = []
    for row in rows:
        payload = json.loads(row["payload"] or "{}")
        codes.append({
            "id": row["id"],
            "code": payload.get("code") or "",
            "type": payload.get("type") or "",
            "created_at": row["created_at"],
        })
    return jsonify({"list": codes, "total": len(codes)})


# -----------------------------------------------------------------------------
# CSV export
# -----------------------------------------------------------------------------
def _csv_response(body, filename):
    resp = Response(body, content_type="text/csv; charset=utf-8")
    resp.headers["Content-Disposition"] = f"attachment; filename={filename}"
    return resp


@bp.route("/export/diagnosis")
@reports_failure("Failed to export diagnosis")
def export_diagnosis():
    start_date, end_date, where = _period(default_start=EXPORT_EPOCH)
    rows = get_store().select("diagnosis_results", [field for field, _ in DIAGNOSIS_COLUMNS], where)
    return _csv_response(to_csv(rows, DIAGNOSIS_COLUMNS), f"diagnosis_{start_date}_{end_date}.csv")


@bp.route("/export/pageviews")
@reports_failure("Failed to export pageviews")
def export_pageviews():
    start_date, end_date, where = _period(default_start=EXPORT_EPOCH)
    rows = get_store().select("page_views", [field for field, _ in PAGEVIEW_COLUMNS], where)
    return _csv_response(to_csv(rows, PAGEVIEW_COLUMNS), f"pageviews_{start_date}_{end_date}.csv")
