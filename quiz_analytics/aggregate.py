"""
Request-scoped reducers over stored rows.

Every dashboard series is `aggregate()` with a different key function;
the funnel, heatmap and percentage helpers shape the remaining views.
"""
import math
from collections import Counter, defaultdict

from .timekeys import date_key, hour_key, weekday_key

DROPOUT_MILESTONES = (1, 6, 11, 16, 20)
DROPOUT_LABELS = (
    "Page 1 (Q1-Q5)",
    "Page 2 (Q6-Q10)",
    "Page 3 (Q11-Q15)",
    "Page 4 (Q16-Q20)",
    "Completed",
)

CONVERSION_STAGES = (
    ("home", "Home"),
    ("quiz", "Quiz started"),
    ("result", "Result viewed"),
    ("completed", "Diagnosis completed"),
)


def round1(value: float) -> float:
    """Round half-up to one decimal place."""
    return math.floor(value * 10 + 0.5) / 10


def rate(part, whole) -> float:
    """part/whole as a one-decimal percentage, 0 when whole is 0."""
    if not whole:
        return 0
    return round1(part / whole * 100)


def aggregate(rows, key_fn, predicate=None, *, by="key", limit=None):
    """
    Count rows per key_fn(row).

    by="key"   -> ascending by key (chronological for date/hour/weekday)
    by="count" -> descending by count, first-seen order on ties
    """
    counts = Counter()
    for row in rows:
        if predicate is not None and not predicate(row):
            continue
        counts[key_fn(row)] += 1

    if by == "key":
        items = sorted(counts.items(), key=lambda kv: kv[0])
    elif by == "count":
        items = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
    else:
        raise ValueError(f"unknown sort: {by}")

    if limit is not None:
        items = items[:limit]
    return [{"key": key, "count": count} for key, count in items]


def relabel(series, name):
    """[{key, count}] -> [{<name>, count}] for the JSON payloads."""
    return [{name: item["key"], "count": item["count"]} for item in series]


def daily_series(rows):
    return relabel(aggregate(rows, lambda r: date_key(r["created_at"])), "date")


def hourly_series(rows):
    return relabel(aggregate(rows, lambda r: hour_key(r["created_at"])), "hour")


def weekday_series(rows):
    return relabel(aggregate(rows, lambda r: weekday_key(r["created_at"])), "weekday")


def top_values(rows, field, name=None, limit=None, skip_empty=True):
    """
    Descending counts of a raw column. Empty values are skipped, or counted
    under a None key when skip_empty is False.
    """
    series = aggregate(
        rows,
        lambda r: r.get(field) or None,
        predicate=(lambda r: bool(r.get(field))) if skip_empty else None,
        by="count",
        limit=limit,
    )
    return relabel(series, name or field)


def unique_visitors(rows) -> int:
    return len({r["ip"] for r in rows if r.get("ip")})


def daily_unique_visitors(rows):
    per_day = defaultdict(set)
    for row in rows:
        ips = per_day[date_key(row["created_at"])]
        if row.get("ip"):
            ips.add(row["ip"])
    return [{"date": day, "count": len(per_day[day])} for day in sorted(per_day)]


def type_stats(rows):
    """
    Diagnosis counts per type code, most frequent first.
    """
    stats = {}
    for row in rows:
        code = row["type_code"]
        if code not in stats:
            stats[code] = {"type_code": code, "type_name": row.get("type_name"), "count": 0}
        stats[code]["count"] += 1
    return sorted(stats.values(), key=lambda s: s["count"], reverse=True)


def percentages(counts: dict) -> dict:
    total = sum(counts.values())
    return {
        key: math.floor(value / total * 100 + 0.5) if total else 0
        for key, value in counts.items()
    }


def dropout_funnel(rows, milestones=DROPOUT_MILESTONES, labels=DROPOUT_LABELS):
    """
    Quiz dropout by milestone question.

    Each session contributes its highest question number and whether it
    logged a "complete" action. Only sessions with at least one row exist.
    """
    sessions = {}
    for row in rows:
        session_id = row.get("session_id")
        if not session_id:
            continue
        state = sessions.setdefault(session_id, {"max_question": 0, "completed": False})
        question = row.get("question_number") or 0
        if question > state["max_question"]:
            state["max_question"] = question
        if row.get("action") == "complete":
            state["completed"] = True

    total_sessions = len(sessions)
    completed_count = sum(1 for s in sessions.values() if s["completed"])

    reached = [
        sum(1 for s in sessions.values() if s["max_question"] >= milestone)
        for milestone in milestones
    ]

    funnel = []
    for idx, milestone in enumerate(milestones):
        prev = total_sessions if idx == 0 else reached[idx - 1]
        dropout = round1((1 - reached[idx] / prev) * 100) if prev else 0
        funnel.append({
            "question": milestone,
            "label": labels[idx] if idx < len(labels) else f"Q{milestone}",
            "reached": reached[idx],
            "dropoutRate": dropout,
        })

    return {
        "totalSessions": total_sessions,
        "completedCount": completed_count,
        "completionRate": rate(completed_count, total_sessions),
        "funnel": funnel,
    }


def conversion_funnel(home: int, quiz: int, result: int, completed: int):
    """
    Page-based funnel. Each stage is an independent count over the range,
    not a per-visitor join, so rates can exceed 100%.
    """
    counts = {"home": home, "quiz": quiz, "result": result, "completed": completed}
    return {
        "funnel": [
            {"stage": label, "key": key, "count": counts[key]}
            for key, label in CONVERSION_STAGES
        ],
        "conversionRate": rate(completed, home),
        "quizStartRate": rate(quiz, home),
        "quizCompleteRate": rate(completed, quiz),
    }


def heatmap(rows):
    """7x24 weekday (0=Sunday) x hour matrix plus its max cell (at least 1)."""
    matrix = [[0] * 24 for _ in range(7)]
    for row in rows:
        matrix[weekday_key(row["created_at"])][int(hour_key(row["created_at"]))] += 1
    max_value = max(1, max(max(line) for line in matrix))
    return {"matrix": matrix, "maxValue": max_value}
