"""Analytics aggregation over a form's visits and responses.

Pure functions: callers load the data and check access. Every aggregate is
computed in full or not at all; an error in any grouping propagates.
"""

from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

import structlog

from triddle.models.base import utc_now
from triddle.models.form import Form
from triddle.models.response import Response
from triddle.models.visit import Visit
from triddle.services.field_types import aggregator_for

logger = structlog.get_logger()

TREND_DAYS = 30
TOP_REFERRERS = 10


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _ranked(counts: Counter, key_name: str) -> list[dict[str, Any]]:
    """Counts as ``[{key_name: key, count}]``, most frequent first."""
    ranked = sorted(counts.items(), key=lambda item: (-item[1], str(item[0])))
    return [{key_name: key, "count": count} for key, count in ranked]


def conversion_rate(total_visits: int, total_responses: int) -> float:
    """Completed responses per visit as a percentage in [0, 100]."""
    if total_visits <= 0:
        return 0
    return min(100.0, max(0.0, total_responses / total_visits * 100))


def form_analytics(
    form: Form,
    visits: Iterable[Visit],
    responses: Iterable[Response],
    now: datetime | None = None,
) -> dict[str, Any]:
    """Dashboard summary of a form.

    Args:
        form: The form.
        visits: All visits of the form.
        responses: All responses of the form, complete or not.
        now: Reference time for the daily trend window.

    Returns:
        totalVisits, totalResponses, conversionRate, avgCompletionTime,
        devices, dropOffs and dailyTrend.
    """
    visits = list(visits)
    responses = list(responses)
    now = _as_utc(now or utc_now())

    complete = [r for r in responses if r.is_complete]
    incomplete = [r for r in responses if not r.is_complete]

    total_visits = len(visits)
    total_responses = len(complete)

    avg_completion_time = 0
    if complete:
        avg_completion_time = sum(r.metadata.time_spent or 0 for r in complete) / len(complete)

    devices = Counter(visit.metadata.device or "unknown" for visit in visits)

    drop_offs = Counter(len(response.answers) for response in incomplete)

    since = now - timedelta(days=TREND_DAYS)
    daily = Counter(
        _as_utc(response.created_at).date().isoformat()
        for response in responses
        if _as_utc(response.created_at) >= since
    )

    logger.debug("Form analytics computed", form_id=form.id, visits=total_visits, responses=len(responses))

    return {
        "totalVisits": total_visits,
        "totalResponses": total_responses,
        "conversionRate": conversion_rate(total_visits, total_responses),
        "avgCompletionTime": avg_completion_time,
        "devices": _ranked(devices, "device"),
        "dropOffs": [{"answerCount": count, "count": drop_offs[count]} for count in sorted(drop_offs)],
        "dailyTrend": [{"date": day, "count": daily[day]} for day in sorted(daily)],
    }


def response_counts(responses: Iterable[Response], now: datetime | None = None) -> dict[str, int]:
    """Total responses of a form and those started today (UTC), for dashboard cards."""
    today = _as_utc(now or utc_now()).date()
    total = started_today = 0
    for response in responses:
        total += 1
        if _as_utc(response.created_at).date() == today:
            started_today += 1
    return {"responses": total, "responsesToday": started_today}


def field_analytics(form: Form, responses: Iterable[Response]) -> list[dict[str, Any]]:
    """Per-field answer statistics, in form field order.

    Answers to field IDs that are not on the form are ignored.
    """
    aggregates = {field.field_id: aggregator_for(field) for field in form.ordered_fields()}

    for response in responses:
        for answer in response.answers:
            aggregate = aggregates.get(answer.field_id)
            if aggregate is not None:
                aggregate.add(answer)

    return [aggregate.to_dict() for aggregate in aggregates.values()]


def visit_analytics(form: Form, visits: Iterable[Visit]) -> dict[str, Any]:
    """Traffic breakdown of a form's visits.

    Hours and weekdays are taken in UTC; weekdays are ISO numbered
    (1 = Monday, 7 = Sunday).
    """
    visits = list(visits)

    referrers = Counter(visit.metadata.referrer or "direct" for visit in visits)
    browsers = Counter(visit.metadata.browser or "unknown" for visit in visits)
    systems = Counter(visit.metadata.operating_system or "unknown" for visit in visits)

    hourly = [0] * 24
    weekdays = [0] * 7
    for visit in visits:
        started_at = visit.metadata.started_at
        if started_at is None:
            continue
        started_at = _as_utc(started_at)
        hourly[started_at.hour] += 1
        weekdays[started_at.isoweekday() - 1] += 1

    logger.debug("Visit analytics computed", form_id=form.id, visits=len(visits))

    return {
        "referrers": _ranked(referrers, "referrer")[:TOP_REFERRERS],
        "browsers": _ranked(browsers, "browser"),
        "operatingSystems": _ranked(systems, "os"),
        "hourlyDistribution": [{"hour": hour, "count": count} for hour, count in enumerate(hourly)],
        "dayOfWeekDistribution": [{"dayOfWeek": day + 1, "count": count} for day, count in enumerate(weekdays)],
    }
