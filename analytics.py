# analytics.py - Session history, daily/weekly reports, streaks

import logging
import time
from datetime import date, datetime, timedelta

import pandas as pd

import configure_setting as config

logger = logging.getLogger(__name__)

STATUS_FIELDS = {
    'Good': 'good_count',
    'Moderate': 'moderate_count',
    'Poor': 'poor_count',
}


# ============================================================================
# HISTORY STORAGE
# ============================================================================
def empty_history():
    return {
        'detailed_sessions': [],
        'daily_summaries': [],
        'streak_data': {
            'current_streak': 0,
            'longest_streak': 0,
            'last_good_day': None,
            'total_good_days': 0,
        },
    }


def get_historical_data(store):
    """
    Load analytics history from the store.

    Returns:
        dict: detailed_sessions (last 15 days), daily_summaries (older days
        folded per date), streak_data
    """
    history = store.get(config.KEY_ANALYTICS)
    if not isinstance(history, dict):
        return empty_history()

    defaults = empty_history()
    for key, value in defaults.items():
        history.setdefault(key, value)
    return history


def calculate_score(good, moderate, poor):
    """History score: (Good×100 + Moderate×50) / Total, rounded."""
    total = good + moderate + poor
    if total == 0:
        return 0
    return round((good * 100 + moderate * 50) / total)


def date_key(timestamp):
    """Epoch seconds → local calendar date 'YYYY-MM-DD'."""
    return datetime.fromtimestamp(timestamp).date().isoformat()


def _reading_to_dict(reading):
    return {
        'timestamp': reading.timestamp,
        'angle': round(reading.angle, 2),
        'status': str(reading.status),
    }


def save_session_to_history(store, session, now=None):
    """
    Store a finished monitoring session and roll up old data.

    Detailed sessions older than DETAILED_RETENTION_DAYS are folded into
    per-date daily summaries; streaks are recomputed afterwards.

    Args:
        store: KeyValueStore
        session: features.SessionData
        now: Epoch seconds (defaults to now)

    Returns:
        dict: The stored session record, or None if the session was empty
    """
    if not session.readings:
        return None

    now = time.time() if now is None else now
    history = get_historical_data(store)

    record = {
        'date': date_key(now),
        'timestamp': now,
        'start_time': session.start_time,
        'end_time': now,
        'readings': [_reading_to_dict(r) for r in session.readings],
        'good_count': session.good_count,
        'moderate_count': session.moderate_count,
        'poor_count': session.poor_count,
        'score': calculate_score(session.good_count, session.moderate_count,
                                 session.poor_count),
    }
    history['detailed_sessions'].append(record)

    cutoff = now - config.DETAILED_RETENTION_DAYS * 24 * 60 * 60
    recent = []
    for s in history['detailed_sessions']:
        if s['timestamp'] < cutoff:
            _fold_into_daily(history, s)
        else:
            recent.append(s)
    history['detailed_sessions'] = recent

    history['streak_data'] = calculate_streaks(history)
    store.set(config.KEY_ANALYTICS, history)

    logger.info("Saved session with %d readings (score %d)",
                len(record['readings']), record['score'])
    return record


def _fold_into_daily(history, session):
    minutes = (session['end_time'] - session['start_time']) / 60
    summary = next((d for d in history['daily_summaries'] if d['date'] == session['date']), None)

    if summary is None:
        history['daily_summaries'].append({
            'date': session['date'],
            'total_sessions': 1,
            'total_minutes': minutes,
            'good_count': session['good_count'],
            'moderate_count': session['moderate_count'],
            'poor_count': session['poor_count'],
            'hourly_breakdown': create_hourly_breakdown(session['readings']),
            'average_score': session['score'],
        })
    else:
        summary['total_sessions'] += 1
        summary['total_minutes'] += minutes
        for field in STATUS_FIELDS.values():
            summary[field] += session[field]
        summary['average_score'] = calculate_score(
            summary['good_count'], summary['moderate_count'], summary['poor_count'])
        summary['hourly_breakdown'] = _merge_hourly(
            summary['hourly_breakdown'], create_hourly_breakdown(session['readings']))

    history['daily_summaries'].sort(key=lambda d: d['date'], reverse=True)


def _empty_hour(hour):
    return {'hour': hour, 'good_count': 0, 'moderate_count': 0,
            'poor_count': 0, 'total_readings': 0}


def create_hourly_breakdown(readings):
    """
    Count readings per local hour of day.

    Args:
        readings: list of {'timestamp', 'angle', 'status'} dicts

    Returns:
        list: hour buckets sorted by hour, only hours that have readings
    """
    buckets = {}
    for reading in readings:
        hour = datetime.fromtimestamp(reading['timestamp']).hour
        bucket = buckets.setdefault(hour, _empty_hour(hour))
        bucket['total_readings'] += 1
        field = STATUS_FIELDS.get(reading['status'])
        if field:
            bucket[field] += 1
    return [buckets[h] for h in sorted(buckets)]


def _merge_hourly(*breakdowns):
    merged = {}
    for breakdown in breakdowns:
        for entry in breakdown:
            bucket = merged.setdefault(entry['hour'], _empty_hour(entry['hour']))
            for key in ('good_count', 'moderate_count', 'poor_count', 'total_readings'):
                bucket[key] += entry[key]
    return [merged[h] for h in sorted(merged)]


# ============================================================================
# DAILY DATA
# ============================================================================
def empty_day(day):
    return {
        'date': day,
        'total_sessions': 0,
        'total_minutes': 0,
        'good_count': 0,
        'moderate_count': 0,
        'poor_count': 0,
        'hourly_breakdown': [],
        'average_score': 0,
    }


def aggregate_sessions_to_daily(sessions, day):
    summary = empty_day(day)
    readings = []
    for s in sessions:
        summary['total_minutes'] += (s['end_time'] - s['start_time']) / 60
        for field in STATUS_FIELDS.values():
            summary[field] += s[field]
        readings.extend(s['readings'])

    summary['total_sessions'] = len(sessions)
    summary['hourly_breakdown'] = create_hourly_breakdown(readings)
    summary['average_score'] = calculate_score(
        summary['good_count'], summary['moderate_count'], summary['poor_count'])
    return summary


def daily_from_history(history, day):
    """Detailed sessions win over the folded summary for the same date."""
    sessions = [s for s in history['detailed_sessions'] if s['date'] == day]
    if sessions:
        return aggregate_sessions_to_daily(sessions, day)
    return next((d for d in history['daily_summaries'] if d['date'] == day), None)


def get_daily_data(store, day):
    """
    Posture data for one calendar date.

    Returns:
        dict: daily record, or None if nothing was tracked that day
    """
    return daily_from_history(get_historical_data(store), day)


def _today(today):
    if today is None:
        return date.today()
    if isinstance(today, str):
        return date.fromisoformat(today)
    return today


def get_date_range(store, days, today=None):
    """
    The last `days` days ending today, oldest first.

    Days without sessions come back as empty records so charts keep a
    continuous axis.
    """
    history = get_historical_data(store)
    end = _today(today)
    result = []
    for offset in range(days - 1, -1, -1):
        day = (end - timedelta(days=offset)).isoformat()
        result.append(daily_from_history(history, day) or empty_day(day))
    return result


def get_custom_range(store, start, end):
    """Days between start and end (inclusive) that have data."""
    history = get_historical_data(store)
    start, end = _today(start), _today(end)
    result = []
    current = start
    while current <= end:
        data = daily_from_history(history, current.isoformat())
        if data:
            result.append(data)
        current += timedelta(days=1)
    return result


def days_tracked(history):
    dates = {s['date'] for s in history['detailed_sessions']}
    dates.update(d['date'] for d in history['daily_summaries'])
    return len(dates)


# ============================================================================
# STREAKS
# ============================================================================
def calculate_streaks(history):
    """
    Good-day streaks over every tracked date.

    A good day averages at least GOOD_DAY_THRESHOLD (60%). The current
    streak runs back from the most recent tracked date; a missing calendar
    day ends a run.

    Returns:
        dict: current_streak, longest_streak, last_good_day, total_good_days
    """
    dates = {s['date'] for s in history['detailed_sessions']}
    dates.update(d['date'] for d in history['daily_summaries'])

    current = longest = run = total_good = 0
    last_good_day = None
    checking_current = True
    previous = None

    for day in sorted(dates, reverse=True):
        daily = daily_from_history(history, day)
        is_good = bool(daily) and daily['average_score'] >= config.GOOD_DAY_THRESHOLD * 100
        this_day = date.fromisoformat(day)
        adjacent = previous is None or (previous - this_day).days == 1
        previous = this_day

        if not is_good:
            checking_current = False
            longest = max(longest, run)
            run = 0
            continue

        total_good += 1
        if last_good_day is None:
            last_good_day = day
        if run and not adjacent:
            checking_current = False
            longest = max(longest, run)
            run = 0
        run += 1
        if checking_current:
            current = run

    longest = max(longest, run)
    return {
        'current_streak': current,
        'longest_streak': longest,
        'last_good_day': last_good_day,
        'total_good_days': total_good,
    }


# ============================================================================
# REPORTS
# ============================================================================
def daily_score_label(score):
    if score >= 80:
        return "Excellent"
    if score >= 60:
        return "Good"
    if score >= 40:
        return "Fair"
    return "Needs Improvement"


def status_percentages(daily):
    total = daily['good_count'] + daily['moderate_count'] + daily['poor_count']
    if total == 0:
        return {'good': 0.0, 'moderate': 0.0, 'poor': 0.0}
    return {
        'good': daily['good_count'] / total * 100,
        'moderate': daily['moderate_count'] / total * 100,
        'poor': daily['poor_count'] / total * 100,
    }


def peak_hours(daily, limit=3):
    """Busiest hours of a day by number of readings."""
    return sorted(daily['hourly_breakdown'], key=lambda h: h['total_readings'],
                  reverse=True)[:limit]


def weekly_summary(daily_data):
    """
    Headline numbers for a run of days (usually get_date_range(store, 7)).

    The average score is taken over every day in the range, including
    days without sessions.
    """
    scores = [d['average_score'] for d in daily_data]
    return {
        'total_minutes': sum(d['total_minutes'] for d in daily_data),
        'total_sessions': sum(d['total_sessions'] for d in daily_data),
        'average_score': sum(scores) / len(scores) if scores else 0,
        'active_days': sum(1 for d in daily_data if d['total_sessions'] > 0),
    }


def compare_latest(daily_data):
    """
    Score trend between the last two days.

    Returns:
        tuple: ('up' | 'down' | 'neutral', change in points)
    """
    if len(daily_data) < 2:
        return 'neutral', 0
    change = daily_data[-1]['average_score'] - daily_data[-2]['average_score']
    if change > config.TREND_THRESHOLD:
        return 'up', change
    if change < -config.TREND_THRESHOLD:
        return 'down', change
    return 'neutral', change


def _heat_level(poor_percent):
    if poor_percent >= 60:
        return 'severe'
    if poor_percent >= 40:
        return 'high'
    if poor_percent >= 20:
        return 'moderate'
    if poor_percent >= 10:
        return 'mild'
    return 'good'


def hourly_heatmap(daily_data):
    """
    Poor-posture share per hour of day across all given days.

    Returns:
        list: 24 dicts {hour, total_readings, good_percent, poor_percent, level};
        level is 'none' for hours without readings
    """
    rows = [entry for d in daily_data for entry in d['hourly_breakdown']]
    if rows:
        totals = pd.DataFrame(rows).groupby('hour').sum()
    else:
        totals = pd.DataFrame(columns=['good_count', 'moderate_count', 'poor_count',
                                       'total_readings'])

    heatmap = []
    for hour in range(24):
        if hour not in totals.index or totals.loc[hour, 'total_readings'] == 0:
            heatmap.append({'hour': hour, 'total_readings': 0, 'good_percent': 0.0,
                            'poor_percent': 0.0, 'level': 'none'})
            continue
        row = totals.loc[hour]
        total = int(row['total_readings'])
        poor_percent = float(row['poor_count']) / total * 100
        heatmap.append({
            'hour': hour,
            'total_readings': total,
            'good_percent': float(row['good_count']) / total * 100,
            'poor_percent': poor_percent,
            'level': _heat_level(poor_percent),
        })
    return heatmap


def generate_report_data(daily_data, start_date, end_date):
    """
    Summary numbers for an exported report.

    Args:
        daily_data: list of daily records
        start_date, end_date: Labels for the reporting period

    Returns:
        dict: period, totals and percentages (formatted like the PDF shows them)
    """
    frame = pd.DataFrame(daily_data, columns=['total_sessions', 'total_minutes', 'good_count',
                                              'moderate_count', 'poor_count', 'average_score'])
    totals = frame.sum(numeric_only=True)

    total_minutes = float(totals.get('total_minutes', 0))
    good = int(totals.get('good_count', 0))
    moderate = int(totals.get('moderate_count', 0))
    poor = int(totals.get('poor_count', 0))
    total = good + moderate + poor

    def percent(count):
        return f"{count / total * 100:.1f}" if total > 0 else "0"

    average_score = float(frame['average_score'].mean()) if len(frame) else 0.0

    return {
        'period': f"{start_date} to {end_date}",
        'total_sessions': int(totals.get('total_sessions', 0)),
        'total_minutes': round(total_minutes),
        'total_hours': f"{total_minutes / 60:.1f}",
        'good_percentage': percent(good),
        'moderate_percentage': percent(moderate),
        'poor_percentage': percent(poor),
        'average_score': f"{average_score:.0f}",
        'days_tracked': int((frame['total_sessions'] > 0).sum()),
    }
