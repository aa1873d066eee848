from datetime import datetime

import pytest

from analytics import (calculate_score, calculate_streaks, compare_latest,
                       create_hourly_breakdown, days_tracked, empty_day, empty_history,
                       generate_report_data, get_custom_range, get_daily_data,
                       get_date_range, get_historical_data, hourly_heatmap,
                       save_session_to_history, weekly_summary)
from features import PostureReading, SessionData
from pdf_export import export_pdf
from posture_core import PostureStatus
from storage import KeyValueStore

GOOD, MODERATE, POOR = PostureStatus.GOOD, PostureStatus.MODERATE, PostureStatus.POOR


def ts(*args):
    """Local wall-clock time → epoch seconds"""
    return datetime(*args).timestamp()


def make_session(start, statuses, step=60):
    session = SessionData(start_time=start)
    for i, status in enumerate(statuses):
        session.readings.append(PostureReading(start + i * step, 10.0, status))
    session.good_count = statuses.count(GOOD)
    session.moderate_count = statuses.count(MODERATE)
    session.poor_count = statuses.count(POOR)
    return session


def day(date, score, sessions=1, **counts):
    record = empty_day(date)
    record.update(total_sessions=sessions, average_score=score, **counts)
    return record


@pytest.fixture
def store(tmp_path):
    return KeyValueStore(str(tmp_path / "store.json"))


# ---- History --------------------------------------------------------------

def test_history_defaults_when_missing_or_malformed(store):
    assert get_historical_data(store) == empty_history()
    store.set('analytics', "garbage")
    assert get_historical_data(store) == empty_history()


def test_history_score():
    assert calculate_score(0, 0, 0) == 0
    assert calculate_score(3, 0, 1) == 75
    assert calculate_score(1, 2, 1) == 50


def test_empty_session_is_not_saved(store):
    assert save_session_to_history(store, SessionData(start_time=0), now=10) is None
    assert 'analytics' not in store


def test_saved_session_record(store):
    start = ts(2024, 5, 1, 9, 0)
    session = make_session(start, [GOOD, GOOD, GOOD, POOR])

    record = save_session_to_history(store, session, now=start + 600)

    assert record['date'] == "2024-05-01"
    assert record['score'] == 75
    assert len(record['readings']) == 4
    assert record['readings'][3]['status'] == "Poor"

    history = get_historical_data(KeyValueStore(store.path))
    assert len(history['detailed_sessions']) == 1
    assert history['streak_data']['current_streak'] == 1


def test_old_sessions_fold_into_daily_summaries(store):
    first = ts(2024, 5, 1, 9, 0)
    save_session_to_history(store, make_session(first, [GOOD, POOR]), now=first + 1800)
    save_session_to_history(store, make_session(first + 600, [MODERATE]), now=first + 3600)

    later = ts(2024, 5, 20, 9, 0)
    save_session_to_history(store, make_session(later, [GOOD]), now=later + 60)

    history = get_historical_data(store)
    assert [s['date'] for s in history['detailed_sessions']] == ["2024-05-20"]
    assert len(history['daily_summaries']) == 1

    summary = history['daily_summaries'][0]
    assert summary['date'] == "2024-05-01"
    assert summary['total_sessions'] == 2
    assert summary['total_minutes'] == pytest.approx(30 + 50)
    assert (summary['good_count'], summary['moderate_count'], summary['poor_count']) == (1, 1, 1)
    assert summary['average_score'] == 50
    assert summary['hourly_breakdown'] == [
        {'hour': 9, 'good_count': 1, 'moderate_count': 1, 'poor_count': 1,
         'total_readings': 3}]

    assert get_daily_data(store, "2024-05-01") == summary
    assert days_tracked(history) == 2


def test_hourly_breakdown_buckets_by_local_hour():
    readings = [
        {'timestamp': ts(2024, 5, 1, 9, 10), 'angle': 4.0, 'status': "Good"},
        {'timestamp': ts(2024, 5, 1, 9, 50), 'angle': 18.0, 'status': "Poor"},
        {'timestamp': ts(2024, 5, 1, 10, 5), 'angle': 9.0, 'status': "Moderate"},
    ]
    breakdown = create_hourly_breakdown(readings)
    assert [b['hour'] for b in breakdown] == [9, 10]
    assert breakdown[0]['total_readings'] == 2
    assert breakdown[0]['poor_count'] == 1
    assert breakdown[1]['moderate_count'] == 1


def test_date_range_fills_empty_days(store):
    start = ts(2024, 5, 2, 14, 0)
    save_session_to_history(store, make_session(start, [GOOD, GOOD]), now=start + 120)

    days = get_date_range(store, 3, today="2024-05-03")
    assert [d['date'] for d in days] == ["2024-05-01", "2024-05-02", "2024-05-03"]
    assert [d['total_sessions'] for d in days] == [0, 1, 0]
    assert days[1]['average_score'] == 100

    custom = get_custom_range(store, "2024-04-28", "2024-05-03")
    assert [d['date'] for d in custom] == ["2024-05-02"]


# ---- Streaks --------------------------------------------------------------

def history_of(*days):
    history = empty_history()
    history['daily_summaries'] = list(days)
    return history


def test_calendar_gap_breaks_streak():
    streaks = calculate_streaks(history_of(
        day("2024-05-01", 80), day("2024-05-02", 70), day("2024-05-03", 65),
        day("2024-05-05", 90), day("2024-05-06", 60),
    ))
    assert streaks == {
        'current_streak': 2,
        'longest_streak': 3,
        'last_good_day': "2024-05-06",
        'total_good_days': 5,
    }


def test_bad_latest_day_clears_current_streak():
    streaks = calculate_streaks(history_of(
        day("2024-05-01", 80), day("2024-05-02", 75), day("2024-05-03", 40),
    ))
    assert streaks['current_streak'] == 0
    assert streaks['longest_streak'] == 2
    assert streaks['last_good_day'] == "2024-05-02"


def test_no_history_no_streaks():
    assert calculate_streaks(empty_history())['longest_streak'] == 0


# ---- Reports --------------------------------------------------------------

def test_weekly_summary_averages_over_all_days():
    summary = weekly_summary([
        day("2024-05-01", 80, total_minutes=30),
        empty_day("2024-05-02"),
        day("2024-05-03", 70, sessions=2, total_minutes=45),
    ])
    assert summary == {'total_minutes': 75, 'total_sessions': 3,
                       'average_score': 50, 'active_days': 2}


@pytest.mark.parametrize("previous, latest, trend", [
    (50, 60, 'up'),
    (50, 53, 'neutral'),
    (50, 45, 'neutral'),
    (50, 40, 'down'),
])
def test_compare_latest(previous, latest, trend):
    result = compare_latest([day("2024-05-01", previous), day("2024-05-02", latest)])
    assert result == (trend, latest - previous)


def test_compare_needs_two_days():
    assert compare_latest([day("2024-05-01", 90)]) == ('neutral', 0)


def test_hourly_heatmap_levels():
    monday = day("2024-05-06", 50)
    monday['hourly_breakdown'] = [
        {'hour': 9, 'good_count': 3, 'moderate_count': 2, 'poor_count': 5, 'total_readings': 10},
        {'hour': 14, 'good_count': 4, 'moderate_count': 0, 'poor_count': 0, 'total_readings': 4},
    ]
    tuesday = day("2024-05-07", 50)
    tuesday['hourly_breakdown'] = [
        {'hour': 9, 'good_count': 10, 'moderate_count': 0, 'poor_count': 0, 'total_readings': 10},
    ]

    heatmap = hourly_heatmap([monday, tuesday])
    assert len(heatmap) == 24
    assert heatmap[0]['level'] == 'none'
    assert heatmap[9]['total_readings'] == 20
    assert heatmap[9]['poor_percent'] == pytest.approx(25.0)
    assert heatmap[9]['level'] == 'moderate'
    assert heatmap[14]['level'] == 'good'


def test_heatmap_without_data():
    assert {h['level'] for h in hourly_heatmap([])} == {'none'}


def test_report_data():
    report = generate_report_data([
        day("2024-05-01", 80, total_minutes=30, good_count=4, moderate_count=1, poor_count=0),
        empty_day("2024-05-02"),
        day("2024-05-03", 60, sessions=2, total_minutes=90,
            good_count=2, moderate_count=1, poor_count=2),
    ], "2024-05-01", "2024-05-03")

    assert report['period'] == "2024-05-01 to 2024-05-03"
    assert report['total_sessions'] == 3
    assert report['total_minutes'] == 120
    assert report['total_hours'] == "2.0"
    assert report['good_percentage'] == "60.0"
    assert report['moderate_percentage'] == "20.0"
    assert report['poor_percentage'] == "20.0"
    assert report['average_score'] == "47"
    assert report['days_tracked'] == 2


def test_report_data_for_empty_period():
    report = generate_report_data([], "2024-05-01", "2024-05-07")
    assert report['good_percentage'] == "0"
    assert report['average_score'] == "0"
    assert report['total_sessions'] == 0


def test_export_pdf(tmp_path):
    daily = [
        day("2024-05-01", 80, total_minutes=30, good_count=4, moderate_count=1, poor_count=0),
        day("2024-05-02", 60, total_minutes=20, good_count=2, moderate_count=1, poor_count=2),
    ]
    report = generate_report_data(daily, "2024-05-01", "2024-05-02")
    streaks = calculate_streaks(history_of(*daily))

    path = export_pdf(report, daily, str(tmp_path / "reports" / "report.pdf"), streaks)

    with open(path, 'rb') as f:
        assert f.read(4) == b'%PDF'
