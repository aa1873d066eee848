# features.py - User-facing features (Alerts, Breaks, Session, Achievements)

import csv
import io
import logging
import os
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, NamedTuple

from plyer import notification, tts

import configure_setting as config
from posture_core import PostureStatus

logger = logging.getLogger(__name__)


# ============================================================================
# NOTIFIER (Desktop toast + voice)
# ============================================================================
class Notifier:
    """Sends desktop notifications and spoken prompts through plyer."""

    def notify(self, title, message, timeout=5):
        try:
            notification.notify(title=title, message=message, timeout=timeout)
            return True
        except Exception as e:
            print(f"⚠️  Notification failed: {e}")
            return False

    def speak(self, text):
        try:
            tts.speak(text)
            return True
        except Exception as e:
            print(f"⚠️  Voice prompt failed: {e}")
            return False

    def chime(self):
        # Terminal bell
        print("\a", end="", flush=True)


# ============================================================================
# ALERT MANAGER (One nudge per transition, no spam)
# ============================================================================
class AlertManager:
    """
    Reacts to posture status transitions.

    Register on_status_change with PostureClassifier.add_listener(); the
    classifier only calls it when the status actually changes, so holding
    poor posture produces a single nudge.
    """

    def __init__(self, settings, notifier):
        self.settings = settings
        self.notifier = notifier
        self.alert_count = 0

    def on_status_change(self, classification):
        if classification.status != PostureStatus.POOR or not self.settings.nudges_enabled:
            return

        self.notifier.notify("❗ Posture Alert", "Time for a stretch break!")
        if self.settings.sound_enabled:
            self.notifier.chime()
        if self.settings.voice_enabled:
            self.notifier.speak("Posture alert. Please sit up straight.")
        self.alert_count += 1
        print(f"🔔 Alert sent (#{self.alert_count})")

    def get_stats(self):
        """Get alert statistics"""
        return {'total_alerts': self.alert_count}


# ============================================================================
# BREAK REMINDER (Suggests regular breaks)
# ============================================================================
class BreakReminder:
    """Reminds the user to stand up every `break_interval` minutes."""

    def __init__(self, settings, notifier, now=None):
        self.settings = settings
        self.notifier = notifier
        self.break_count = 0
        self.reset(now)

    def reset(self, now=None):
        """Restart the countdown (called when monitoring starts)."""
        now = time.time() if now is None else now
        self.last_break = now
        self.next_break = now + self.settings.break_interval * 60

    def check(self, now=None):
        """
        Call this periodically. Sends a reminder when the interval is up.

        Returns:
            bool: True if a reminder was sent
        """
        if not self.settings.break_reminders:
            return False

        now = time.time() if now is None else now
        if now < self.next_break:
            return False

        self.notifier.notify("☕ Break Time!",
                             "You've been sitting for a while. Take a 2-minute break!",
                             timeout=10)
        if self.settings.voice_enabled:
            self.notifier.speak("Time for a break! Stand up and stretch.")

        self.break_count += 1
        self.reset(now)
        print(f"🧘 Break reminder sent (#{self.break_count})")
        return True

    def get_stats(self, now=None):
        """Get break statistics"""
        now = time.time() if now is None else now
        return {
            'total_breaks': self.break_count,
            'sitting_time': now - self.last_break,
            'time_until_next_break': max(0, self.next_break - now),
        }


# ============================================================================
# SESSION RECORDER (Tracks posture over time)
# ============================================================================
class PostureReading(NamedTuple):
    timestamp: float
    angle: float
    status: PostureStatus


@dataclass
class SessionData:
    """One monitoring session: recent readings plus running counters."""
    start_time: float = field(default_factory=time.time)
    readings: List[PostureReading] = field(default_factory=list)
    good_count: int = 0
    moderate_count: int = 0
    poor_count: int = 0

    @property
    def total_count(self):
        return self.good_count + self.moderate_count + self.poor_count


def session_score(good, moderate, poor):
    """
    0-100 live posture score.

    Formula: (Good×100 + Moderate×60 + Poor×20) / Total
    """
    total = good + moderate + poor
    if total == 0:
        return 0
    return round((good * 100 + moderate * 60 + poor * 20) / total)


def score_label(score):
    if score >= 90:
        return "Excellent"
    if score >= 80:
        return "Great"
    if score >= 70:
        return "Good"
    if score >= 60:
        return "Fair"
    return "Needs Work"


def format_timestamp(timestamp):
    """Epoch seconds → ISO-8601 UTC with milliseconds, e.g. 2024-05-01T09:30:00.000Z"""
    moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return moment.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def readings_to_csv(readings):
    """Render readings as CSV text: Timestamp,Angle,Status"""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator='\n')
    writer.writerow(['Timestamp', 'Angle', 'Status'])
    for reading in readings:
        writer.writerow([format_timestamp(reading.timestamp),
                         f"{reading.angle:.2f}",
                         str(reading.status)])
    return buffer.getvalue()


class SessionRecorder:
    """
    Appends one reading per classified frame and keeps the counters.

    Only the last LIVE_READINGS_CAP readings are kept for display; the
    counters cover the whole session.
    """

    def __init__(self, cap=config.LIVE_READINGS_CAP, now=None):
        self.cap = cap
        self.reset(now)

    def reset(self, now=None):
        """Start a fresh session (monitoring (re)started)."""
        self.session = SessionData(start_time=time.time() if now is None else now)

    def record(self, classification, timestamp=None):
        """
        Record a data point for every classified frame.

        Args:
            classification: Classification from PostureClassifier.update()
            timestamp: Epoch seconds (defaults to now)

        Returns:
            PostureReading
        """
        timestamp = time.time() if timestamp is None else timestamp
        reading = PostureReading(timestamp, classification.smoothed_angle,
                                 classification.status)

        session = self.session
        session.readings.append(reading)
        if len(session.readings) > self.cap:
            del session.readings[:-self.cap]

        if reading.status == PostureStatus.GOOD:
            session.good_count += 1
        elif reading.status == PostureStatus.MODERATE:
            session.moderate_count += 1
        elif reading.status == PostureStatus.POOR:
            session.poor_count += 1

        return reading

    def get_score(self):
        s = self.session
        return session_score(s.good_count, s.moderate_count, s.poor_count)

    def get_summary(self, now=None):
        """
        Get detailed session statistics.

        Returns:
            dict: Statistics about this session
        """
        s = self.session
        total = s.total_count
        now = time.time() if now is None else now

        def percent(count):
            return round(count / total * 100, 1) if total else 0

        return {
            'duration': now - s.start_time,
            'data_points': total,
            'score': self.get_score(),
            'good_percent': percent(s.good_count),
            'moderate_percent': percent(s.moderate_count),
            'poor_percent': percent(s.poor_count),
            'good_count': s.good_count,
            'moderate_count': s.moderate_count,
            'poor_count': s.poor_count,
        }

    def save_csv(self, directory=config.SESSIONS_DIR, now=None):
        """
        Export the retained readings to CSV.
        Creates file in data/sessions/ directory.

        Returns:
            str: Path of the written file, or None if there was nothing to save
        """
        if not self.session.readings:
            print("⚠️  No data to export (session too short)")
            return None

        now = time.time() if now is None else now
        os.makedirs(directory, exist_ok=True)
        filename = os.path.join(directory, f"spine-guard-session-{int(now * 1000)}.csv")

        try:
            with open(filename, 'w', newline='') as f:
                f.write(readings_to_csv(self.session.readings))
        except OSError as e:
            print(f"❌ Failed to export session: {e}")
            return None

        print(f"✅ Session exported: {filename}")
        return filename

    def print_summary(self):
        summary = self.get_summary()

        print("\n" + "="*60)
        print("📊 SESSION SUMMARY")
        print("="*60)
        print(f"Duration: {summary['duration']/60:.1f} minutes")
        print(f"Data points: {summary['data_points']}")
        print(f"Posture Score: {summary['score']}/100 ({score_label(summary['score'])})")
        print(f"\nPosture Distribution:")
        print(f"  GOOD:     {summary['good_count']} ({summary['good_percent']}%)")
        print(f"  MODERATE: {summary['moderate_count']} ({summary['moderate_percent']}%)")
        print(f"  POOR:     {summary['poor_count']} ({summary['poor_percent']}%)")
        print("="*60)


# ============================================================================
# ACHIEVEMENTS
# ============================================================================
DEFAULT_ACHIEVEMENTS = [
    {'id': 'first-session', 'title': 'First Steps',
     'description': 'Complete your first monitoring session', 'icon': 'star'},
    {'id': 'good-streak-5', 'title': 'Steady Start',
     'description': 'Maintain good posture for 5 minutes', 'icon': 'target'},
    {'id': 'good-streak-15', 'title': 'Getting Strong',
     'description': 'Maintain good posture for 15 minutes', 'icon': 'zap'},
    {'id': 'good-streak-30', 'title': 'Posture Master',
     'description': 'Maintain good posture for 30 minutes', 'icon': 'trophy'},
    {'id': 'calibrated', 'title': 'Personalized',
     'description': 'Complete your calibration', 'icon': 'award'},
    {'id': 'week-warrior', 'title': 'Consistency King',
     'description': 'Use Spine Guard for 7 days', 'icon': 'crown'},
]


class AchievementTracker:
    """Unlocks achievements once each and persists them."""

    def __init__(self, store, notifier):
        self.store = store
        self.notifier = notifier
        self.good_streak_start = None
        self.achievements = self._load()

    def _load(self):
        saved = {a.get('id'): a for a in self.store.get(config.KEY_ACHIEVEMENTS, [])
                 if isinstance(a, dict)}
        achievements = []
        for default in DEFAULT_ACHIEVEMENTS:
            entry = dict(default, unlocked=False, unlocked_at=None)
            previous = saved.get(default['id'])
            if previous and previous.get('unlocked'):
                entry['unlocked'] = True
                entry['unlocked_at'] = previous.get('unlocked_at')
            achievements.append(entry)
        return achievements

    def is_unlocked(self, achievement_id):
        return any(a['id'] == achievement_id and a['unlocked'] for a in self.achievements)

    def unlock(self, achievement_id, now=None):
        """
        Unlock an achievement if it is still locked.

        Returns:
            dict: The achievement just unlocked, or None
        """
        for achievement in self.achievements:
            if achievement['id'] != achievement_id:
                continue
            if achievement['unlocked']:
                return None
            achievement['unlocked'] = True
            achievement['unlocked_at'] = time.time() if now is None else now
            self.store.set(config.KEY_ACHIEVEMENTS, self.achievements)
            self.notifier.notify("🏆 Achievement Unlocked!", achievement['title'])
            print(f"🏆 Achievement unlocked: {achievement['title']}")
            return achievement

        logger.warning("Unknown achievement id %r", achievement_id)
        return None

    def on_reading(self, reading):
        """Track the good-posture streak and first-session milestone."""
        now = reading.timestamp
        if reading.status == PostureStatus.GOOD:
            if self.good_streak_start is None:
                self.good_streak_start = now
            else:
                minutes = (now - self.good_streak_start) / 60
                for milestone in config.STREAK_MILESTONES:
                    if minutes >= milestone:
                        self.unlock(f"good-streak-{milestone}", now)
        else:
            self.good_streak_start = None

        self.unlock('first-session', now)

    def on_calibrated(self, now=None):
        self.unlock('calibrated', now)

    def on_history(self, days_tracked, now=None):
        if days_tracked >= config.WEEK_WARRIOR_DAYS:
            self.unlock('week-warrior', now)


# ============================================================================
# ADVICE & DETECTION QUALITY
# ============================================================================
ADVICE = {
    PostureStatus.GOOD: ("Excellent Posture!", [
        "Keep up the great work! Your spine will thank you.",
        "Remember to take a micro-break in 30 minutes.",
        "Stay hydrated and keep those shoulders relaxed.",
    ]),
    PostureStatus.MODERATE: ("Small Adjustment Needed", [
        "Roll your shoulders back gently.",
        "Sit up tall for 30 seconds and take a deep breath.",
        "Check that your screen is at eye level.",
        "Make sure your feet are flat on the floor.",
    ]),
    PostureStatus.POOR: ("Time for a Reset", [
        "Stand up and stretch for 30 seconds.",
        "Pull your shoulder blades together 3 times, hold for 10s each.",
        "Walk around for a minute to reset your posture.",
        "Do neck rolls: 5 slow circles in each direction.",
        "Adjust your chair height or screen position.",
    ]),
    PostureStatus.UNCALIBRATED: ("Get Started", [
        "Complete the calibration to get personalized feedback.",
        "Make sure your camera has a clear view of your upper body.",
        "Sit in your usual working position before calibrating.",
    ]),
}


def get_advice(status):
    """Returns (title, tips) for a posture status."""
    return ADVICE[status]


def detection_quality(confidence):
    """
    Map pose confidence to a display label and optional tip.

    Advisory only; a low value never suppresses a reading.

    Returns:
        tuple: (label, tip or None)
    """
    if confidence >= config.QUALITY_EXCELLENT:
        return "Excellent", None
    if confidence >= config.QUALITY_GOOD:
        return "Good", None
    return "Low", "Ensure good lighting and position yourself fully in frame"
