# main.py - Spine Guard Posture Monitor (Main Application)

import argparse
import logging
import os
import sys
import time
from datetime import date, timedelta

import cv2

import analytics
import configure_setting as config
from features import (AchievementTracker, AlertManager, BreakReminder, Notifier,
                      SessionRecorder, detection_quality, get_advice, score_label)
from pdf_export import export_pdf
from posture_core import (FrameGate, PostureClassifier, PostureStatus, load_calibration,
                          save_calibration, torso_angle)
from storage import KeyValueStore

STATUS_COLORS = {
    PostureStatus.GOOD: config.COLOR_GOOD,
    PostureStatus.MODERATE: config.COLOR_MODERATE,
    PostureStatus.POOR: config.COLOR_POOR,
    PostureStatus.UNCALIBRATED: config.COLOR_NEUTRAL,
}


def print_banner():
    """Print startup banner"""
    print("\n" + "="*60)
    print("🦴 SPINE GUARD POSTURE MONITOR")
    print("="*60)
    print("Real-time torso angle tracking using MediaPipe")
    print("="*60 + "\n")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Personal posture monitor")
    parser.add_argument(
        'command',
        nargs='?',
        default='monitor',
        choices=['monitor', 'report', 'export-pdf'],
        help='monitor live (default), print a report, or export a PDF report'
    )
    parser.add_argument('--camera', type=int, default=config.CAMERA_INDEX,
                        help='webcam index')
    parser.add_argument('--model', default=config.MODEL_PATH,
                        help='path to the MediaPipe pose_landmarker .task file')
    parser.add_argument('--mode', choices=config.POSTURE_MODES,
                        help='posture mode (saved to settings)')
    parser.add_argument('--sensitivity', type=float,
                        help='smoothing sensitivity 0-1 (saved to settings)')
    parser.add_argument('--data-dir', dest='data_dir', default=config.DATA_DIR,
                        help='directory for settings, history and exports')
    parser.add_argument('--days', type=int, default=7,
                        help='number of days covered by report / export-pdf')
    parser.add_argument('--output', help='PDF output path for export-pdf')
    parser.add_argument('--verbose', action='store_true', help='debug logging')
    return parser.parse_args(argv)


def open_store(data_dir):
    return KeyValueStore(os.path.join(data_dir, os.path.basename(config.STORE_FILE)))


def load_user_settings(store, args):
    """Load saved settings and apply command-line overrides."""
    settings = config.load_settings(store)
    changed = False
    if args.mode:
        settings.posture_mode = args.mode
        changed = True
    if args.sensitivity is not None:
        settings.sensitivity = min(1.0, max(0.0, args.sensitivity))
        changed = True
    if changed:
        config.save_settings(store, settings)
    return settings


class Monitor:
    """Wires the pipeline: detector → extractor → classifier → features."""

    def __init__(self, store, settings, detector, notifier):
        self.store = store
        self.settings = settings
        self.detector = detector
        self.notifier = notifier

        self.classifier = PostureClassifier(load_calibration(store))
        self.gate = FrameGate()
        self.alerts = AlertManager(settings, notifier)
        self.breaks = BreakReminder(settings, notifier)
        self.recorder = SessionRecorder()
        self.achievements = AchievementTracker(store, notifier)
        self.classifier.add_listener(self.alerts.on_status_change)

        self.active = False
        self.confidence = 0.0
        self.neck_angle = None
        self.last_result = None

    # ---- lifecycle -------------------------------------------------------
    def start(self):
        self.recorder.reset()
        self.breaks.reset()
        self.active = True
        print("▶️  Monitoring started")

    def stop(self):
        """Stop feeding frames and hand the session to the history store."""
        if not self.active:
            return
        self.active = False
        print("⏸️  Monitoring stopped")
        self.recorder.print_summary()
        if analytics.save_session_to_history(self.store, self.recorder.session):
            history = analytics.get_historical_data(self.store)
            self.achievements.on_history(analytics.days_tracked(history))
            print("💾 Session saved to history")

    # ---- per frame -------------------------------------------------------
    def process(self, landmarks, confidence, neck, now):
        """
        Run one frame through the pipeline.

        Returns:
            Classification, or None if the frame was skipped
        """
        self.confidence = confidence
        self.neck_angle = neck

        if not self.active:
            return None

        # Frames without a torso must not use up the gate slot
        angle = torso_angle(landmarks)
        if angle is None or not self.gate.ready(now * 1000):
            return None

        result = self.classifier.update(angle, self.settings.sensitivity,
                                        self.settings.posture_mode)
        reading = self.recorder.record(result, now)
        self.achievements.on_reading(reading)
        self.breaks.check(now)
        self.last_result = result
        return result

    # ---- calibration -----------------------------------------------------
    def capture_neutral(self):
        if not self.classifier.capture_neutral():
            print("⚠️  No angle yet - start monitoring and face the camera")
            return
        save_calibration(self.store, self.classifier.calibration)
        self.notifier.notify("✓ Neutral Position Captured",
                             f"Angle: {self.classifier.last_raw_angle:.1f}°")
        print(f"✅ Neutral captured: {self.classifier.last_raw_angle:.1f}°")

    def capture_slouch(self):
        if not self.classifier.capture_slouch():
            print("⚠️  Capture your neutral posture first (press 'n')")
            return
        save_calibration(self.store, self.classifier.calibration)
        self.notifier.notify("✓ Calibration Complete",
                             "Spine Guard is now personalized for you!")
        print(f"✅ Calibration complete: {self.classifier.calibration!r}")
        self.achievements.on_calibrated()


def setup_camera(index):
    """
    Initialize camera with configured settings.

    Returns:
        cv2.VideoCapture: Camera object or None if failed
    """
    print("📹 Starting camera...")

    cap = cv2.VideoCapture(index)

    if not cap.isOpened():
        print("❌ Cannot access camera")
        print("   Possible fixes:")
        print("   - Check camera is connected")
        print("   - Close other apps using camera")
        print("   - Try another index: --camera 1")
        return None

    cap.set(cv2.CAP_PROP_FRAME_WIDTH, config.CAMERA_WIDTH)
    cap.set(cv2.CAP_PROP_FRAME_HEIGHT, config.CAMERA_HEIGHT)

    ret, _ = cap.read()
    if not ret:
        print("❌ Camera opened but cannot read frames")
        cap.release()
        return None

    actual_width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
    actual_height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
    print(f"✅ Camera ready: {actual_width}x{actual_height}\n")

    return cap


def draw_panel(frame, top_left, bottom_right, color):
    """Blend a translucent rectangle into the frame"""
    overlay = frame.copy()
    cv2.rectangle(overlay, top_left, bottom_right, color, thickness=-1)
    cv2.addWeighted(overlay, config.PANEL_ALPHA, frame, 1 - config.PANEL_ALPHA, 0, dst=frame)


def display_ui(frame, raw_landmarks, monitor, fps):
    """
    Draw all UI elements on frame.

    Args:
        frame: OpenCV image to draw on
        raw_landmarks: Landmark list from the detector (or None)
        monitor: Monitor holding the current pipeline state
        fps: Current frames per second
    """
    settings = monitor.settings
    status = monitor.classifier.current_status
    color = STATUS_COLORS[status]
    panel_color, text_color = settings.overlay_colors
    height, width = frame.shape[:2]

    if raw_landmarks is not None and settings.show_overlay:
        monitor.detector.draw_skeleton(frame, raw_landmarks)

    draw_panel(frame, (0, 0), (width, 235), panel_color)
    draw_panel(frame, (0, height - 65), (width, height), panel_color)

    if not monitor.active:
        cv2.putText(frame, "Paused - press SPACE to start", (10, 60),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.9, text_color, 2)
    elif raw_landmarks is None:
        cv2.putText(frame, 'No person detected', (10, 60),
                    cv2.FONT_HERSHEY_SIMPLEX, 1, config.COLOR_POOR, 2)
        cv2.putText(frame, 'Face the camera', (10, 100),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.8, config.COLOR_POOR, 2)
    else:
        cv2.putText(frame, f'Posture: {status}', (10, 60),
                    cv2.FONT_HERSHEY_SIMPLEX, 1.2, color, 3)
        cv2.putText(frame, f'Angle: {monitor.classifier.smoothed_angle:.1f} deg', (10, 100),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.8, color, 2)
        score = monitor.recorder.get_score()
        cv2.putText(frame, f'Score: {score}/100 {score_label(score)}', (10, 140),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.8, (0, 255, 255), 2)

        quality, tip = detection_quality(monitor.confidence)
        cv2.putText(frame, f'Detection: {quality} ({monitor.confidence:.0%})', (10, 175),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.6, text_color, 1)
        if monitor.neck_angle is not None:
            cv2.putText(frame, f'Neck: {monitor.neck_angle:.1f} deg', (10, 200),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.6, text_color, 1)
        if tip:
            cv2.putText(frame, tip, (10, 225),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.5, config.COLOR_MODERATE, 1)

    title, tips = get_advice(status)
    cv2.putText(frame, f'{title} {tips[0]}', (10, height - 45),
                cv2.FONT_HERSHEY_SIMPLEX, 0.45, text_color, 1)

    cv2.putText(frame, f'FPS: {fps:.1f}  Mode: {settings.posture_mode}', (10, 30),
                cv2.FONT_HERSHEY_SIMPLEX, 0.7, text_color, 2)
    cv2.putText(frame, "SPACE start/stop  n neutral  s slouch  m mode  t theme  e export  q quit",
                (10, height - 20), cv2.FONT_HERSHEY_SIMPLEX, 0.45, text_color, 1)


def handle_key(key, monitor, sessions_dir):
    """
    React to a key press.

    Returns:
        bool: False when the user asked to quit
    """
    if key == ord('q'):
        print("\n👋 Stopping...")
        return False
    if key == ord(' '):
        if monitor.active:
            monitor.stop()
        else:
            monitor.start()
    elif key == ord('n'):
        monitor.capture_neutral()
    elif key == ord('s'):
        monitor.capture_slouch()
    elif key == ord('m'):
        mode = monitor.settings.toggle_mode()
        config.save_settings(monitor.store, monitor.settings)
        print(f"🔁 Posture mode: {mode}")
    elif key == ord('t'):
        theme = monitor.settings.toggle_theme()
        config.save_settings(monitor.store, monitor.settings)
        print(f"🎨 Overlay theme: {theme}")
    elif key == ord('e'):
        monitor.recorder.save_csv(sessions_dir)
    elif key in (ord('+'), ord('=')):
        monitor.settings.sensitivity = min(1.0, monitor.settings.sensitivity + 0.1)
        config.save_settings(monitor.store, monitor.settings)
        print(f"🎚️  Sensitivity: {monitor.settings.sensitivity:.0%}")
    elif key == ord('-'):
        monitor.settings.sensitivity = max(0.0, monitor.settings.sensitivity - 0.1)
        config.save_settings(monitor.store, monitor.settings)
        print(f"🎚️  Sensitivity: {monitor.settings.sensitivity:.0%}")
    return True


def main_loop(cap, monitor, sessions_dir):
    """
    Main application loop - processes frames until user quits.

    Args:
        cap: OpenCV VideoCapture
        monitor: Monitor instance
        sessions_dir: Where CSV exports go
    """
    from pose_detector import extract_frame

    print("🚀 Ready!")
    print("   - SPACE starts/stops monitoring")
    print("   - 'n' captures neutral posture, 's' captures slouch")
    print("   - Press 'q' to quit and save the session\n")

    fps_list = []
    monitor.start()

    try:
        while cap.isOpened():
            frame_start = time.time()

            ret, frame = cap.read()
            if not ret:
                print("❌ Failed to grab frame")
                break

            raw_landmarks = monitor.detector.detect(frame, frame_start * 1000)
            if raw_landmarks is not None:
                height, width = frame.shape[:2]
                landmarks, confidence, neck = extract_frame(raw_landmarks, width, height)
                monitor.process(landmarks, confidence, neck, frame_start)

            frame_time = time.time() - frame_start
            fps = 1 / frame_time if frame_time > 0 else 0
            fps_list.append(fps)

            display_ui(frame, raw_landmarks, monitor, fps)
            cv2.imshow('Spine Guard', frame)

            if not handle_key(cv2.waitKey(1) & 0xFF, monitor, sessions_dir):
                break

    except KeyboardInterrupt:
        print("\n👋 Interrupted by user...")
    finally:
        if fps_list:
            avg_fps = sum(fps_list) / len(fps_list)
            print(f"\n⚡ Performance: {avg_fps:.1f} FPS average")
            if avg_fps < config.MIN_FPS:
                print(f"⚠️  FPS below minimum ({config.MIN_FPS})")
                print("   - Close other applications")
                print("   - Improve lighting (helps detection speed)")


def cleanup_and_save(cap, monitor):
    """
    Clean up resources and save session data.
    """
    print("\n🧹 Cleaning up...")

    if cap:
        cap.release()
    cv2.destroyAllWindows()
    monitor.detector.close()

    monitor.stop()


def run_monitor(args, store):
    from pose_detector import PoseDetector

    settings = load_user_settings(store, args)
    calibration = load_calibration(store)
    if calibration.captured_slouch:
        print(f"✅ Loaded calibration: {calibration!r}")
    else:
        print("⚠️  No calibration found - using default thresholds")
        print("   Tip: press 'n' in your best posture, then 's' while slouching\n")

    try:
        detector = PoseDetector(args.model)
    except (FileNotFoundError, RuntimeError, ValueError) as e:
        print(f"❌ Pose model failed to load: {e}")
        print("   Check that all dependencies are installed:")
        print("   pip install -e .")
        sys.exit(1)

    monitor = Monitor(store, settings, detector, Notifier())

    cap = setup_camera(args.camera)
    if cap is None:
        detector.close()
        print("\n❌ Cannot start without camera. Exiting.")
        sys.exit(1)

    try:
        main_loop(cap, monitor, os.path.join(args.data_dir, "sessions"))
    finally:
        cleanup_and_save(cap, monitor)

    print("\n✅ Session complete. Thank you for using Spine Guard!\n")


def run_report(args, store):
    """Print today's report, the period summary and streaks."""
    history = analytics.get_historical_data(store)
    today = date.today()
    days = analytics.get_date_range(store, args.days, today)
    summary = analytics.weekly_summary(days)
    streaks = history['streak_data']

    print("="*60)
    print(f"📅 LAST {args.days} DAYS")
    print("="*60)
    print(f"Average score: {summary['average_score']:.0f}")
    print(f"Sessions: {summary['total_sessions']}  "
          f"Time: {summary['total_minutes']:.0f} min  Active days: {summary['active_days']}")

    trend, change = analytics.compare_latest(days)
    arrow = {'up': '📈', 'down': '📉', 'neutral': '➖'}[trend]
    print(f"Day over day: {arrow} {change:+.0f}")

    print(f"\n🔥 Current streak: {streaks['current_streak']} days  "
          f"🏆 Longest: {streaks['longest_streak']} days  "
          f"Good days: {streaks['total_good_days']}")

    daily = analytics.get_daily_data(store, today.isoformat())
    print("\n" + "-"*60)
    if daily is None:
        print("No sessions recorded today.")
    else:
        percents = analytics.status_percentages(daily)
        print(f"Today: score {daily['average_score']} "
              f"({analytics.daily_score_label(daily['average_score'])}), "
              f"{round(daily['total_minutes'])} min over {daily['total_sessions']} sessions")
        print(f"  Good {percents['good']:.0f}%  Moderate {percents['moderate']:.0f}%  "
              f"Poor {percents['poor']:.0f}%")
        peaks = ", ".join(f"{h['hour']}:00" for h in analytics.peak_hours(daily))
        print(f"  Peak hours: {peaks}")

    worst = [h for h in analytics.hourly_heatmap(days) if h['level'] in ('high', 'severe')]
    if worst:
        print("\n⚠️  Hours with the most poor posture: "
              + ", ".join(f"{h['hour']}:00 ({h['poor_percent']:.0f}%)" for h in worst))
    print("="*60)


def run_export_pdf(args, store):
    end = date.today()
    start = end - timedelta(days=args.days - 1)
    daily = analytics.get_custom_range(store, start, end)
    report = analytics.generate_report_data(daily, start.isoformat(), end.isoformat())

    output = args.output or os.path.join(
        args.data_dir, "reports", f"posture-report-{start.isoformat()}-to-{end.isoformat()}.pdf")
    streaks = analytics.get_historical_data(store)['streak_data']
    try:
        export_pdf(report, daily, output, streaks)
    except OSError as e:
        print(f"❌ Failed to generate PDF report: {e}")
        sys.exit(1)
    print(f"✅ Report saved: {output}")


def main(argv=None):
    """Main entry point"""
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(asctime)s %(name)s %(levelname)s %(message)s")

    store = open_store(args.data_dir)

    if args.command == 'report':
        run_report(args, store)
    elif args.command == 'export-pdf':
        run_export_pdf(args, store)
    else:
        print_banner()
        run_monitor(args, store)


if __name__ == "__main__":
    main()
