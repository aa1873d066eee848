# pdf_export.py - Printable posture report (matplotlib → PDF)

import logging
import os

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
from matplotlib.backends.backend_pdf import PdfPages

from analytics import daily_score_label

logger = logging.getLogger(__name__)

A4_INCHES = (8.27, 11.69)
STATUS_COLORS = {
    'good': '#22c55e',
    'moderate': '#f59e0b',
    'poor': '#ef4444',
}


def _summary_page(pdf, report, streaks):
    fig = plt.figure(figsize=A4_INCHES)
    fig.text(0.08, 0.92, "Spine Guard Posture Report", fontsize=22, weight='bold')
    fig.text(0.08, 0.88, report['period'], fontsize=12, color='#555555')

    lines = [
        ("Average score", f"{report['average_score']} "
                          f"({daily_score_label(float(report['average_score']))})"),
        ("Sessions", str(report['total_sessions'])),
        ("Time tracked", f"{report['total_hours']} h ({report['total_minutes']} min)"),
        ("Days tracked", str(report['days_tracked'])),
        ("Good posture", f"{report['good_percentage']}%"),
        ("Moderate posture", f"{report['moderate_percentage']}%"),
        ("Poor posture", f"{report['poor_percentage']}%"),
    ]
    if streaks:
        lines += [
            ("Current streak", f"{streaks['current_streak']} days"),
            ("Longest streak", f"{streaks['longest_streak']} days"),
            ("Good days", str(streaks['total_good_days'])),
        ]

    y = 0.80
    for label, value in lines:
        fig.text(0.10, y, label, fontsize=12)
        fig.text(0.55, y, value, fontsize=12, weight='bold')
        y -= 0.04

    pdf.savefig(fig)
    plt.close(fig)


def _daily_chart_page(pdf, daily_data):
    fig, (counts_ax, score_ax) = plt.subplots(2, 1, figsize=A4_INCHES)
    labels = [d['date'][5:] for d in daily_data]
    positions = range(len(daily_data))

    bottom = [0] * len(daily_data)
    for status, color in STATUS_COLORS.items():
        values = [d[f'{status}_count'] for d in daily_data]
        counts_ax.bar(positions, values, bottom=bottom, color=color, label=status.title())
        bottom = [b + v for b, v in zip(bottom, values)]
    counts_ax.set_title("Readings per day")
    counts_ax.set_xticks(list(positions))
    counts_ax.set_xticklabels(labels, rotation=45)
    counts_ax.legend()

    score_ax.plot(list(positions), [d['average_score'] for d in daily_data],
                  marker='o', color='#3b82f6')
    score_ax.set_title("Daily score")
    score_ax.set_ylim(0, 100)
    score_ax.set_xticks(list(positions))
    score_ax.set_xticklabels(labels, rotation=45)
    score_ax.grid(alpha=0.3)

    fig.tight_layout()
    pdf.savefig(fig)
    plt.close(fig)


def export_pdf(report, daily_data, path, streaks=None):
    """
    Write a posture report to a PDF file.

    Args:
        report: dict from analytics.generate_report_data()
        daily_data: list of daily records covering the report period
        path: Output file path
        streaks: Optional streak_data to include on the summary page

    Returns:
        str: The written path
    """
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    with PdfPages(path) as pdf:
        _summary_page(pdf, report, streaks)
        if daily_data:
            _daily_chart_page(pdf, daily_data)

    logger.info("Wrote PDF report to %s", path)
    return path
