"""
Desktop notifications for IAN.

Uses notify-send (freedesktop compliant) for notifications.
Works with mako, dunst, GNOME, KDE notification daemons.
"""

import subprocess
import shutil
import logging

logger = logging.getLogger(__name__)


VALID_URGENCIES = ("low", "normal", "critical")

MAX_NOTIFICATION_LENGTH = 200


def notify(title: str, message: str, urgency: str = "normal"):
    """
    Send desktop notification.

    Args:
        title: Notification title
        message: Notification body
        urgency: One of "low", "normal", "critical"
    """
    if urgency not in VALID_URGENCIES:
        logger.warning(f"Invalid urgency '{urgency}', using 'normal'")
        urgency = "normal"

    if not shutil.which("notify-send"):
        logger.debug("notify-send not found, skipping notification")
        return

    try:
        result = subprocess.run([
            "notify-send",
            "--urgency", urgency,
            "--app-name", "IAN",
            title,
            message
        ], capture_output=True, text=True, timeout=5)

        if result.returncode != 0:
            logger.warning(f"notify-send failed (exit {result.returncode}): {result.stderr}")
    except subprocess.TimeoutExpired:
        logger.warning("notify-send timed out")
    except OSError as e:
        logger.warning(f"Failed to run notify-send: {e}")


def _truncate(text: str) -> str:
    if len(text) > MAX_NOTIFICATION_LENGTH:
        return text[:MAX_NOTIFICATION_LENGTH] + "..."
    return text


def notify_pipeline_complete(job_id: str, title: str):
    """Notify that all documents for a job were generated."""
    notify(f"IAN: {job_id}", _truncate(f"Documents ready: {title}"), "low")


def notify_pipeline_failed(job_id: str, step: str):
    """Notify that a pipeline run stopped at a step."""
    notify(f"IAN: {job_id}", _truncate(f"Failed at {step}"), "critical")


def notify_grading_complete(job_id: str, ready: int, total: int):
    """Notify that a grading job finished."""
    notify(f"IAN: {job_id}", f"Grading complete: {ready}/{total} ready for handoff", "normal")
