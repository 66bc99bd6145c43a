"""
Snapverify - Failure Notification

- FailureNotifier: pages on-call (production only) and reports to Sentry
- init_sentry: one-time Sentry setup for the process
"""

from snapverify.notify.notifier import FailureNotifier, init_sentry

__all__ = [
    "FailureNotifier",
    "init_sentry",
]
