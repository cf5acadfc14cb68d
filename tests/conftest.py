# tests/conftest.py

import pytest

from scheduler import MultiQueueScheduler, SchedulerConfig


@pytest.fixture()
def make_scheduler():
    """
    Build a scheduler with test-friendly settings.

    The admission pause defaults to 0 here so tick counts stay easy to
    reason about; tests about the pause pass `pause_units` explicitly.
    """

    def _make(tasks=None, **settings):
        settings.setdefault("pause_units", 0)
        return MultiQueueScheduler(SchedulerConfig(**settings), tasks)

    return _make
