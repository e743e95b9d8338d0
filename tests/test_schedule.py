# -*- coding: utf-8 -*-
"""
Scheduler / Clock Tests
=======================

Tests for spotbot/utils/schedule.py, spotbot/utils/clock.py
"""
import pytest
from spotbot.utils.clock import ManualClock, SystemClock
from spotbot.utils.schedule import PeriodicCheck, prune_window, window_elapsed, window_total

T0 = 1_700_000_000.0


class TestPeriodicCheck:
    """PeriodicCheck 테스트"""

    def test_due_before_first_run(self):
        check = PeriodicCheck("balance", 600)
        assert check.is_due(T0)

    def test_interval_boundary(self):
        check = PeriodicCheck("balance", 600)
        check.mark(T0)
        assert not check.is_due(T0 + 599.999)
        assert check.is_due(T0 + 600)

    def test_reset(self):
        check = PeriodicCheck("connection", 60, last_run=T0)
        check.reset()
        assert check.is_due(T0)


class TestWindows:
    """고정 / trailing 윈도우"""

    def test_window_elapsed_boundary(self):
        day = 86400.0
        assert not window_elapsed(T0, day, T0 + day - 0.001)
        assert window_elapsed(T0, day, T0 + day)
        assert window_elapsed(T0, day, T0 + day + 0.001)

    def test_prune_drops_old_entries(self):
        entries = [(T0 - 4000, -5.0), (T0 - 3600, -1.0), (T0 - 10, 2.0)]
        kept = prune_window(entries, T0, 3600)
        assert kept == [(T0 - 10, 2.0)]

    def test_prune_does_not_mutate(self):
        entries = [(T0 - 4000, -5.0)]
        prune_window(entries, T0, 3600)
        assert entries == [(T0 - 4000, -5.0)]

    def test_window_total(self):
        assert window_total([(T0, 1.5), (T0, -0.5)]) == 1.0
        assert window_total([]) == 0.0


class TestClock:
    """ManualClock / SystemClock"""

    def test_manual_sleep_advances(self):
        clock = ManualClock(T0)
        clock.sleep(2)
        assert clock.now() == T0 + 2

    def test_manual_cannot_go_backwards(self):
        clock = ManualClock(T0)
        with pytest.raises(ValueError):
            clock.advance(-1)

    def test_manual_set(self):
        clock = ManualClock(T0)
        clock.set(T0 + 86400)
        assert clock.now() == T0 + 86400

    def test_system_clock(self):
        clock = SystemClock()
        before = clock.now()
        clock.sleep(0)
        assert clock.now() >= before
