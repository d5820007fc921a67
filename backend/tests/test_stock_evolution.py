"""
Tests for the monthly stock evolution reconstruction.
"""

from datetime import datetime

import pytest

from inventory.evolution import (
    MovementEvent,
    bucket_movements,
    reconstruct_stock_evolution,
    trailing_month_keys,
    window_start,
)

TODAY = datetime(2026, 6, 15, 12, 0)


class TestMonthWindow:
    def test_trailing_keys_oldest_first(self):
        assert trailing_month_keys(6, TODAY) == [
            "2026-01",
            "2026-02",
            "2026-03",
            "2026-04",
            "2026-05",
            "2026-06",
        ]

    def test_trailing_keys_cross_year_boundary(self):
        keys = trailing_month_keys(3, datetime(2026, 2, 10))
        assert keys == ["2025-12", "2026-01", "2026-02"]

    def test_window_starts_on_first_of_month_at_midnight(self):
        assert window_start(6, TODAY) == datetime(2025, 12, 1, 0, 0)
        assert window_start(1, datetime(2026, 1, 31, 23, 59)) == datetime(2025, 12, 1)


class TestBucketing:
    def test_entries_and_all_exit_types_are_summed(self):
        buckets = bucket_movements(
            [
                MovementEvent(10, "entry", datetime(2026, 5, 3)),
                MovementEvent(4, "exit_technician", datetime(2026, 5, 10)),
                MovementEvent(2, "exit_anonymous", datetime(2026, 5, 11)),
                MovementEvent(1, "exit_loss", datetime(2026, 5, 31, 23, 59)),
                MovementEvent(7, "entry", datetime(2026, 6, 1)),
            ]
        )
        assert buckets["2026-05"].entries == 10
        assert buckets["2026-05"].exits == 7
        assert buckets["2026-06"].entries == 7
        assert buckets["2026-06"].exits == 0


class TestReconstruction:
    def test_no_movements_is_flat(self):
        points = reconstruct_stock_evolution(100, [], months=6, today=TODAY)
        assert len(points) == 6
        assert all(p.total_stock == 100 for p in points)
        assert all(p.entries == 0 and p.exits == 0 for p in points)

    def test_current_month_carries_current_total(self):
        points = reconstruct_stock_evolution(
            80,
            [MovementEvent(30, "entry", datetime(2026, 6, 2))],
            months=3,
            today=TODAY,
        )
        assert points[-1].date == "2026-06"
        assert points[-1].total_stock == 80
        assert points[-1].entries == 30

    def test_walks_backward_undoing_following_month(self):
        movements = [
            MovementEvent(50, "entry", datetime(2026, 4, 5)),
            MovementEvent(20, "exit_technician", datetime(2026, 5, 5)),
            MovementEvent(10, "entry", datetime(2026, 6, 1)),
            MovementEvent(5, "exit_loss", datetime(2026, 6, 2)),
        ]
        points = reconstruct_stock_evolution(100, movements, months=4, today=TODAY)
        totals = {p.date: p.total_stock for p in points}
        # June: 100; May: 100 - 10 + 5 = 95; April: 95 + 20 = 115; March: 115 - 50 = 65
        assert totals == {"2026-03": 65, "2026-04": 115, "2026-05": 95, "2026-06": 100}

    def test_negative_totals_are_not_clamped(self):
        points = reconstruct_stock_evolution(
            5,
            [MovementEvent(20, "entry", datetime(2026, 6, 3))],
            months=2,
            today=TODAY,
        )
        assert points[0].total_stock == -15

    def test_single_month_window(self):
        points = reconstruct_stock_evolution(
            12,
            [MovementEvent(3, "exit_anonymous", datetime(2026, 6, 3))],
            months=1,
            today=TODAY,
        )
        assert len(points) == 1
        assert points[0].total_stock == 12
        assert points[0].exits == 3

    def test_zero_months_rejected(self):
        with pytest.raises(ValueError):
            reconstruct_stock_evolution(10, [], months=0, today=TODAY)
