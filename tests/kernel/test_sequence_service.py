"""
Tests for SequenceService.

LPO numbers and asset tags come from locked counter rows, restart every
year, and are returned to the pool when the allocating transaction rolls
back.
"""

from lpo_kernel.services.sequence_service import SequenceService


class TestSequenceService:

    def test_values_are_monotonic(self, session):
        seq = SequenceService(session)
        assert [seq.next_value("test") for _ in range(3)] == [1, 2, 3]
        assert seq.current_value("test") == 3

    def test_unused_sequence_has_no_value(self, session):
        assert SequenceService(session).current_value("never_used") is None

    def test_lpo_number_format(self, session):
        seq = SequenceService(session)
        assert seq.format_lpo_number("LPO", 2024) == "LPO-2024-00001"
        assert seq.format_lpo_number("LPO", 2024) == "LPO-2024-00002"

    def test_each_year_restarts(self, session):
        seq = SequenceService(session)
        seq.format_asset_tag("FA", 2024)
        seq.format_asset_tag("FA", 2024)
        assert seq.format_asset_tag("FA", 2025) == "FA-2025-000001"
        assert seq.format_asset_tag("FA", 2024) == "FA-2024-000003"

    def test_lpo_and_asset_counters_are_independent(self, session):
        seq = SequenceService(session)
        seq.format_lpo_number("LPO", 2024)
        assert seq.format_asset_tag("FA", 2024) == "FA-2024-000001"

    def test_rollback_returns_the_value(self, session):
        seq = SequenceService(session)
        seq.next_value("test")
        session.commit()
        seq.next_value("test")
        session.rollback()
        assert seq.next_value("test") == 2
