"""
Tests for causation_kernel.services.period_service.
"""

from datetime import date

import pytest

from causation_kernel.exceptions import ErrorKind, NoOpenPeriodError
from causation_kernel.services.period_service import PeriodService


class TestPeriodService:
    def test_open_period_found(self, session, seed):
        seed.period(2024, 6)
        period = PeriodService(session).require_open_period(date(2024, 6, 15))
        assert (period.year, period.month, period.is_closed) == (2024, 6, False)
        assert period.period_code == "2024-06"

    def test_missing_period(self, session, seed):
        seed.period(2024, 5)
        assert PeriodService(session).get_open_period(date(2024, 6, 1)) is None
        with pytest.raises(NoOpenPeriodError) as exc_info:
            PeriodService(session).require_open_period(date(2024, 6, 1))
        assert exc_info.value.kind is ErrorKind.BAD_REQUEST
        assert exc_info.value.process_date == date(2024, 6, 1)

    def test_closed_period_is_not_open(self, session, seed):
        seed.period(2024, 6, is_closed=True)
        with pytest.raises(NoOpenPeriodError):
            PeriodService(session).require_open_period(date(2024, 6, 30))

    def test_missing_period_is_logged(self, session, captured_logs):
        with pytest.raises(NoOpenPeriodError):
            PeriodService(session).require_open_period(date(2030, 1, 1))
        assert any(
            r["message"] == "open_period_missing" and r["as_of"] == "2030-01-01"
            for r in captured_logs()
        )
