from datetime import timedelta

import pytest

from tests.fakes import T0
from upkeep.actuators.interface import Urgency
from upkeep.base.config import Settings
from upkeep.policy.nag import (
    NagDecision,
    build_notification,
    describe_duration,
    evaluate_nag,
)
from upkeep.state.models import MaintenanceState

WEEK = timedelta(days=7)


@pytest.fixture
def nag_settings() -> Settings:
    return Settings()


class TestEvaluateNag:
    def test_fresh_state_shows_first_run_notice(self, nag_settings: Settings) -> None:
        assert evaluate_nag(T0, MaintenanceState(), nag_settings) is (
            NagDecision.SHOW_FIRST_RUN_NOTICE
        )

    def test_notice_shown_without_baseline_is_quiet(
        self, nag_settings: Settings
    ) -> None:
        state = MaintenanceState(first_run_notice_shown=True)

        assert evaluate_nag(T0, state, nag_settings) is NagDecision.NONE

    def test_grace_period_after_first_run_notice(self, nag_settings: Settings) -> None:
        state = MaintenanceState(
            first_run_notice_shown=True,
            grace_started_at=T0 - timedelta(days=6),
            last_nag_at=T0 - timedelta(days=6),
        )

        assert evaluate_nag(T0, state, nag_settings) is NagDecision.NONE

    def test_overdue_after_grace_period_without_any_run(
        self, nag_settings: Settings
    ) -> None:
        state = MaintenanceState(
            first_run_notice_shown=True,
            grace_started_at=T0 - timedelta(days=8),
            last_nag_at=T0 - timedelta(days=8),
        )

        assert evaluate_nag(T0, state, nag_settings) is NagDecision.SHOW_OVERDUE_NOTICE

    def test_overdue_run_without_previous_nag(self, nag_settings: Settings) -> None:
        state = MaintenanceState(
            last_run_at=T0 - timedelta(days=8), first_run_notice_shown=True
        )

        assert evaluate_nag(T0, state, nag_settings) is NagDecision.SHOW_OVERDUE_NOTICE

    def test_exactly_at_overdue_threshold_is_quiet(
        self, nag_settings: Settings
    ) -> None:
        state = MaintenanceState(last_run_at=T0 - WEEK)

        assert evaluate_nag(T0, state, nag_settings) is NagDecision.NONE

    def test_recent_run_is_quiet(self, nag_settings: Settings) -> None:
        state = MaintenanceState(last_run_at=T0 - timedelta(hours=10))

        assert evaluate_nag(T0, state, nag_settings) is NagDecision.NONE

    def test_run_without_first_notice_skips_intro(self, nag_settings: Settings) -> None:
        state = MaintenanceState(last_run_at=T0 - timedelta(hours=1))

        assert evaluate_nag(T0, state, nag_settings) is NagDecision.NONE

    def test_cooldown_window(self, nag_settings: Settings) -> None:
        nagged_at = T0
        state = MaintenanceState(
            last_run_at=T0 - timedelta(days=8), last_nag_at=nagged_at
        )

        just_before = nagged_at + WEEK - timedelta(seconds=1)
        assert evaluate_nag(just_before, state, nag_settings) is NagDecision.NONE
        assert evaluate_nag(nagged_at + WEEK, state, nag_settings) is (
            NagDecision.SHOW_OVERDUE_NOTICE
        )

    def test_cooldown_is_independent_of_overdue_threshold(self) -> None:
        settings = Settings(nag_cooldown=timedelta(days=1))
        state = MaintenanceState(
            last_run_at=T0 - timedelta(days=10),
            last_nag_at=T0 - timedelta(days=2),
        )

        assert evaluate_nag(T0, state, settings) is NagDecision.SHOW_OVERDUE_NOTICE

    def test_disabled(self) -> None:
        settings = Settings(nag_enabled=False)

        assert evaluate_nag(T0, MaintenanceState(), settings) is NagDecision.NONE


class TestBuildNotification:
    def test_first_run_notice(self, nag_settings: Settings) -> None:
        notification = build_notification(
            NagDecision.SHOW_FIRST_RUN_NOTICE, nag_settings
        )

        assert "Automatic maintenance is active" in notification.body
        assert notification.urgency is Urgency.CRITICAL

    def test_overdue_notice_mentions_thresholds(self, nag_settings: Settings) -> None:
        notification = build_notification(
            NagDecision.SHOW_OVERDUE_NOTICE, nag_settings
        )

        assert notification.title == "Maintenance overdue"
        assert notification.body == (
            "Maintenance hasn't completed in over 7 days. "
            "Please leave the device idle for an hour."
        )

    def test_none_has_no_notification(self, nag_settings: Settings) -> None:
        with pytest.raises(ValueError):
            build_notification(NagDecision.NONE, nag_settings)


class TestDescribeDuration:
    @pytest.mark.parametrize(
        ("value", "text"),
        [
            (timedelta(hours=1), "an hour"),
            (timedelta(hours=2), "2 hours"),
            (timedelta(days=1), "a day"),
            (timedelta(days=7), "7 days"),
            (timedelta(minutes=1), "a minute"),
            (timedelta(minutes=90), "90 minutes"),
            (timedelta(seconds=30), "30 seconds"),
            (timedelta(seconds=90), "a minute"),
        ],
    )
    def test_reads_naturally(self, value: timedelta, text: str) -> None:
        assert describe_duration(value) == text
