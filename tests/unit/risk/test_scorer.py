"""Unit tests for the Risk Accumulator."""

import pytest

from fraud_sentinel.core.types import ControlState, RiskEvent, RiskEventKind, RiskLevel
from fraud_sentinel.risk.rules import RiskRules
from fraud_sentinel.risk.scorer import RiskAccumulator
from fraud_sentinel.risk.state import SessionRiskState


def event(delta, kind=RiskEventKind.HIGH_RISK_KEYWORD):
    return RiskEvent(kind=kind, detail="test", score_delta=delta)


@pytest.fixture
def accumulator():
    return RiskAccumulator(RiskRules())


class TestLevelFor:
    """Score to level mapping."""

    @pytest.mark.parametrize("score,level", [
        (0, RiskLevel.LOW),
        (30, RiskLevel.LOW),
        (31, RiskLevel.MEDIUM),
        (60, RiskLevel.MEDIUM),
        (61, RiskLevel.HIGH),
        (100, RiskLevel.HIGH),
    ])
    def test_boundaries(self, accumulator, score, level):
        assert accumulator.level_for(score) == level

    def test_custom_boundaries(self):
        rules = RiskRules.model_validate({"levels": {"medium_min": 10, "high_min": 20}})
        accumulator = RiskAccumulator(rules)

        assert accumulator.level_for(9) == RiskLevel.LOW
        assert accumulator.level_for(10) == RiskLevel.MEDIUM
        assert accumulator.level_for(20) == RiskLevel.HIGH


class TestApply:
    """Score accumulation."""

    def test_adds_deltas(self, accumulator):
        state = SessionRiskState(session_id="s")

        score, level = accumulator.apply(state, [event(25), event(8)])

        assert score == 33
        assert level == RiskLevel.MEDIUM
        assert state.score == 33

    def test_caps_at_max(self, accumulator):
        state = SessionRiskState(session_id="s", score=90)

        score, level = accumulator.apply(state, [event(25)])

        assert score == 100
        assert level == RiskLevel.HIGH

    def test_empty_events_keep_score(self, accumulator):
        state = SessionRiskState(session_id="s", score=40)
        assert accumulator.apply(state, []) == (40, RiskLevel.MEDIUM)

    def test_score_never_decreases(self, accumulator):
        state = SessionRiskState(session_id="s")
        previous = 0
        for delta in [5, 0, 25, 8, 20, 15, 30, 10]:
            score, _ = accumulator.apply(state, [event(delta)])
            assert score >= previous
            previous = score

    def test_score_matches_event_log_total(self, accumulator):
        state = SessionRiskState(session_id="s")
        for delta in [25, 8, 5]:
            new_events = [event(delta)]
            state.event_log.extend(new_events)
            accumulator.apply(state, new_events)

        assert state.score == min(100, state.event_delta_total())

    def test_negative_delta_rejected_by_event(self):
        with pytest.raises(ValueError):
            event(-1)


class TestReset:
    """Reset is the only way down."""

    def test_reset_clears_everything(self, accumulator):
        state = SessionRiskState(
            session_id="s",
            score=80,
            otp_attempts=4,
            names_claimed={"rahul", "amit"},
            emotion_streak=3,
            transaction_request_count=5,
            total_amount_requested=300000,
            suspicious_keyword_hits=2,
            message_count=7,
            incident_created=True,
            incident_id="INC1001",
            control_state=ControlState.ESCALATED_BLOCKED,
            event_log=[event(25)],
        )

        accumulator.reset(state)

        assert state.score == 0
        assert state.otp_attempts == 0
        assert state.names_claimed == set()
        assert state.emotion_streak == 0
        assert state.transaction_request_count == 0
        assert state.total_amount_requested == 0
        assert state.suspicious_keyword_hits == 0
        assert state.message_count == 0
        assert state.incident_created is False
        assert state.incident_id is None
        assert state.control_state == ControlState.MONITORING
        assert state.event_log == []

    def test_reset_bumps_generation(self, accumulator):
        state = SessionRiskState(session_id="s")
        assert state.session_ref == "s#0"

        accumulator.reset(state)
        accumulator.reset(state)

        assert state.generation == 2
        assert state.session_ref == "s#2"
