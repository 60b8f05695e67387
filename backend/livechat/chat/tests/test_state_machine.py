"""Tests for the conversation lifecycle transitions."""

from datetime import UTC, datetime, timedelta

import pytest

from livechat.chat import state_machine
from livechat.core.errors import InvalidTransitionError, ValidationFailure
from livechat.schemas.conversations import Conversation, ConversationStatus, CustomerInfo

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)
HANDOFF = "Thanks! We're transferring you over to a rep!"

S = ConversationStatus


def _conv(**overrides) -> Conversation:
    defaults = dict(id="conv-1", customer_id="c1")
    defaults.update(overrides)
    return Conversation(**defaults)


def _automated() -> Conversation:
    return _conv(
        status=S.AUTOMATED,
        survey_completed=True,
        customer_info=CustomerInfo(name="Al", email="a@b.com"),
    )


# ── Transition table ─────────────────────────────────────────────────


class TestTransitions:
    @pytest.mark.parametrize(
        "current,target,allowed",
        [
            (S.SURVEY, S.AUTOMATED, True),
            (S.SURVEY, S.HUMAN_CONTROLLED, False),
            (S.AUTOMATED, S.HUMAN_CONTROLLED, True),
            (S.AUTOMATED, S.SURVEY, False),
            (S.HUMAN_CONTROLLED, S.HUMAN_CONTROLLED, True),
            (S.HUMAN_CONTROLLED, S.AUTOMATED, False),
            (S.CLOSED, S.AUTOMATED, False),
            (S.CLOSED, S.CLOSED, False),
        ],
    )
    def test_table(self, current, target, allowed):
        assert state_machine.can_transition(current, target) is allowed

    @pytest.mark.parametrize("status", [S.SURVEY, S.AUTOMATED, S.HUMAN_CONTROLLED])
    def test_every_open_state_can_close(self, status):
        assert state_machine.can_transition(status, S.CLOSED)


# ── New conversations ────────────────────────────────────────────────


class TestStart:
    def test_partial_info_stays_in_survey(self):
        conv = _conv(customer_info=CustomerInfo(name="Al"))
        assert state_machine.start(conv, NOW, HANDOFF) is conv

    def test_full_info_skips_survey(self):
        conv = _conv(customer_info=CustomerInfo(name="Al", email="a@b.com"))
        result = state_machine.start(conv, NOW, HANDOFF)
        assert result.status == S.AUTOMATED
        assert result.survey_completed is True
        assert [m.content for m in result.messages] == [HANDOFF]
        assert result.messages[0].metadata.kind == "handoff"
        assert result.invariant_violations() == []


# ── Survey ───────────────────────────────────────────────────────────


class TestSurvey:
    def test_first_field_keeps_survey(self):
        result = state_machine.apply_survey_answer(_conv(), "name", "Al", NOW, HANDOFF)
        assert result.status == S.SURVEY
        assert result.survey_completed is False
        assert result.customer_info.name == "Al"
        assert result.messages == []

    def test_completion_moves_to_automated_with_handoff(self):
        conv = state_machine.apply_survey_answer(_conv(), "name", "Al", NOW, HANDOFF)
        result = state_machine.apply_survey_answer(conv, "email", "a@b.com", NOW, HANDOFF)
        assert result.status == S.AUTOMATED
        assert result.survey_completed is True
        assert len(result.messages) == 1
        handoff = result.messages[0]
        assert handoff.sender == "automated"
        assert handoff.content == HANDOFF
        assert handoff.metadata.kind == "handoff"
        assert state_machine.survey_completed_now(conv, result)

    def test_answers_after_completion_do_not_repeat_handoff(self):
        conv = _automated()
        result = state_machine.apply_survey_answer(conv, "email", "new@b.com", NOW, HANDOFF)
        assert result.customer_info.email == "new@b.com"
        assert result.messages == []
        assert result.status == S.AUTOMATED
        assert not state_machine.survey_completed_now(conv, result)

    def test_camel_case_field_name(self):
        result = state_machine.apply_survey_answer(_conv(), "userAgent", "Firefox", NOW, HANDOFF)
        assert result.customer_info.user_agent == "Firefox"

    def test_unknown_field_goes_to_extra(self):
        result = state_machine.apply_survey_answer(_conv(), "company", "Acme", NOW, HANDOFF)
        assert result.customer_info.extra == {"company": "Acme"}

    def test_blank_value_rejected(self):
        with pytest.raises(ValidationFailure):
            state_machine.apply_survey_answer(_conv(), "name", "   ", NOW, HANDOFF)

    def test_closed_rejected(self):
        closed = state_machine.close(_conv(), NOW)
        with pytest.raises(InvalidTransitionError):
            state_machine.apply_survey_answer(closed, "name", "Al", NOW, HANDOFF)

    def test_input_is_not_mutated(self):
        conv = _conv()
        state_machine.apply_survey_answer(conv, "name", "Al", NOW, HANDOFF)
        assert conv.customer_info.name is None


# ── Takeover ─────────────────────────────────────────────────────────


class TestTakeOver:
    def test_from_automated(self):
        result = state_machine.take_over(_automated(), "ag1", NOW)
        assert result.status == S.HUMAN_CONTROLLED
        assert result.agent_id == "ag1"
        assert result.agent_takeover_at == NOW
        assert result.invariant_violations() == []

    def test_retakeover_last_writer_wins(self):
        first = state_machine.take_over(_automated(), "ag1", NOW)
        later = NOW + timedelta(minutes=1)
        second = state_machine.take_over(first, "ag2", later)
        assert second.agent_id == "ag2"
        assert second.agent_takeover_at == later

    def test_closed_rejected(self):
        closed = state_machine.close(_automated(), NOW)
        with pytest.raises(InvalidTransitionError):
            state_machine.take_over(closed, "ag1", NOW)

    def test_survey_rejected(self):
        with pytest.raises(InvalidTransitionError):
            state_machine.take_over(_conv(), "ag1", NOW)

    def test_empty_agent_rejected(self):
        with pytest.raises(ValidationFailure):
            state_machine.take_over(_automated(), "", NOW)


# ── Close ────────────────────────────────────────────────────────────


class TestClose:
    def test_close_sets_fields_and_clears_agent(self):
        owned = state_machine.take_over(_automated(), "ag1", NOW)
        closed = state_machine.close(owned, NOW)
        assert closed.status == S.CLOSED
        assert closed.is_live is False
        assert closed.closed_at == NOW
        assert closed.agent_id is None
        assert closed.invariant_violations() == []

    def test_second_close_is_noop(self):
        closed = state_machine.close(_conv(), NOW)
        assert state_machine.close(closed, NOW + timedelta(hours=1)) is None
        assert closed.closed_at == NOW


class TestAcceptsAutomatedReply:
    def test_only_automated(self):
        assert state_machine.accepts_automated_reply(_automated())
        assert not state_machine.accepts_automated_reply(_conv())
        assert not state_machine.accepts_automated_reply(
            state_machine.take_over(_automated(), "ag1", NOW)
        )
