"""Tests for the turn orchestrator."""

import json

import pytest

from claimdesk.graphs.state import CancellationToken
from claimdesk.graphs.turn import TurnRunner
from claimdesk.models.conversation import Message
from claimdesk.models.events import (
    ErrorEvent,
    FinishEvent,
    StartStepEvent,
    TextDeltaEvent,
    ToolCallErrorEvent,
    ToolCallOutputEvent,
    ToolCallProposedEvent,
    TranscriptBuilder,
)
from claimdesk.models.llm import TextChunk, ToolResultBlock
from tests.helpers import (
    FakeModelClient,
    collect,
    draft_appeal_input,
    failing_step,
    lookup_step,
    suggest_action_input,
    text_step,
    tool_call,
    tool_step,
)


def user(text: str) -> Message:
    return Message(role="user", text=text)


def event_types(events) -> list[str]:
    return [event.type for event in events]


class TestServerToolTurn:
    """A question answered with an inline claim lookup."""

    @pytest.mark.asyncio
    async def test_lookup_then_explanation(self, runner, fake_model):
        """Test that a lookup resolves inline and the model explains the result."""
        fake_model.steps = [
            lookup_step("CLM-1001", "call_lookup"),
            text_step("CLM-1001 was denied ", "under CO-197."),
        ]

        events = await collect(runner.stream([user("Why was CLM-1001 denied?")]))

        assert event_types(events) == [
            "start-step",
            "tool-call-proposed",
            "tool-call-output-available",
            "start-step",
            "text-delta",
            "text-delta",
            "finish",
        ]
        proposed = events[1]
        assert proposed.tool_name == "lookupClaim"
        assert proposed.mode == "server"
        assert events[2].output["claim"]["claimId"] == "CLM-1001"

        finish = events[-1]
        assert finish.finish_reason == "stop"
        assert finish.steps == 2
        assert finish.tool_rounds == 1

    @pytest.mark.asyncio
    async def test_tool_result_reaches_next_model_step(self, runner, fake_model):
        """Test that the second model step sees the lookup result."""
        fake_model.steps = [lookup_step("clm-1003", "call_lookup"), text_step("Done.")]

        await collect(runner.stream([user("Look at clm-1003")]))

        assert len(fake_model.calls) == 2
        last = fake_model.calls[1][-1]
        assert last.role == "user"
        result = last.content[0]
        assert isinstance(result, ToolResultBlock)
        assert result.tool_use_id == "call_lookup"
        assert json.loads(result.content)["claim"]["claimId"] == "CLM-1003"

    @pytest.mark.asyncio
    async def test_unknown_claim_returns_error_payload(self, runner, fake_model):
        """Test that an unknown claim resolves to an error payload, not a failure."""
        fake_model.steps = [lookup_step("CLM-9999", "call_lookup"), text_step("That claim does not exist.")]

        events = await collect(runner.stream([user("Check CLM-9999")]))

        output = next(e for e in events if isinstance(e, ToolCallOutputEvent)).output
        assert output["error"].startswith("Claim CLM-9999 not found. Available IDs: CLM-1001")
        assert events[-1].finish_reason == "stop"

    @pytest.mark.asyncio
    async def test_calls_in_one_step_keep_emission_order(self, runner, fake_model):
        """Test that several calls in one step are handled in the order emitted."""
        fake_model.steps = [
            tool_step(
                tool_call("lookupClaim", {"claimId": "CLM-1002"}, "call_a"),
                tool_call("lookupClaim", {"claimId": "CLM-1001"}, "call_b"),
                text="Comparing both claims.",
            ),
            text_step("Both are denied."),
        ]

        events = await collect(runner.stream([user("Compare CLM-1002 and CLM-1001")]))

        tool_events = [e for e in events if isinstance(e, (ToolCallProposedEvent, ToolCallOutputEvent))]
        assert [(e.type, e.call_id) for e in tool_events] == [
            ("tool-call-proposed", "call_a"),
            ("tool-call-output-available", "call_a"),
            ("tool-call-proposed", "call_b"),
            ("tool-call-output-available", "call_b"),
        ]

        results = fake_model.calls[1][-1].content
        assert [r.tool_use_id for r in results] == ["call_a", "call_b"]

    @pytest.mark.asyncio
    async def test_claim_context_is_appended(self, runner, fake_model):
        """Test that the selected claim is appended to the last user message."""
        fake_model.steps = [text_step("Sure.")]

        await collect(runner.stream([user("What is the status?")], claim_id="CLM-1004"))

        sent = fake_model.calls[0][-1].content[0].text
        assert sent == "What is the status?\n\n(Current claim: CLM-1004)"

    @pytest.mark.asyncio
    async def test_run_turn_appends_user_message(self, runner, fake_model):
        """Test that run_turn sends the history plus the new user text."""
        fake_model.steps = [text_step("Hello again.")]
        history = [user("Hi"), Message(role="assistant", text="Hello.")]

        events = await collect(runner.run_turn(history, "Anything else?"))

        assert events[-1].finish_reason == "stop"
        sent = fake_model.calls[0]
        assert [m.role for m in sent] == ["user", "assistant", "user"]
        assert sent[-1].content[0].text == "Anything else?"


class TestGatedToolTurn:
    """Turns that end with a proposal waiting for a human."""

    @pytest.mark.asyncio
    async def test_gated_proposal_ends_turn(self, runner, fake_model, tool_states, claim_repository):
        """Test that a gated proposal is registered and the turn waits for a decision."""
        fake_model.steps = [
            lookup_step("CLM-1001", "call_lookup"),
            tool_step(tool_call("suggestAction", suggest_action_input(), "call_suggest"), text="I recommend:"),
        ]

        events = await collect(runner.stream([user("What should I do with CLM-1001?")]))

        proposed = [e for e in events if isinstance(e, ToolCallProposedEvent)]
        assert [(e.tool_name, e.mode) for e in proposed] == [("lookupClaim", "server"), ("suggestAction", "gated")]

        finish = events[-1]
        assert finish.finish_reason == "awaiting-decision"
        assert finish.tool_rounds == 2

        stored = tool_states.get("call_suggest")
        assert stored is not None
        assert stored.state == "proposed"
        assert stored.claim_id == "CLM-1001"

        claim = await claim_repository.find_by_key("CLM-1001")
        assert claim.status == "denied"
        assert len(fake_model.calls) == 2

    @pytest.mark.asyncio
    async def test_decision_feeds_next_turn(self, runner, fake_model, decisions, tool_states):
        """Test that an approved action is visible to the model on the next turn."""
        fake_model.steps = [
            tool_step(
                tool_call("lookupClaim", {"claimId": "CLM-1001"}, "call_lookup"),
                tool_call("suggestAction", suggest_action_input(), "call_suggest"),
            )
        ]
        history = [user("Fix CLM-1001")]

        builder = TranscriptBuilder()
        for event in await collect(runner.stream(history)):
            builder.apply(event)
        assert builder.finish_reason == "awaiting-decision"

        await decisions.record_decision("call_suggest", "approved")

        # The client resubmits the transcript as it rendered it, card still proposed
        history = [*history, builder.message]
        fake_model.steps = [text_step("The appeal is underway.")]
        events = await collect(runner.stream(history))

        assert events[-1].finish_reason == "stop"
        results = fake_model.calls[1][-1].content
        assert [r.tool_use_id for r in results] == ["call_lookup", "call_suggest"]
        assert json.loads(results[1].content) == {"approved": True, "action": "appeal"}

    @pytest.mark.asyncio
    async def test_undecided_proposal_is_left_out_of_history(self, runner, fake_model):
        """Test that a card still awaiting a decision is not sent to the model."""
        fake_model.steps = [tool_step(tool_call("draftAppeal", draft_appeal_input(), "call_draft"))]
        history = [user("Draft an appeal for CLM-1001")]

        builder = TranscriptBuilder()
        for event in await collect(runner.stream(history)):
            builder.apply(event)

        fake_model.steps = [text_step("Okay, moving on.")]
        history = [*history, builder.message, user("Never mind, what about CLM-1002?")]
        await collect(runner.stream(history))

        sent = fake_model.calls[1]
        assert [m.role for m in sent] == ["user"]
        assert "CLM-1002" in sent[0].content[-1].text


class TestInvalidToolCalls:
    """Schema-invalid and unknown calls go back to the model as errors."""

    @pytest.mark.asyncio
    async def test_invalid_input_is_fed_back(self, runner, fake_model, tool_states):
        """Test that an invalid action is reported to the model and never proposed."""
        fake_model.steps = [
            tool_step(tool_call("suggestAction", suggest_action_input(action="escalate"), "call_bad")),
            tool_step(tool_call("suggestAction", suggest_action_input(), "call_good")),
        ]

        events = await collect(runner.stream([user("Suggest something for CLM-1001")]))

        error = next(e for e in events if isinstance(e, ToolCallErrorEvent))
        assert error.call_id == "call_bad"
        assert "action" in error.error_text
        assert tool_states.get("call_bad") is None

        retry_result = fake_model.calls[1][-1].content[0]
        assert retry_result.is_error is True
        assert retry_result.tool_use_id == "call_bad"

        assert tool_states.get("call_good") is not None
        assert events[-1].finish_reason == "awaiting-decision"

    @pytest.mark.asyncio
    async def test_unknown_field_is_rejected(self, runner, fake_model):
        """Test that extra fields are not silently dropped."""
        fake_model.steps = [
            tool_step(tool_call("lookupClaim", {"claimId": "CLM-1001", "verbose": True}, "call_extra")),
            text_step("Retrying without extras."),
        ]

        events = await collect(runner.stream([user("Look up CLM-1001")]))

        assert "tool-call-error" in event_types(events)
        assert "tool-call-output-available" not in event_types(events)

    @pytest.mark.asyncio
    async def test_unknown_tool_is_reported(self, runner, fake_model):
        """Test that a call to an unregistered tool becomes an error result."""
        fake_model.steps = [
            tool_step(tool_call("deleteClaim", {"claimId": "CLM-1001"}, "call_delete")),
            text_step("I cannot delete claims."),
        ]

        events = await collect(runner.stream([user("Delete CLM-1001")]))

        error = next(e for e in events if isinstance(e, ToolCallErrorEvent))
        assert "Unknown tool deleteClaim" in error.error_text
        assert events[-1].finish_reason == "stop"


class TestStepBound:
    """The tool round budget of a single turn."""

    @pytest.mark.asyncio
    async def test_looping_model_stops_after_five_rounds(self, runner, fake_model):
        """Test that a model that keeps calling tools is cut off with max-steps."""
        fake_model.steps = [lookup_step("CLM-1001", f"call_{i}") for i in range(6)]

        events = await collect(runner.stream([user("Keep looking")]))

        assert len(fake_model.calls) == 6
        outputs = [e for e in events if isinstance(e, ToolCallOutputEvent)]
        assert len(outputs) == 5
        assert "call_5" not in [e.call_id for e in events if isinstance(e, ToolCallProposedEvent)]

        finish = events[-1]
        assert finish.finish_reason == "max-steps"
        assert finish.tool_rounds == 5
        assert finish.steps == 6

    @pytest.mark.asyncio
    async def test_custom_round_budget(self, fake_model, registry, decisions, tool_states):
        """Test that the round budget is configurable."""
        runner = TurnRunner(fake_model, registry, decisions, tool_states, max_tool_rounds=1)
        fake_model.steps = [lookup_step("CLM-1001", "call_1"), lookup_step("CLM-1002", "call_2")]

        events = await collect(runner.stream([user("Look up two claims")]))

        assert events[-1].finish_reason == "max-steps"
        assert events[-1].tool_rounds == 1


class TestFailures:
    """Model service failures and cancellation."""

    @pytest.mark.asyncio
    async def test_failure_mid_stream_keeps_text(self, runner, fake_model, tool_states):
        """Test that text streamed before a failure stays and one error event follows."""
        fake_model.steps = [failing_step("Looking into ", "CLM-1001")]

        events = await collect(runner.stream([user("Why was CLM-1001 denied?")]))

        assert event_types(events) == ["start-step", "text-delta", "text-delta", "error"]
        assert isinstance(events[-1], ErrorEvent)
        assert "unavailable" in events[-1].error
        assert len(tool_states) == 0

    @pytest.mark.asyncio
    async def test_failure_before_output(self, runner, fake_model):
        """Test that a failure before any output yields only the error event."""
        fake_model.steps = [failing_step()]

        events = await collect(runner.stream([user("Hello")]))

        assert len(events) == 1
        assert isinstance(events[0], ErrorEvent)

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, runner, fake_model):
        """Test that a cancelled token ends the turn without calling the model."""
        token = CancellationToken()
        token.cancel()

        events = await collect(runner.stream([user("Hello")], cancel_token=token))

        assert len(events) == 1
        assert isinstance(events[0], FinishEvent)
        assert events[0].finish_reason == "cancelled"
        assert fake_model.calls == []

    @pytest.mark.asyncio
    async def test_cancelled_mid_stream(self, registry, decisions, tool_states):
        """Test that cancellation is observed at the next chunk boundary."""
        token = CancellationToken()

        class CancellingModel(FakeModelClient):
            async def stream_message(self, messages, system_prompt, tools=None):
                yield TextChunk(text="Part one")
                token.cancel()
                yield TextChunk(text="never delivered")

        runner = TurnRunner(CancellingModel(), registry, decisions, tool_states)
        events = await collect(runner.stream([user("Hello")], cancel_token=token))

        assert isinstance(events[0], StartStepEvent)
        assert [e.delta for e in events if isinstance(e, TextDeltaEvent)] == ["Part one"]
        assert events[-1].finish_reason == "cancelled"


class TestHistoryValidation:
    """Histories that cannot be sent to the model."""

    def test_history_ending_with_assistant_text(self, runner):
        """Test that a history ending with plain assistant text is rejected."""
        with pytest.raises(ValueError, match="must end with a user message"):
            runner.stream([user("Hi"), Message(role="assistant", text="Hello.")])

    def test_message_too_long(self, runner):
        """Test that an oversized user message is rejected."""
        with pytest.raises(ValueError, match="too long"):
            runner.stream([user("a" * 9000)])
