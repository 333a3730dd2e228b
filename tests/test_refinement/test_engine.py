"""Tests for the refinement engine state machine."""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from promptgarden.config import GardenConfig
from promptgarden.errors import CredentialMissing, InvalidState, TransportError
from promptgarden.models import Iteration, TestCase
from promptgarden.refinement import EngineState, IterationStore, RefinementEngine

CREDENTIAL = "test-key"


def make_client(*responses) -> MagicMock:
    """Mock client returning the given responses in order."""
    client = MagicMock()
    client.complete = AsyncMock(side_effect=list(responses))
    return client


def make_engine(*responses, **kwargs) -> RefinementEngine:
    return RefinementEngine(make_client(*responses), **kwargs)


class TestSubmitRun:
    """Tests for running training prompts."""

    @pytest.mark.asyncio
    async def test_run_appends_new_case(self):
        """Test that running index len(training) adds a training case."""
        engine = make_engine("first output")

        outcome = await engine.submit_run(0, "Write a haiku", "A 5-7-5 poem", CREDENTIAL)

        assert outcome.output == "first output"
        assert engine.state == EngineState.AWAITING_FEEDBACK
        assert engine.current_output == "first output"
        assert engine.training_cases == [
            TestCase(user_prompt="Write a haiku", expected_output="A 5-7-5 poem")
        ]
        engine.client.complete.assert_awaited_once_with("Write a haiku", CREDENTIAL)

    @pytest.mark.asyncio
    async def test_run_updates_existing_case(self):
        """Test that running an existing index replaces that case."""
        engine = make_engine(
            "output",
            training_cases=[TestCase(user_prompt="old", expected_output="old")],
        )

        await engine.submit_run(0, "new prompt", "new expected", CREDENTIAL)

        assert len(engine.training_cases) == 1
        assert engine.training_cases[0].user_prompt == "new prompt"

    @pytest.mark.asyncio
    async def test_run_out_of_range(self):
        """Test that indices beyond the next new case are rejected."""
        engine = make_engine("output")

        with pytest.raises(InvalidState):
            await engine.submit_run(3, "prompt", "", CREDENTIAL)

    @pytest.mark.asyncio
    async def test_run_requires_prompt(self):
        """Test that an empty prompt is rejected without a call."""
        engine = make_engine("output")

        with pytest.raises(InvalidState):
            await engine.submit_run(0, "   ", "", CREDENTIAL)

        engine.client.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_run_failure_restores_state(self):
        """Test that a failed call leaves cases and state untouched."""
        engine = make_engine(TransportError("boom", status=500))

        with pytest.raises(TransportError):
            await engine.submit_run(0, "prompt", "expected", CREDENTIAL)

        assert engine.state == EngineState.IDLE
        assert engine.training_cases == []
        assert len(engine.store) == 0

    @pytest.mark.asyncio
    async def test_run_without_credential(self):
        """Test that a credential error surfaces and state is kept."""
        engine = make_engine(CredentialMissing())

        with pytest.raises(CredentialMissing):
            await engine.submit_run(0, "prompt", "expected", None)

        assert engine.state == EngineState.IDLE

    @pytest.mark.asyncio
    async def test_concurrent_run_rejected(self):
        """Test that a second submission while generating is rejected."""
        release = asyncio.Event()

        async def slow_complete(prompt, credential):
            await release.wait()
            return "output"

        client = MagicMock()
        client.complete = AsyncMock(side_effect=slow_complete)
        engine = RefinementEngine(client)

        first = asyncio.create_task(engine.submit_run(0, "prompt", "", CREDENTIAL))
        await asyncio.sleep(0)

        assert engine.state == EngineState.GENERATING
        assert engine.busy
        with pytest.raises(InvalidState):
            await engine.submit_run(0, "prompt", "", CREDENTIAL)

        release.set()
        await first
        assert engine.state == EngineState.AWAITING_FEEDBACK
        assert client.complete.await_count == 1


class TestSubmitFeedback:
    """Tests for feedback submission."""

    @pytest.mark.asyncio
    async def test_feedback_without_output(self):
        """Test that feedback before any run is rejected."""
        engine = make_engine()

        with pytest.raises(InvalidState):
            await engine.submit_feedback("great", 4, CREDENTIAL)

        assert len(engine.store) == 0

    @pytest.mark.asyncio
    async def test_feedback_on_empty_output(self):
        """Test that an empty reply can still be scored and improved."""
        engine = make_engine("", "A haiku about autumn", "template")
        await engine.submit_run(0, "Write a haiku", "poem", CREDENTIAL)
        assert engine.state == EngineState.AWAITING_FEEDBACK

        outcome = await engine.submit_feedback("Empty, try again", 2, CREDENTIAL)

        assert outcome.iteration.output == ""
        assert outcome.revised_output == "A haiku about autumn"
        assert engine.current_output == "A haiku about autumn"
        assert len(engine.store) == 1

    @pytest.mark.asyncio
    async def test_score_5_converges_without_call(self):
        """Test that a top score adopts the prompt verbatim."""
        engine = make_engine("output")
        await engine.submit_run(0, "Write a haiku", "poem", CREDENTIAL)

        outcome = await engine.submit_feedback("Perfect", 5, CREDENTIAL)

        assert outcome.converged
        assert engine.state == EngineState.CONVERGED
        assert engine.template == "Write a haiku"
        assert outcome.template == "Write a haiku"
        assert outcome.provider_calls == 0
        assert len(engine.store) == 1
        assert engine.client.complete.await_count == 1

    @pytest.mark.asyncio
    async def test_score_5_needs_no_credential(self):
        """Test that converging never touches the provider."""
        engine = make_engine("output")
        await engine.submit_run(0, "prompt", "", CREDENTIAL)

        outcome = await engine.submit_feedback("", 5, None)

        assert outcome.converged

    @pytest.mark.asyncio
    async def test_low_score_improves_and_synthesizes(self):
        """Test that a score below 5 records once and issues one improvement call."""
        engine = make_engine("first output", "improved output", "synthesized template")
        await engine.submit_run(0, "Write a haiku", "poem", CREDENTIAL)

        outcome = await engine.submit_feedback("Too long", 2, CREDENTIAL)

        assert len(engine.store) == 1
        iteration = engine.store.latest()
        assert iteration.output == "first output"
        assert iteration.feedback == "Too long"
        assert iteration.score == 2

        assert outcome.revised_output == "improved output"
        assert engine.current_output == "improved output"
        assert engine.state == EngineState.AWAITING_FEEDBACK

        improvement_prompt = engine.client.complete.call_args_list[1].args[0]
        assert "Generated Output: first output" in improvement_prompt
        assert "User Feedback (Score 2/5): Too long" in improvement_prompt

        assert outcome.synthesis.success
        assert engine.template == "synthesized template"
        assert outcome.provider_calls == 2
        assert engine.client.complete.await_count == 3

    @pytest.mark.asyncio
    async def test_low_score_without_auto_synthesis(self):
        """Test exactly one generation call when synthesis is manual."""
        engine = make_engine(
            "first output",
            "improved output",
            config=GardenConfig(auto_synthesize=False),
        )
        await engine.submit_run(0, "prompt", "", CREDENTIAL)

        outcome = await engine.submit_feedback("meh", 3, CREDENTIAL)

        assert outcome.synthesis is None
        assert outcome.provider_calls == 1
        assert engine.template is None
        assert engine.client.complete.await_count == 2

    @pytest.mark.asyncio
    async def test_score_is_clamped(self):
        """Test that out-of-range scores are clamped."""
        engine = make_engine("output", "improved", "template")
        await engine.submit_run(0, "prompt", "", CREDENTIAL)

        outcome = await engine.submit_feedback("bad", 0, CREDENTIAL)

        assert outcome.iteration.score == 1

    @pytest.mark.asyncio
    async def test_score_above_5_converges(self):
        """Test that scores above 5 clamp to a convergence."""
        engine = make_engine("output")
        await engine.submit_run(0, "prompt", "", CREDENTIAL)

        outcome = await engine.submit_feedback("love it", 7, CREDENTIAL)

        assert outcome.converged

    @pytest.mark.asyncio
    async def test_improvement_failure_records_nothing(self):
        """Test that a failed improvement leaves the engine as before."""
        engine = make_engine("output", TransportError("down", status=503))
        await engine.submit_run(0, "prompt", "", CREDENTIAL)

        with pytest.raises(TransportError):
            await engine.submit_feedback("fix it", 2, CREDENTIAL)

        assert len(engine.store) == 0
        assert engine.state == EngineState.AWAITING_FEEDBACK
        assert engine.current_output == "output"

    @pytest.mark.asyncio
    async def test_synthesis_failure_keeps_previous_template(self):
        """Test the stale-but-valid template fallback."""
        engine = make_engine(
            "output",
            "improved once",
            "template v1",
            "improved twice",
            TransportError("down", status=500),
        )
        await engine.submit_run(0, "prompt", "", CREDENTIAL)
        await engine.submit_feedback("first", 3, CREDENTIAL)
        assert engine.template == "template v1"

        outcome = await engine.submit_feedback("second", 3, CREDENTIAL)

        assert not outcome.synthesis.success
        assert "down" in outcome.synthesis.error
        assert engine.template == "template v1"
        assert outcome.template == "template v1"
        assert len(engine.store) == 2

    @pytest.mark.asyncio
    async def test_converged_case_rejects_runs(self):
        """Test that a converged case is terminal."""
        engine = make_engine("output")
        await engine.submit_run(0, "prompt", "", CREDENTIAL)
        await engine.submit_feedback("", 5, CREDENTIAL)

        with pytest.raises(InvalidState):
            await engine.submit_run(0, "prompt", "", CREDENTIAL)

        with pytest.raises(InvalidState):
            await engine.submit_feedback("again", 4, CREDENTIAL)


class TestTemplateSynthesis:
    """Tests for explicit template regeneration."""

    @pytest.mark.asyncio
    async def test_regenerate_requires_history(self):
        """Test that there must be something to synthesize from."""
        engine = make_engine("output")
        await engine.submit_run(0, "prompt", "", CREDENTIAL)

        with pytest.raises(InvalidState):
            await engine.regenerate_template(CREDENTIAL)

    @pytest.mark.asyncio
    async def test_regenerate_uses_full_history(self):
        """Test that every iteration is sent by default."""
        engine = make_engine(
            "output", "improved 1", "template 1", "improved 2", "template 2", "template 3"
        )
        await engine.submit_run(0, "Summarize", "", CREDENTIAL)
        await engine.submit_feedback("Shorter", 3, CREDENTIAL)
        await engine.submit_feedback("Use bullets", 4, CREDENTIAL)

        outcome = await engine.regenerate_template(CREDENTIAL)

        assert outcome.template == "template 3"
        assert outcome.iterations_used == 2
        synthesis_prompt = engine.client.complete.call_args.args[0]
        assert "Test Case 2:" in synthesis_prompt
        assert "- Shorter\n- Use bullets" in synthesis_prompt

    @pytest.mark.asyncio
    async def test_regenerate_respects_history_window(self):
        """Test that history_window caps the iterations sent."""
        engine = make_engine(
            "output", "improved 1", "template 1", "improved 2", "template 2",
            config=GardenConfig(history_window=1),
        )
        await engine.submit_run(0, "Summarize", "", CREDENTIAL)
        await engine.submit_feedback("Shorter", 3, CREDENTIAL)
        outcome = await engine.submit_feedback("Use bullets", 4, CREDENTIAL)

        assert outcome.synthesis.iterations_used == 1
        synthesis_prompt = engine.client.complete.call_args.args[0]
        assert "Shorter" not in synthesis_prompt
        assert "- Use bullets" in synthesis_prompt

    @pytest.mark.asyncio
    async def test_regenerate_failure_raises(self):
        """Test that explicit regeneration reports errors to the caller."""
        engine = make_engine(
            "output", "improved", "template", TransportError("down", status=502)
        )
        await engine.submit_run(0, "prompt", "", CREDENTIAL)
        await engine.submit_feedback("fix", 3, CREDENTIAL)

        with pytest.raises(TransportError):
            await engine.regenerate_template(CREDENTIAL)

        assert engine.template == "template"

    def test_store_notification_marks_template_stale(self):
        """Test that recording into the store flags the template for regeneration."""
        store = IterationStore()
        engine = make_engine(store=store)

        store.record(Iteration(prompt="p", output="o", score=3))

        assert engine._synthesis_pending is True

    def test_close_unsubscribes(self):
        """Test that a closed engine no longer listens to the store."""
        store = IterationStore()
        engine = make_engine(store=store)
        engine.close()

        store.record(Iteration(prompt="p", output="o", score=3))
        assert engine._synthesis_pending is False


class TestCaseManagement:
    """Tests for selecting, adding and updating training cases."""

    def test_initial_case_is_loaded(self):
        """Test that the first training case becomes active."""
        engine = make_engine(training_cases=[
            TestCase(user_prompt="first", expected_output="one"),
            TestCase(user_prompt="second", expected_output="two"),
        ])

        assert engine.active_index == 0
        assert engine.current_prompt == "first"
        assert engine.current_expected == "one"

    @pytest.mark.asyncio
    async def test_select_case_clears_output(self):
        """Test switching the active case."""
        engine = make_engine("output", training_cases=[
            TestCase(user_prompt="first", expected_output="one"),
            TestCase(user_prompt="second", expected_output="two"),
        ])
        await engine.submit_run(0, "first", "one", CREDENTIAL)

        case = engine.select_case(1)

        assert case.user_prompt == "second"
        assert engine.active_index == 1
        assert engine.current_output == ""
        assert engine.state == EngineState.IDLE

    @pytest.mark.asyncio
    async def test_select_keeps_converged_state(self):
        """Test that reselecting a converged case keeps it converged."""
        engine = make_engine("output", training_cases=[
            TestCase(user_prompt="first"),
            TestCase(user_prompt="second"),
        ])
        await engine.submit_run(0, "first", "", CREDENTIAL)
        await engine.submit_feedback("", 5, CREDENTIAL)

        engine.select_case(1)
        engine.select_case(0)

        assert engine.state == EngineState.CONVERGED
        assert engine.case_state(1) == EngineState.IDLE

    def test_select_out_of_range(self):
        """Test selecting a missing case."""
        with pytest.raises(InvalidState):
            make_engine().select_case(0)

    def test_add_case(self):
        """Test appending a blank case."""
        engine = make_engine(training_cases=[TestCase(user_prompt="first")])

        index = engine.add_case()

        assert index == 1
        assert engine.active_index == 1
        assert engine.current_prompt == ""
        assert len(engine.training_cases) == 2

    def test_update_active_case(self):
        """Test editing the active case."""
        engine = make_engine(training_cases=[TestCase(user_prompt="first")])

        engine.update_case(0, TestCase(user_prompt="edited", expected_output="new"))

        assert engine.training_cases[0].user_prompt == "edited"
        assert engine.current_prompt == "edited"
        assert engine.current_expected == "new"

    def test_load_cases_resets(self):
        """Test replacing the training set."""
        engine = make_engine(training_cases=[TestCase(user_prompt="old")])

        engine.load_cases([TestCase(user_prompt="a"), TestCase(user_prompt="b")])

        assert engine.active_index == 0
        assert engine.current_prompt == "a"
        assert engine.state == EngineState.IDLE

    def test_load_empty_cases(self):
        """Test replacing the training set with nothing."""
        engine = make_engine(training_cases=[TestCase(user_prompt="old")])

        engine.load_cases([])

        assert engine.training_cases == []
        assert engine.current_prompt == ""
