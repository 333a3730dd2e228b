"""Refinement engine driving the run, score, improve and synthesize loop."""

import asyncio
import logging
from typing import Optional

from pydantic import SecretStr

from promptgarden.config import GardenConfig
from promptgarden.errors import GardenError, InvalidState
from promptgarden.llm import CompletionClient
from promptgarden.models import MAX_SCORE, Iteration, TestCase, clamp_score

from .history import IterationStore
from .models import EngineState, FeedbackOutcome, RunOutcome, SynthesisOutcome
from .prompts import build_improvement_prompt, build_synthesis_prompt

logger = logging.getLogger(__name__)

Credential = Optional[SecretStr | str]


class RefinementEngine:
    """
    Turns scored feedback on training cases into an optimized template.

    Each training case moves through IDLE -> GENERATING -> AWAITING_FEEDBACK,
    and loops back through GENERATING on every score below 5. A score of 5
    converges the case and adopts its prompt as the template verbatim.
    Otherwise, after each recorded iteration, the template is regenerated
    from the iteration history.

    Only one provider call is in flight at a time; submitting while one is
    pending raises InvalidState. Failed calls leave the engine as it was
    before the call.

    Usage:
        engine = RefinementEngine(CompletionClient.from_config(config), config=config)
        run = await engine.submit_run(0, "Write a haiku", "5-7-5 poem", credential)
        outcome = await engine.submit_feedback("Too long", 3, credential)
        print(engine.template)
    """

    def __init__(
        self,
        client: CompletionClient,
        store: Optional[IterationStore] = None,
        training_cases: Optional[list[TestCase]] = None,
        config: Optional[GardenConfig] = None,
        template: Optional[str] = None,
    ):
        self.client = client
        self.config = config or GardenConfig()
        self.store = store if store is not None else IterationStore()
        self.training_cases: list[TestCase] = list(training_cases or [])

        self.template: Optional[str] = template
        self.active_index = 0
        self.current_prompt = ""
        self.current_expected = ""
        self.current_output = ""

        self._states: dict[int, EngineState] = {}
        self._lock = asyncio.Lock()
        self._synthesis_pending = False
        self._unsubscribe = self.store.subscribe(self._on_iteration_recorded)

        if self.training_cases:
            self._load_active(0)

    # -- state -------------------------------------------------------------

    @property
    def state(self) -> EngineState:
        """State of the active training case."""
        return self.case_state(self.active_index)

    def case_state(self, index: int) -> EngineState:
        return self._states.get(index, EngineState.IDLE)

    @property
    def busy(self) -> bool:
        """Whether a provider call is in flight."""
        return self._lock.locked()

    def _ensure_idle(self) -> None:
        if self._lock.locked():
            raise InvalidState("A request is already in progress. Wait for it to finish.")

    def _check_index(self, index: int, allow_append: bool = False) -> None:
        upper = len(self.training_cases) + (1 if allow_append else 0)
        if not 0 <= index < upper:
            raise InvalidState(f"No training case at index {index}")

    def _load_active(self, index: int) -> None:
        case = self.training_cases[index]
        self.active_index = index
        self.current_prompt = case.user_prompt
        self.current_expected = case.expected_output
        self.current_output = ""

    def _on_iteration_recorded(self, iteration: Iteration) -> None:
        if self.config.auto_synthesize and self.state != EngineState.CONVERGED:
            self._synthesis_pending = True

    # -- training cases ----------------------------------------------------

    def load_cases(self, training_cases: list[TestCase]) -> None:
        """Replace the training set, resetting every case to IDLE."""
        self._ensure_idle()
        self.training_cases = list(training_cases)
        self._states.clear()
        if self.training_cases:
            self._load_active(0)
        else:
            self.active_index = 0
            self.current_prompt = self.current_expected = self.current_output = ""
        logger.info(f"Loaded {len(self.training_cases)} training cases")

    def add_case(self, case: Optional[TestCase] = None) -> int:
        """Append a training case, make it active and return its index."""
        self._ensure_idle()
        self.training_cases.append(case or TestCase())
        index = len(self.training_cases) - 1
        self._load_active(index)
        return index

    def update_case(self, index: int, case: TestCase) -> None:
        """Replace the training case at index."""
        self._ensure_idle()
        self._check_index(index)
        self.training_cases[index] = case
        if index == self.active_index:
            self.current_prompt = case.user_prompt
            self.current_expected = case.expected_output

    def select_case(self, index: int) -> TestCase:
        """Make the training case at index active and clear the current output."""
        self._ensure_idle()
        self._check_index(index)
        self._load_active(index)
        if self.case_state(index) != EngineState.CONVERGED:
            self._states[index] = EngineState.IDLE
        return self.training_cases[index]

    # -- refinement loop ---------------------------------------------------

    async def submit_run(
        self,
        case_index: int,
        prompt: str,
        expected_output: str,
        credential: Credential,
    ) -> RunOutcome:
        """
        Generate an output for a training prompt.

        A case_index equal to the number of training cases appends a new
        case; any other valid index updates that case. The case is only
        stored once the provider call succeeds.

        Raises:
            InvalidState: If a call is in flight, the index is out of range,
                the prompt is empty or the case has converged
            CredentialMissing: If no credential was supplied
            TransportError: If the provider call failed
        """
        self._ensure_idle()
        self._check_index(case_index, allow_append=True)
        if not prompt.strip():
            raise InvalidState("Enter a prompt before running it")
        if self.case_state(case_index) == EngineState.CONVERGED:
            raise InvalidState(
                f"Training case {case_index + 1} has converged. Select another case to continue."
            )

        async with self._lock:
            previous_state = self.case_state(case_index)
            self._states[case_index] = EngineState.GENERATING
            logger.info(f"Running training case {case_index + 1}")

            try:
                output = await self.client.complete(prompt, credential)
            except GardenError:
                self._states[case_index] = previous_state
                raise

            case = TestCase(user_prompt=prompt, expected_output=expected_output)
            if case_index == len(self.training_cases):
                self.training_cases.append(case)
            else:
                self.training_cases[case_index] = case

            self.active_index = case_index
            self.current_prompt = prompt
            self.current_expected = expected_output
            self.current_output = output
            self._states[case_index] = EngineState.AWAITING_FEEDBACK

        return RunOutcome(case_index=case_index, prompt=prompt, output=output)

    async def submit_feedback(
        self,
        feedback: str,
        score: int,
        credential: Credential,
    ) -> FeedbackOutcome:
        """
        Score the current output.

        A score of 5 records the iteration, converges the active case and
        adopts its prompt as the template without calling the provider.
        Lower scores request an improved output first; the iteration is
        recorded once that succeeds, and the template is then regenerated.
        A failed regeneration keeps the previous template and is reported
        in the outcome rather than raised.

        Raises:
            InvalidState: If no output is awaiting feedback or a call is in flight
            CredentialMissing: If a score below 5 was given without a credential
            TransportError: If the improvement call failed
        """
        self._ensure_idle()
        if self.state != EngineState.AWAITING_FEEDBACK:
            raise InvalidState("Run a prompt before submitting feedback")

        score = clamp_score(score)
        iteration = Iteration(
            prompt=self.current_prompt,
            output=self.current_output,
            feedback=feedback,
            score=score,
        )

        if score == MAX_SCORE:
            self._states[self.active_index] = EngineState.CONVERGED
            self.store.record(iteration)
            self.template = self.current_prompt
            logger.info(
                f"Training case {self.active_index + 1} converged, "
                "adopting its prompt as the template"
            )
            return FeedbackOutcome(
                iteration=iteration,
                state=EngineState.CONVERGED,
                template=self.template,
            )

        async with self._lock:
            self._states[self.active_index] = EngineState.GENERATING
            improvement_prompt = build_improvement_prompt(
                prompt=self.current_prompt,
                output=self.current_output,
                feedback=feedback,
                score=score,
            )

            try:
                revised = await self.client.complete(improvement_prompt, credential)
            except GardenError:
                self._states[self.active_index] = EngineState.AWAITING_FEEDBACK
                raise

            self.store.record(iteration)
            self.current_output = revised
            self._states[self.active_index] = EngineState.AWAITING_FEEDBACK

            synthesis = None
            provider_calls = 1
            if self._synthesis_pending:
                synthesis = await self._synthesize(credential)
                provider_calls += 1

        return FeedbackOutcome(
            iteration=iteration,
            state=self.state,
            revised_output=revised,
            template=self.template,
            synthesis=synthesis,
            provider_calls=provider_calls,
        )

    async def regenerate_template(self, credential: Credential) -> SynthesisOutcome:
        """
        Regenerate the optimized template from the iteration history.

        Raises:
            InvalidState: If there is nothing to synthesize from or a call is in flight
            CredentialMissing: If no credential was supplied
            TransportError: If the synthesis call failed
        """
        self._ensure_idle()
        if not self.current_prompt.strip() or not len(self.store):
            raise InvalidState("Run a prompt and submit feedback before generating a template")

        async with self._lock:
            outcome = await self._synthesize(credential, raise_errors=True)
        return outcome

    async def _synthesize(
        self,
        credential: Credential,
        raise_errors: bool = False,
    ) -> SynthesisOutcome:
        self._synthesis_pending = False
        iterations = self.store.window(self.config.history_window)
        prompt = build_synthesis_prompt(iterations)

        try:
            template = await self.client.complete(prompt, credential)
        except GardenError as e:
            if raise_errors:
                raise
            logger.warning(f"Template synthesis failed, keeping the previous template: {e}")
            return SynthesisOutcome(
                success=False,
                template=self.template,
                iterations_used=len(iterations),
                error=str(e),
            )

        self.template = template
        logger.info(f"Synthesized template from {len(iterations)} iterations")
        return SynthesisOutcome(template=template, iterations_used=len(iterations))

    def close(self) -> None:
        """Stop listening to the iteration store."""
        self._unsubscribe()
