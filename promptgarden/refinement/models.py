"""Data models for the refinement engine."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from promptgarden.models import Iteration


class EngineState(str, Enum):
    """Lifecycle of a single training case."""

    IDLE = "idle"  # No output yet
    GENERATING = "generating"  # Provider call in flight
    AWAITING_FEEDBACK = "awaiting_feedback"  # Output shown, waiting for a score
    CONVERGED = "converged"  # Accepted with a top score


class RunOutcome(BaseModel):
    """Result of running a training prompt."""

    case_index: int
    prompt: str
    output: str
    state: EngineState = EngineState.AWAITING_FEEDBACK


class SynthesisOutcome(BaseModel):
    """Result of regenerating the optimized template."""

    success: bool = True
    template: Optional[str] = None
    iterations_used: int = 0
    error: Optional[str] = None


class FeedbackOutcome(BaseModel):
    """Result of submitting feedback on the current output."""

    iteration: Iteration
    state: EngineState

    # Revised output when the score asked for improvement
    revised_output: Optional[str] = None

    # Template after this feedback, None while none has been produced
    template: Optional[str] = None
    synthesis: Optional[SynthesisOutcome] = None

    # Calls issued to the provider for this feedback
    provider_calls: int = Field(default=0, ge=0)

    @property
    def converged(self) -> bool:
        return self.state == EngineState.CONVERGED
