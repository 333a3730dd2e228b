"""
Feedback-driven prompt refinement.

Usage:
    from promptgarden.refinement import RefinementEngine, IterationStore

    engine = RefinementEngine(client, store=IterationStore(), config=config)
    await engine.submit_run(0, prompt, expected, credential)
    outcome = await engine.submit_feedback("Be more concise", 3, credential)
"""

from .engine import RefinementEngine
from .history import IterationListener, IterationStore
from .models import EngineState, FeedbackOutcome, RunOutcome, SynthesisOutcome
from .prompts import (
    build_improvement_prompt,
    build_synthesis_prompt,
    summarize_output,
    summarize_prompt,
)

__all__ = [
    # Engine
    "RefinementEngine",
    "EngineState",
    # History
    "IterationStore",
    "IterationListener",
    # Outcomes
    "RunOutcome",
    "FeedbackOutcome",
    "SynthesisOutcome",
    # Prompts
    "build_improvement_prompt",
    "build_synthesis_prompt",
    "summarize_prompt",
    "summarize_output",
]
