"""Tests for improvement and synthesis prompt builders."""

from promptgarden.models import Iteration
from promptgarden.refinement import (
    build_improvement_prompt,
    build_synthesis_prompt,
    summarize_output,
    summarize_prompt,
)


class TestSummaries:
    """Tests for prompt and output summaries."""

    def test_short_prompt_unchanged(self):
        """Test prompts within the limit."""
        assert summarize_prompt("Write a haiku") == "Write a haiku"

    def test_long_prompt_truncated(self):
        """Test that prompts keep their first 100 characters."""
        prompt = "x" * 150
        summary = summarize_prompt(prompt)

        assert summary == "x" * 100 + "..."

    def test_prompt_at_limit(self):
        """Test that exactly 100 characters are not truncated."""
        assert summarize_prompt("y" * 100) == "y" * 100

    def test_long_output_truncated_by_words(self):
        """Test that outputs keep their first 20 words."""
        output = " ".join(f"w{i}" for i in range(30))
        summary = summarize_output(output)

        assert summary == " ".join(f"w{i}" for i in range(20)) + "..."

    def test_short_output_unchanged(self):
        """Test outputs within the word limit."""
        assert summarize_output("just a few words") == "just a few words"


class TestImprovementPrompt:
    """Tests for the improvement request."""

    def test_contains_all_parts(self):
        """Test that prompt, output, feedback and score are embedded."""
        prompt = build_improvement_prompt(
            prompt="Write a haiku about rain",
            output="Rain falls on the roof",
            feedback="Needs three lines",
            score=2,
        )

        assert "Initial Prompt: Write a haiku about rain" in prompt
        assert "Generated Output: Rain falls on the roof" in prompt
        assert "User Feedback (Score 2/5): Needs three lines" in prompt
        assert "improved version of the output" in prompt

    def test_braces_in_user_text(self):
        """Test that braces in user text are passed through."""
        prompt = build_improvement_prompt("Return {json}", "{}", "Use {key}", 1)

        assert "Return {json}" in prompt
        assert "Use {key}" in prompt


class TestSynthesisPrompt:
    """Tests for the template synthesis request."""

    def test_test_cases_and_requirements(self):
        """Test that each iteration becomes a numbered test case."""
        iterations = [
            Iteration(prompt="Summarize A", output="Summary of A", feedback="Shorter", score=3),
            Iteration(prompt="Summarize B", output="Summary of B", feedback="Use bullets", score=4),
        ]
        prompt = build_synthesis_prompt(iterations)

        assert "Test Case 1:" in prompt
        assert 'Initial Prompt: "Summarize A"' in prompt
        assert 'Objective: "Summarize A"' in prompt
        assert 'Function Signature: "Summary of B"' in prompt
        assert "Test Case 2:" in prompt
        assert "Requirements:\n- Shorter\n- Use bullets" in prompt
        assert "Core Objective: [Generalized goal]" in prompt

    def test_truncated_objective_and_signature(self):
        """Test that long prompts and outputs are summarized."""
        iteration = Iteration(
            prompt="p" * 120,
            output=" ".join(["word"] * 25),
            feedback="fine",
            score=3,
        )
        prompt = build_synthesis_prompt([iteration])

        assert f'Objective: "{"p" * 100}..."' in prompt
        assert f'Function Signature: "{" ".join(["word"] * 20)}..."' in prompt

    def test_no_iterations(self):
        """Test the placeholder requirement list."""
        assert "No improvement rules yet." in build_synthesis_prompt([])
