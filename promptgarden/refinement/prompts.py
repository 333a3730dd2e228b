"""Prompt builders for output improvement and template synthesis."""

from typing import Sequence

from promptgarden.models import Iteration

OBJECTIVE_CHAR_LIMIT = 100
SIGNATURE_TOKEN_LIMIT = 20


IMPROVEMENT_PROMPT = """
Initial Prompt: {prompt}
Generated Output: {output}
User Feedback (Score {score}/5): {feedback}
Expected Quality Level: The output should be improved based on the feedback.

Please provide an improved version of the output that addresses the feedback."""


SYNTHESIS_CASE_TEMPLATE = """
Test Case {index}:
Initial Prompt: "{prompt}"
Objective: "{objective}"
Function Signature: "{signature}"
"""


SYNTHESIS_PROMPT = """
Task: Create a generalized prompt template based on the following test cases and improvement rules.

{test_cases}

Requirements:
{requirements}

Please generate a template that:
1. Extracts and generalizes the core objective from all test cases
2. Creates a flexible function signature that can handle variations in expected outputs
3. Maintains all improvement rules as requirements
4. Structures the prompt in a clear, reusable format

Generate the template in this format:
Core Objective: [Generalized goal]
Function Signature: [Abstract expected output format in words, not showing actual output]
Requirements: [List of requirements]"""


def summarize_prompt(prompt: str, limit: int = OBJECTIVE_CHAR_LIMIT) -> str:
    """Shorten a prompt to its first `limit` characters."""
    if len(prompt) > limit:
        return f"{prompt[:limit]}..."
    return prompt


def summarize_output(output: str, limit: int = SIGNATURE_TOKEN_LIMIT) -> str:
    """Shorten an output to its first `limit` whitespace-delimited tokens."""
    words = output.split()
    if len(words) > limit:
        return f"{' '.join(words[:limit])}..."
    return output


def build_improvement_prompt(prompt: str, output: str, feedback: str, score: int) -> str:
    """Ask for a revised output that addresses the feedback."""
    return IMPROVEMENT_PROMPT.format(
        prompt=prompt,
        output=output,
        feedback=feedback,
        score=score,
    )


def format_requirements(feedback: Sequence[str]) -> str:
    """Render feedback texts as a bulleted requirement list."""
    if not feedback:
        return "No improvement rules yet."
    return "\n".join(f"- {text}" for text in feedback)


def build_synthesis_prompt(iterations: Sequence[Iteration]) -> str:
    """Ask for a generalized template covering every recorded iteration."""
    test_cases = "\n\n".join(
        SYNTHESIS_CASE_TEMPLATE.format(
            index=index,
            prompt=iteration.prompt,
            objective=summarize_prompt(iteration.prompt),
            signature=summarize_output(iteration.output),
        )
        for index, iteration in enumerate(iterations, 1)
    )
    return SYNTHESIS_PROMPT.format(
        test_cases=test_cases,
        requirements=format_requirements([i.feedback for i in iterations]),
    )
