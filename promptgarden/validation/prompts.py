"""Execution prompt sent for each testing case during validation."""

from typing import Sequence

from promptgarden.models import Iteration, TestCase


EXAMPLE_TEMPLATE = """Example {index}:
Initial Input: "{prompt}"
Expected Output: "{output}"
Feedback: "{feedback}"
Score: {score}/5"""


RESPONSE_GUIDELINES = """Your response should:
- Follow the format and style defined in the expected output
- Ensure consistent structure matching the expected output pattern
- Be precise and concise in the response
- Address all the feedback points from the User Feedback History
- Apply patterns learned from the training examples"""


def format_feedback_history(iterations: Sequence[Iteration]) -> str:
    return "\n".join(
        f"- Feedback {index} (Score: {iteration.score}/5): {iteration.feedback}"
        for index, iteration in enumerate(iterations, 1)
    )


def format_training_examples(iterations: Sequence[Iteration]) -> str:
    return "\n\n".join(
        EXAMPLE_TEMPLATE.format(
            index=index,
            prompt=iteration.prompt,
            output=iteration.output,
            feedback=iteration.feedback,
            score=iteration.score,
        )
        for index, iteration in enumerate(iterations, 1)
    )


def build_execution_prompt(case: TestCase, iterations: Sequence[Iteration]) -> str:
    """
    Build the request for one testing case.

    The case's own prompt and expected output are embedded together with the
    feedback history and the iteration log as training examples. Sections
    with no content are left out.
    """
    sections = [
        "Generate an appropriate response based on the following information:",
        f'Initial Prompt: "{case.user_prompt}"\n'
        f'Expected Output Format: "{case.expected_output}"',
    ]
    if iterations:
        sections.append(f"User Feedback History:\n{format_feedback_history(iterations)}")
        sections.append(
            "Training Examples (Learn from these patterns):\n"
            f"{format_training_examples(iterations)}"
        )
    sections.append(RESPONSE_GUIDELINES)
    sections.append(
        "Please generate a response that fulfills these requirements "
        f'based on the initial prompt: "{case.user_prompt}"'
    )
    return "\n\n".join(sections)
