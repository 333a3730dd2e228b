"""Test case models shared by training and validation."""

from typing import ClassVar

from pydantic import BaseModel, Field


class TestCase(BaseModel):
    """A (prompt, expected output) pair. Identity is its index in the owning set."""

    __test__: ClassVar[bool] = False

    user_prompt: str = Field(default="", description="Prompt sent to the model")
    expected_output: str = Field(default="", description="Output the user expects")

    def is_blank(self) -> bool:
        """Check whether both fields are empty."""
        return not self.user_prompt.strip() and not self.expected_output.strip()


CaseSet = list[TestCase]


class CaseSplit(BaseModel):
    """Training and testing sets derived from a single import."""

    training: CaseSet = Field(default_factory=list)
    testing: CaseSet = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.training) + len(self.testing)
