"""Prompt Refinement Garden: iterative prompt refinement and validation."""

__version__ = "0.1.0"
