"""Directive construction for single-cell extraction."""

from .prompt_builder import PromptPlan, build_plan

__all__ = ["PromptPlan", "build_plan"]
