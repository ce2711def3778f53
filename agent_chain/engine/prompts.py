"""Prompt templates and the default prompts used by the executor and memory."""

from __future__ import annotations

import string


class PromptTemplate:
    """``str.format``-style template with ``{name}`` placeholders."""

    def __init__(self, template: str) -> None:
        self.template = template

    @property
    def variables(self) -> set[str]:
        return {
            field for _, field, _, _ in string.Formatter().parse(self.template) if field
        }

    def format(self, **values: object) -> str:
        missing = self.variables - values.keys()
        if missing:
            raise KeyError(f"Missing template variables: {sorted(missing)}")
        return self.template.format(**values)


DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant. Use the available tools when they help you "
    "answer. If a tool fails, adapt your plan instead of repeating the same call."
)

CONTEXT_TEMPLATE = PromptTemplate("{system_prompt}\n\nRelevant context:\n{context}")

SUMMARY_PROMPT = (
    "Summarize the following conversation excerpt. Keep every fact, decision and "
    "tool result that later turns may depend on. Reply with the summary only."
)

SUMMARY_TEMPLATE = PromptTemplate("Summary of earlier conversation:\n{summary}")
