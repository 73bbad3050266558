"""
Prompt templates for structured generation.

A template is a fixed instruction string with named placeholders:
    {{field}}        plain text substitution
    {{media field}}  embedded media reference (data URI sent as an image part)

PHI note: rendered prompts contain user input - NEVER log them.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

_PLACEHOLDER_RE = re.compile(r"\{\{\s*(media\s+)?([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


@dataclass(frozen=True)
class RenderedPrompt:
    """A template with its inputs substituted, ready for a transport."""
    name: str
    system: str
    text: str
    media: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class PromptTemplate:
    """Named prompt: a system instruction plus a user template."""
    name: str
    system: str
    template: str

    @property
    def fields(self) -> frozenset[str]:
        """Names of all placeholders referenced by the template."""
        return frozenset(m.group(2) for m in _PLACEHOLDER_RE.finditer(self.template))

    def render(self, values: Mapping[str, Any]) -> RenderedPrompt:
        """
        Substitute values into the template.

        Raises:
            KeyError: If a placeholder has no value.
        """
        media: list[str] = []

        def _substitute(match: re.Match) -> str:
            is_media, key = match.group(1), match.group(2)
            value = values[key]
            if is_media:
                media.append(str(value))
                return f"[attached image {len(media)}]"
            return str(value)

        text = _PLACEHOLDER_RE.sub(_substitute, self.template)
        return RenderedPrompt(name=self.name, system=self.system, text=text, media=media)
