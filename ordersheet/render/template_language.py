"""
Template language for fixed and templated cell values.

A template is plain text with zero or more placeholders:

    "{{manufacturerName}} 발주"              -> field / computed variable
    "{{orderName || recipientName}}"        -> first non-empty alternative
    "{{memo || '부재시 문앞'}}"              -> quoted literal as last resort

Templates are compiled once (TemplateParser) into a TemplateExpression and
evaluated against a lookup callable. Evaluation never raises: an unknown
token resolves to an empty string. Syntax errors are raised at compile time.
"""

import functools
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple, Union

from ordersheet.errors import ValidationError

logger = logging.getLogger(__name__)

OPEN = "{{"
CLOSE = "}}"
ALTERNATIVE = "||"
QUOTES = ("'", '"')


@dataclass(frozen=True)
class TextSegment:
    text: str


@dataclass(frozen=True)
class Reference:
    name: str


@dataclass(frozen=True)
class LiteralValue:
    value: str


Alternative = Union[Reference, LiteralValue]


@dataclass(frozen=True)
class Placeholder:
    alternatives: Tuple[Alternative, ...]

    def evaluate(self, lookup: Callable[[str], Any]) -> str:
        for alt in self.alternatives:
            if isinstance(alt, LiteralValue):
                candidate = alt.value
            else:
                raw = lookup(alt.name)
                candidate = "" if raw is None else str(raw)
            candidate = candidate.strip()
            if candidate:
                return candidate
        return ""


class TemplateExpression:
    """A compiled template. Immutable; safe to share between rows and rule sets."""

    def __init__(self, source: str, parts: List[Union[TextSegment, Placeholder]]):
        self.source = source
        self.parts = tuple(parts)

    @property
    def is_blank(self) -> bool:
        return not self.source.strip()

    @property
    def references(self) -> List[str]:
        names = []
        for part in self.parts:
            if isinstance(part, Placeholder):
                names.extend(a.name for a in part.alternatives if isinstance(a, Reference))
        return names

    def render(self, lookup: Callable[[str], Any]) -> str:
        chunks = []
        for part in self.parts:
            if isinstance(part, TextSegment):
                chunks.append(part.text)
            else:
                chunks.append(part.evaluate(lookup))
        return "".join(chunks)

    def __repr__(self):
        return f"TemplateExpression({self.source!r})"


class TemplateParser:
    """Tokenizer for the `{{a || b || 'literal'}}` syntax."""

    def parse(self, text: str) -> TemplateExpression:
        if text is None:
            text = ""
        parts: List[Union[TextSegment, Placeholder]] = []
        pos = 0
        while pos < len(text):
            start = text.find(OPEN, pos)
            if start == -1:
                parts.append(TextSegment(text[pos:]))
                break
            if start > pos:
                parts.append(TextSegment(text[pos:start]))
            placeholder, pos = self._parse_placeholder(text, start)
            parts.append(placeholder)
        return TemplateExpression(text, parts)

    def _parse_placeholder(self, text: str, start: int) -> Tuple[Placeholder, int]:
        alternatives: List[Alternative] = []
        i = start + len(OPEN)
        n = len(text)

        while True:
            while i < n and text[i].isspace():
                i += 1
            if i >= n:
                self._fail(text, start, "Unclosed placeholder", f"Add '{CLOSE}' to close the placeholder")

            if text[i] in QUOTES:
                quote = text[i]
                end = text.find(quote, i + 1)
                if end == -1:
                    self._fail(text, i, "Unterminated literal", f"Close the literal with {quote}")
                alternatives.append(LiteralValue(text[i + 1:end]))
                i = end + 1
                while i < n and text[i].isspace():
                    i += 1
                if text.startswith(ALTERNATIVE, i):
                    i += len(ALTERNATIVE)
                    continue
                if text.startswith(CLOSE, i):
                    return Placeholder(tuple(alternatives)), i + len(CLOSE)
                if i >= n:
                    self._fail(text, start, "Unclosed placeholder", f"Add '{CLOSE}' to close the placeholder")
                self._fail(text, i, "Unexpected text after literal", f"Separate alternatives with '{ALTERNATIVE}'")

            next_alt = text.find(ALTERNATIVE, i)
            next_close = text.find(CLOSE, i)
            if next_close == -1:
                self._fail(text, start, "Unclosed placeholder", f"Add '{CLOSE}' to close the placeholder")

            if next_alt != -1 and next_alt < next_close:
                end, terminator = next_alt, ALTERNATIVE
            else:
                end, terminator = next_close, CLOSE

            name = text[i:end].strip()
            if not name:
                self._fail(text, i, "Empty alternative", "Remove the extra '||' or add a token name")
            if OPEN in name:
                self._fail(text, start, "Nested placeholder", "Placeholders cannot contain '{{'")
            alternatives.append(Reference(name))
            i = end + len(terminator)
            if terminator == CLOSE:
                return Placeholder(tuple(alternatives)), i

    def _fail(self, text: str, position: int, issue: str, fix: str):
        detail = f"{issue} at position {position} in template {text!r}"
        raise ValidationError(detail, issues=[{"issue": issue, "detail": detail, "fix": fix}])


_parser = TemplateParser()


@functools.lru_cache(maxsize=1024)
def compile_template(text: str) -> TemplateExpression:
    """Parse and cache a template. Raises ValidationError on malformed syntax."""
    return _parser.parse(text)


def render_template(text: str, values: dict) -> str:
    """Convenience one-shot render against a plain dict."""
    return compile_template(text).render(values.get)


# Single-brace placeholders used by older email subject settings
LEGACY_SUBJECT_PLACEHOLDERS = {
    "{제조사명}": "manufacturerName",
    "{날짜}": "date",
    "{발신자명}": "senderName",
}
DEFAULT_EMAIL_SUBJECT = "[다온에프앤씨 발주서]_{제조사명}_{날짜}"

_LEGACY_RE = re.compile("|".join(re.escape(k) for k in LEGACY_SUBJECT_PLACEHOLDERS))


def render_email_subject(template: Optional[str], manufacturer_name: str, date: str,
                         sender_name: str = "") -> str:
    """
    Render an email subject. Accepts both `{{token}}` and the legacy
    `{제조사명}` / `{날짜}` / `{발신자명}` placeholders.
    """
    source = template if template and template.strip() else DEFAULT_EMAIL_SUBJECT
    values = {"manufacturerName": manufacturer_name, "date": date, "senderName": sender_name}

    # Legacy placeholders first; their braces would otherwise never match '{{'
    source = _LEGACY_RE.sub(lambda m: values[LEGACY_SUBJECT_PLACEHOLDERS[m.group(0)]], source)
    return compile_template(source).render(values.get).strip()
