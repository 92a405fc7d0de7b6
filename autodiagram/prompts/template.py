"""Minimal prompt templating on top of `string.Template`.

Placeholders use the `${name}` form so Mermaid snippets and JSON examples with
curly braces can live in templates untouched.
"""
from __future__ import annotations

import re
from string import Template
from typing import Any, Dict, Tuple


_BLANK_RUN_RE = re.compile(r"\n{3,}")


def _stringify(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(item) for item in value)
    if hasattr(value, "value") and isinstance(getattr(value, "value"), str):
        return value.value
    return str(value)


class PromptTemplate:
    def __init__(self, text: str):
        self.text = text
        self._template = Template(text)

    @property
    def keys(self) -> Tuple[str, ...]:
        names = []
        for match in self._template.pattern.finditer(self.text):
            name = match.group("named") or match.group("braced")
            if name and name not in names:
                names.append(name)
        return tuple(names)

    def format(self, **values: Any) -> str:
        """Substitute every placeholder; a missing or None value is an error."""
        missing = [key for key in self.keys if values.get(key) is None]
        if missing:
            raise ValueError(f"Missing template values: {', '.join(missing)}")
        return self._template.substitute({key: _stringify(values[key]) for key in self.keys})

    def format_optional(self, **values: Any) -> str:
        """Substitute placeholders, rendering missing, None or empty values as nothing."""
        mapping: Dict[str, str] = {}
        for key in self.keys:
            value = values.get(key)
            mapping[key] = "" if value is None or value == "" else _stringify(value)
        rendered = self._template.substitute(mapping)
        return _BLANK_RUN_RE.sub("\n\n", rendered).strip()
