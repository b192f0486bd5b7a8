"""Recover a JSON object from noisy model output.

Generative models wrap JSON in prose, emit smart quotes, or leave trailing
commas. ``parse_json_with_repair`` tries progressively looser readings and
returns ``None`` when nothing works; it never raises.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, List, Optional

_SMART_DOUBLE_QUOTES = re.compile("[“”]")
_SMART_SINGLE_QUOTES = re.compile("[‘’]")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")


@dataclass
class ParsedJson:
    value: Any
    warning: bool = False  # True when the source was not well-formed JSON


def extract_first_json_object(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` substring, or None.

    Braces inside double-quoted strings (including escaped quotes) are
    ignored while counting depth.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        char = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def repair_json_once(text: str) -> str:
    text = _SMART_DOUBLE_QUOTES.sub('"', text)
    text = _SMART_SINGLE_QUOTES.sub("'", text)
    return _TRAILING_COMMA.sub(r"\1", text)


def parse_json_with_repair(text: Any) -> Optional[ParsedJson]:
    if not isinstance(text, str):
        return None

    verbatim = text.strip()
    candidates: List[str] = []
    if verbatim:
        candidates.append(verbatim)
    extracted = extract_first_json_object(text)
    if extracted and extracted != verbatim:
        candidates.append(extracted)

    for index, candidate in enumerate(candidates):
        try:
            # Only the untouched text counts as well-formed.
            return ParsedJson(value=json.loads(candidate), warning=index > 0)
        except (ValueError, RecursionError):
            pass
        try:
            return ParsedJson(value=json.loads(repair_json_once(candidate)), warning=True)
        except (ValueError, RecursionError):
            continue

    return None
