"""Best-effort recovery of JSON objects from free-form model output."""
import json
import re
from typing import Any, Dict, List, Optional

from services.errors import MalformedResponseError

# Double-quoted JSON string literal, escapes included
STRING_LITERAL = re.compile(r'"(?:\\.|[^"\\])*"')
BARE_KEY = re.compile(r'([{,]\s*)([A-Za-z_$][\w$-]*)(\s*):')
TRAILING_COMMA = re.compile(r',(\s*[}\]])')
CLOSERS = {"{": "}", "[": "]"}


def extract_json_object(text: str) -> Optional[str]:
    """
    Return the first balanced ``{...}`` span in ``text``.

    Brackets inside quoted strings (single or double) are ignored. If the
    output was cut off before the object closed, the open string and
    brackets are closed so repair can still be attempted.
    """
    start = text.find("{")
    if start == -1:
        return None

    stack: List[str] = []
    quote: Optional[str] = None
    escaped = False

    for idx in range(start, len(text)):
        char = text[idx]
        if quote:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = None
            continue

        if char in ('"', "'"):
            quote = char
        elif char in CLOSERS:
            stack.append(CLOSERS[char])
        elif char in ("}", "]"):
            if stack and stack[-1] == char:
                stack.pop()
            if not stack:
                return text[start:idx + 1]

    # Truncated output: close whatever is still open
    tail = text[start:].rstrip()
    if quote:
        tail += quote
    return tail + "".join(reversed(stack))


def convert_single_quotes(text: str) -> str:
    """Rewrite single-quoted string literals as double-quoted ones."""
    out: List[str] = []
    quote: Optional[str] = None
    escaped = False

    for char in text:
        if quote == '"':
            out.append(char)
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                quote = None
        elif quote == "'":
            if escaped:
                # \' becomes a plain apostrophe; other escapes are kept
                out.append(char if char == "'" else "\\" + char)
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == "'":
                out.append('"')
                quote = None
            elif char == '"':
                out.append('\\"')
            else:
                out.append(char)
        else:
            if char == "'":
                out.append('"')
                quote = "'"
            else:
                out.append(char)
                if char == '"':
                    quote = '"'

    return "".join(out)


def _repair_outside_strings(segment: str) -> str:
    segment = BARE_KEY.sub(r'\1"\2"\3:', segment)
    return TRAILING_COMMA.sub(r'\1', segment)


def repair_json(text: str) -> str:
    """
    Apply the usual fixes for almost-JSON produced by small models.

    Single-quoted strings become double-quoted, bare object keys are quoted,
    and trailing commas before ``}`` or ``]`` are dropped. String contents
    are never modified.
    """
    text = convert_single_quotes(text)

    parts: List[str] = []
    position = 0
    for match in STRING_LITERAL.finditer(text):
        parts.append(_repair_outside_strings(text[position:match.start()]))
        parts.append(match.group(0))
        position = match.end()
    parts.append(_repair_outside_strings(text[position:]))
    return "".join(parts)


def parse_json_object(text: str) -> Dict[str, Any]:
    """
    Extract, repair and parse the first JSON object in model output.

    Raises:
        MalformedResponseError: If no object is found or it cannot be parsed
    """
    if not text or not text.strip():
        raise MalformedResponseError("Model returned an empty response")

    candidate = extract_json_object(text)
    if candidate is None:
        raise MalformedResponseError(
            "No JSON object found in model response",
            details={"response_preview": text[:200]}
        )

    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass

    repaired = repair_json(candidate)
    try:
        parsed = json.loads(repaired)
    except json.JSONDecodeError as e:
        raise MalformedResponseError(
            f"Generated response is not valid JSON: {e.msg}",
            details={"response_preview": text[:200]}
        ) from e

    if not isinstance(parsed, dict):
        raise MalformedResponseError("Generated JSON is not an object")
    return parsed
