"""
Extraction of positional arguments from the pseudo-constructor calls the ONT embeds in its pages.

The web UI is server-rendered ASP and the interesting data never shows up in the HTML proper.
Instead, each page carries a <script> block along the lines of:

    var opticInfos = new Array(new stOpticInfo("InternetGatewayDevice.X_HW_DEBUG.AMP.Optic","ok","\\x202\\x2e33",...),null);

The "constructor" is never executed by us; it's just a positional record. Strings are hex escaped
(`\\x2e` -> `.`) so that the page survives whatever the firmware does to it on the way out.

This is deliberately NOT a JavaScript parser. Arguments are assumed to contain neither commas nor
parentheses which has held for every firmware page seen so far.
"""

import re
from collections.abc import Iterator

import structlog
from err.exceptions import ExtractionFailure

log = structlog.get_logger(__name__)

_HEX_ESCAPE = re.compile(r"\\x([0-9a-fA-F]{2})")
_DIGITS = re.compile(r"[0-9]+")

# Largest value an unsigned 64-bit counter on the ONT can hold
U64_MAX = 2**64 - 1


def _call_pattern(construct_name: str) -> re.Pattern:
    # `new USERDevice(` must not match `new USERDeviceNew(`, so the name is followed by optional
    #   whitespace and then the paren; nothing else.
    return re.compile(r"new\s+" + re.escape(construct_name) + r"\s*\(([^)]*)\)")


def decode_hex_escapes(text: str) -> str:
    """Replaces every `\\xHH` with the character whose code point is HH.

    The value is treated as a raw byte (latin-1), not as part of a UTF-8 sequence.
    A `\\x` that is not followed by two hex digits is left alone.
    """
    if "\\x" not in text:
        return text
    return _HEX_ESCAPE.sub(lambda m: chr(int(m.group(1), 16)), text)


def _strip_quotes(arg: str) -> str:
    if len(arg) >= 2 and arg[0] == arg[-1] and arg[0] in ("'", '"'):
        return arg[1:-1]
    return arg


def split_args(arg_span: str) -> list[str]:
    """Splits the text between the parens into cleaned, decoded arguments."""
    if arg_span.strip() == "":
        return []
    return [decode_hex_escapes(_strip_quotes(a.strip())) for a in arg_span.split(",")]


def extract_call_args(body: str, construct_name: str) -> list[str]:
    """Returns the arguments of the first `new <construct_name>(...)` in body.

    Raises:
        ExtractionFailure: if no invocation of construct_name exists in body.
    """
    match = _call_pattern(construct_name).search(body)
    if match is None:
        raise ExtractionFailure(f"No invocation of {construct_name} found")
    return split_args(match.group(1))


def iter_call_args(body: str, construct_name: str) -> Iterator[list[str]]:
    """Yields the arguments of every `new <construct_name>(...)` in body, in page order."""
    for match in _call_pattern(construct_name).finditer(body):
        yield split_args(match.group(1))


def to_float(raw: str, field: str) -> float:
    """Mandatory float; anything unparseable is fatal for the extraction."""
    try:
        return float(raw.strip())
    except ValueError as e:
        raise ExtractionFailure(f"Failed to parse {field}", payload=raw) from e


def to_uint(raw: str, field: str) -> int:
    """Mandatory unsigned 64-bit integer."""
    _v = raw.strip()
    if _DIGITS.fullmatch(_v) is None or int(_v) > U64_MAX:
        raise ExtractionFailure(f"Failed to parse {field}", payload=raw)
    return int(_v)


def optional_float(raw: str | None, field: str) -> float | None:
    """Optional float; a parse failure only costs us this one field."""
    if raw is None:
        return None
    try:
        return to_float(raw, field)
    except ExtractionFailure:
        log.warning("Dropping unparseable optional field", field=field, raw=raw)
        return None


def optional_uint(raw: str | None, field: str) -> int | None:
    """Optional unsigned 64-bit integer."""
    if raw is None:
        return None
    try:
        return to_uint(raw, field)
    except ExtractionFailure:
        log.warning("Dropping unparseable optional field", field=field, raw=raw)
        return None
