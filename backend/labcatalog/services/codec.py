"""
Delimited-text format of the csv store:

    name,price,parameters
    CBC,50,"[{""name"":""Hemoglobin"",""unit"":""g/dL"",""normalRange"":""13.8-17.2""}]"

One row per test; the parameter list is embedded as a single JSON field.
"""
from __future__ import annotations

import json
import math
from collections.abc import Iterable
from dataclasses import dataclass, field

from loguru import logger
from pydantic import ValidationError

from ..schemas import LabTest, Parameter

HEADER = "name,price,parameters"


@dataclass
class DecodeResult:
    tests: list[LabTest] = field(default_factory=list)
    skipped: int = 0  # malformed rows dropped while decoding


def format_number(value: float) -> str:
    value = float(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value.is_integer():
        return str(int(value))
    return repr(value)


def parse_number(text: str) -> float:
    try:
        return float(text.strip())
    except ValueError:
        return math.nan


def escape_field(value: str) -> str:
    if '"' in value or "," in value or "\n" in value or "\r" in value:
        return '"' + value.replace('"', '""') + '"'
    return value


def encode_parameters(parameters: Iterable[Parameter]) -> str:
    return json.dumps(
        [p.model_dump(by_alias=True) for p in parameters],
        ensure_ascii=False,
        separators=(",", ":"),
    )


def encode_row(test: LabTest) -> str:
    return ",".join(
        [
            escape_field(test.name),
            escape_field(format_number(test.price)),
            escape_field(encode_parameters(test.parameters)),
        ]
    )


def encode(tests: Iterable[LabTest]) -> str:
    lines = [HEADER] + [encode_row(t) for t in tests]
    return "\n".join(lines) + "\n"


def scan_record(text: str, start: int) -> tuple[list[str], int]:
    """
    Reads one record from *start*. Quoted sections may hold commas and
    newlines; "" inside quotes is a literal quote. CRLF endings are accepted.
    Returns the fields and the offset just past the record.
    """
    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    n = len(text)
    i = start
    while i < n:
        ch = text[i]
        if in_quotes:
            if ch == '"':
                if i + 1 < n and text[i + 1] == '"':
                    current.append('"')
                    i += 1
                else:
                    in_quotes = False
            else:
                current.append(ch)
        elif ch == '"':
            in_quotes = True
        elif ch == ",":
            fields.append("".join(current))
            current = []
        elif ch == "\n":
            fields.append("".join(current))
            return fields, i + 1
        elif ch == "\r" and i + 1 < n and text[i + 1] == "\n":
            pass
        else:
            current.append(ch)
        i += 1

    fields.append("".join(current))
    return fields, n


def _is_text(value: str) -> bool:
    # undecodable bytes survive as lone surrogates (surrogateescape)
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def _decode_row(fields: list[str]) -> LabTest | None:
    if len(fields) < 3 or not all(_is_text(f) for f in fields[:3]):
        return None
    try:
        raw = json.loads(fields[2])
    except json.JSONDecodeError:
        return None
    if not isinstance(raw, list):
        return None
    try:
        parameters = [Parameter.model_validate(p) for p in raw]
    except ValidationError:
        return None
    return LabTest(name=fields[0], price=parse_number(fields[1]), parameters=parameters)


def decode(text: str) -> DecodeResult:
    result = DecodeResult()
    # header line is dropped as-is, whatever it holds
    _, sep, body = text.partition("\n")
    if not sep:
        return result

    pos = 0
    line = 2
    while pos < len(body):
        fields, end = scan_record(body, pos)
        if len(fields) == 1 and not fields[0].strip():
            line += body.count("\n", pos, end)
            pos = end
            continue

        test = _decode_row(fields)
        if test is None:
            # drop only the first physical line; an unmatched quote must not
            # take the following rows with it
            next_line = body.find("\n", pos)
            next_pos = len(body) if next_line == -1 else next_line + 1
            result.skipped += 1
            logger.warning("Skipping malformed line {}: {!r}", line, body[pos:next_pos][:40])
            line += 1
            pos = next_pos
            continue

        result.tests.append(test)
        line += body.count("\n", pos, end)
        pos = end
    return result
