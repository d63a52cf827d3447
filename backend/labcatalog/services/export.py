from __future__ import annotations

from collections.abc import Iterable

from ..schemas import LabTest
from .codec import format_number

EXPORT_HEADER = "Test Name,Price,Parameter,Unit,Normal Range"
EXPORT_FILENAME = "tests.csv"


def _quote(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def export_csv(tests: Iterable[LabTest]) -> str:
    """One row per (test, parameter) pair, for spreadsheets. Never read back."""
    lines = [EXPORT_HEADER]
    for test in tests:
        for p in test.parameters:
            lines.append(
                ",".join(
                    [
                        _quote(test.name),
                        format_number(test.price),
                        _quote(p.name),
                        _quote(p.unit),
                        _quote(p.normal_range),
                    ]
                )
            )
    return "\n".join(lines) + "\n"
