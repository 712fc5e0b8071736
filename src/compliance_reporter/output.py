"""
Report serialization.

Records are written as-is: no value conversion, no column reordering.
Column headers come from the record type.
"""

import csv
import io
import json
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ._types import MachineRecord


def _columns(records: Sequence[MachineRecord], columns: Optional[Sequence[str]]) -> List[str]:
    if columns is not None:
        return list(columns)
    if records:
        return type(records[0]).columns()
    return []


def format_table(records: Sequence[MachineRecord], columns: Optional[Sequence[str]] = None) -> str:
    """Column-aligned text table with a dashed rule under the header."""
    headers = _columns(records, columns)
    if not headers or not records:
        return ""

    rows = [[str(record.to_dict()[h]) for h in headers] for record in records]
    widths = [
        max(len(h), *(len(row[i]) for row in rows))
        for i, h in enumerate(headers)
    ]

    def line(cells: Sequence[str]) -> str:
        return " ".join(cell.ljust(width) for cell, width in zip(cells, widths)).rstrip()

    out = [line(headers), line(["-" * w for w in widths])]
    out.extend(line(row) for row in rows)
    return "\n".join(out) + "\n"


def format_csv(
    records: Sequence[MachineRecord],
    delimiter: str = ",",
    columns: Optional[Sequence[str]] = None,
) -> str:
    """Character-separated text with a header row."""
    headers = _columns(records, columns)
    if not headers:
        return ""

    output = io.StringIO()
    writer = csv.DictWriter(
        output,
        fieldnames=headers,
        delimiter=delimiter,
        lineterminator="\n",
    )
    writer.writeheader()
    writer.writerows(record.to_dict() for record in records)
    return output.getvalue()


def parse_csv(text: str, delimiter: str = ",") -> List[Dict[str, str]]:
    """Read format_csv output back into one dict of strings per row."""
    reader = csv.DictReader(io.StringIO(text), delimiter=delimiter)
    return [dict(row) for row in reader]


def format_json(records: Sequence[MachineRecord]) -> str:
    """JSON array of column -> value objects."""
    return json.dumps([record.to_dict() for record in records], indent=2) + "\n"


def write_output(text: str, path: Optional[Path] = None, stream=None) -> None:
    """Write report text to path, or to stream (stdout by default)."""
    if path is not None:
        with open(path, "w", newline="", encoding="utf-8") as f:
            f.write(text)
        return

    stream = stream or sys.stdout
    stream.write(text)
    stream.flush()
