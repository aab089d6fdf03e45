"""Flat-record conversion helpers used at the output boundary.

Nodes expose their content as lists of flat records (``to_record`` and the
``get_formatted_*`` family). The functions below turn such lists into the
representation requested by the caller:

        * ``None`` / ``"json"``: the records themselves (JSON-ready values).
        * ``"csv"``: a CSV document with a header row. Columns appear in the
          order in which keys are first seen across all records; strings are
          quoted, numbers and booleans are written bare and missing values are
          left empty.
"""

from __future__ import annotations

import csv
import io
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

FORMATS = ("json", "csv")

_CAMEL_RE = re.compile(r"_([a-z0-9])")


def to_camel(name: str) -> str:
    """Convert a snake_case attribute name to the camelCase used by the API.

    Example:
        >>> to_camel("simple_datatype")
        'simpleDatatype'
    """
    return _CAMEL_RE.sub(lambda match: match.group(1).upper(), name)


def _is_scalar(value: Any) -> bool:
    return value is None or isinstance(value, (str, int, float, bool))


def flatten_record(record: Mapping[str, Any]) -> Dict[str, Any]:
    """Reduce a record to scalar values.

    Lists of scalars are joined with commas, every other nested value (dicts,
    lists of objects, node instances) is dropped.
    """
    flat: Dict[str, Any] = {}
    for key, value in record.items():
        if _is_scalar(value):
            flat[key] = value
        elif isinstance(value, (list, tuple)) and all(_is_scalar(v) for v in value):
            flat[key] = ",".join("" if v is None else str(v) for v in value)
    return flat


def _csv_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    return value


def records_to_csv(records: Sequence[Mapping[str, Any]]) -> str:
    """Serialize flat records as CSV text without a trailing line break."""
    columns: List[str] = []
    for record in records:
        for key in record:
            if key not in columns:
                columns.append(key)

    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    writer.writerow(columns)
    for record in records:
        writer.writerow([_csv_value(record.get(column)) for column in columns])
    return buffer.getvalue().rstrip("\n")


def convert_to_format(
    records: Union[Sequence[Any], Iterable[Any]], format: Optional[str] = None
) -> Union[List[Any], str]:
    """Convert records to the requested output format.

    Args:
        records: Flat records (mappings) or plain scalar values.
        format: ``None``, ``"json"`` or ``"csv"``.

    Returns:
        The records list for JSON output, CSV text otherwise.

    Raises:
        ValueError: For an unsupported format name.
    """
    items = list(records)
    if format is None or format == "json":
        return items
    if format == "csv":
        rows = [item if isinstance(item, Mapping) else {"value": item} for item in items]
        return records_to_csv(rows)
    raise ValueError(f"Unsupported output format: {format!r}")
