# grist_invoice_sync/grist_api/utils.py
#
#
# Imports
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Sequence, Tuple
#
# Local Imports
from .exceptions import ValidationError
from .schemas import Filters, Record, TableData
#
#######################################################################################################################
#
# Functions:

# Values for which equality is defined. Anything else (lists, dicts) is a composite value.
SCALAR_TYPES = (str, int, float, bool, type(None))


def is_scalar(value: Any) -> bool:
    return isinstance(value, SCALAR_TYPES)


def values_equal(a: Any, b: Any) -> bool:
    """
    Strict equality over scalar cell values.

    Composite values (e.g. Grist's ['d', 1234567] encoding) always compare unequal, and a bool is
    never equal to a number, so True vs 1 counts as a change.
    """
    if not is_scalar(a) or not is_scalar(b):
        return False
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    return a == b


@dataclass(frozen=True)
class _BoolKey:
    # Keeps True/False from colliding with 1/0 (equal and same hash) inside keys.
    value: bool


def _freeze(value: Any) -> Any:
    if isinstance(value, bool):
        return _BoolKey(value)
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    if isinstance(value, dict):
        return tuple(sorted((k, _freeze(v)) for k, v in value.items()))
    return value


def make_key(record: Record, key_col_ids: Sequence[str]) -> Tuple[Any, ...]:
    """
    Builds the composite key of a record from the given key columns, in order.

    The result is hashable and compares by value, so it can index a dict of rows.
    Raises ValidationError if the record lacks any of the key columns.
    """
    missing = [col_id for col_id in key_col_ids if col_id not in record]
    if missing:
        raise ValidationError(f"Record is missing key column(s) {missing}: {record!r}")
    return tuple(_freeze(record[col_id]) for col_id in key_col_ids)


def filter_matches(record: Record, filters: Filters) -> bool:
    """Checks if a record matches a set of filters. Composite values never match."""
    return all(
        any(values_equal(record.get(col_id), accepted) for accepted in accepted_values)
        for col_id, accepted_values in filters.items()
    )


def chunk(items: Sequence[Any], size: int) -> Iterator[List[Any]]:
    """Yields successive lists of at most `size` items."""
    if size < 1:
        raise ValueError(f"Chunk size must be positive, got {size}")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


def make_table_data(records: Iterable[Record]) -> TableData:
    """Converts a list of records into a column-oriented dict, as the Grist REST API expects."""
    records = list(records)
    all_keys: Dict[str, None] = {}
    for rec in records:
        for key in rec:
            all_keys.setdefault(key, None)
    return {key: [rec.get(key) for rec in records] for key in all_keys}


def table_data_to_records(data: TableData) -> List[Record]:
    """Converts column-oriented data (with an 'id' column) into a list of row records."""
    return [
        {col_id: values[index] for col_id, values in data.items()}
        for index in range(len(data["id"]))
    ]


def group_by_columns(records: Iterable[Record]) -> Dict[Tuple[str, ...], List[Record]]:
    """Groups records by their (sorted) set of column ids, preserving order within each group."""
    groups: Dict[Tuple[str, ...], List[Record]] = {}
    for rec in records:
        groups.setdefault(tuple(sorted(rec)), []).append(rec)
    return groups


def desc_col_values(data: TableData) -> str:
    """Returns a human-readable summary of column-oriented table data."""
    keys = list(data)
    num_rows = len(data[keys[0]]) if keys else 0
    return f"{num_rows} rows, cols ({', '.join(sorted(keys))})"


def pick(record: Record, col_ids: Iterable[str]) -> Record:
    return {col_id: record[col_id] for col_id in col_ids if col_id in record}

#
# End of utils.py
#######################################################################################################################
