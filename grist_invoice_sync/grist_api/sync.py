# grist_invoice_sync/grist_api/sync.py
# Description: Reconciles a Grist table with a list of source records: computes and applies the
# updates and additions needed so the table matches the records on a set of key columns.
#
# Imports
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, TYPE_CHECKING
#
# 3rd-party Libraries
from loguru import logger
#
# Local Imports
from .exceptions import ValidationError
from .schemas import Filters, Record
from .utils import filter_matches, make_key, values_equal

if TYPE_CHECKING:
    from .client import GristDocAPI
#
#######################################################################################################################
#
# Functions:

@dataclass
class SyncPlan:
    """The operations computed for one sync of one table. Not persisted."""
    table_name: str
    updates: List[Record] = field(default_factory=list)
    additions: List[Record] = field(default_factory=list)
    existing_count: int = 0
    considered_count: int = 0
    filtered_out_count: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.updates and not self.additions

    def describe(self) -> str:
        return (f"syncTable {self.table_name} ({self.existing_count}) with {self.considered_count} records "
                f"({self.filtered_out_count} filtered out): {len(self.updates)} updates, {len(self.additions)} new")


def validate_sync_args(
    records: Sequence[Record],
    key_col_ids: Sequence[str],
    filters: Optional[Filters] = None,
) -> None:
    """Raises ValidationError for filters on non-key columns, or records lacking key columns."""
    if not key_col_ids:
        raise ValidationError("sync requires at least one key column")
    if filters and not all(col_id in key_col_ids for col_id in filters):
        raise ValidationError("sync requires key columns to include all filter columns")
    for rec in records:
        make_key(rec, key_col_ids)


def build_sync_plan(
    table_name: str,
    existing: Sequence[Record],
    records: Sequence[Record],
    key_col_ids: Sequence[str],
    filters: Optional[Filters] = None,
) -> SyncPlan:
    """
    Diffs source `records` against the `existing` rows of a table.

    Existing rows are indexed by key (a later row wins on a key collision). Each source record
    that passes `filters` becomes an update of only its changed columns (plus "id") when its key
    matches an existing row, or an addition otherwise. When several source records share a key,
    the last one decides the plan entry for that key.
    """
    validate_sync_args(records, key_col_ids, filters)

    existing_rows: Dict[Tuple[Any, ...], Record] = {}
    for old_rec in existing:
        existing_rows[make_key({col: old_rec.get(col) for col in key_col_ids}, key_col_ids)] = old_rec

    plan = SyncPlan(table_name=table_name, existing_count=len(existing_rows))
    updates: Dict[Tuple[Any, ...], Record] = {}
    additions: Dict[Tuple[Any, ...], Record] = {}
    for new_rec in records:
        # Ignore new records which don't match the filters.
        if filters and not filter_matches(new_rec, filters):
            plan.filtered_out_count += 1
            continue
        plan.considered_count += 1
        key = make_key(new_rec, key_col_ids)
        old_rec = existing_rows.get(key)
        if old_rec is None:
            logger.debug(f"syncTable {table_name}: {key} not in grist")
            additions[key] = dict(new_rec)
            continue
        changed = [col_id for col_id in new_rec if col_id != "id" and not values_equal(new_rec[col_id], old_rec.get(col_id))]
        if changed:
            logger.debug(f"syncTable {table_name}: #{old_rec['id']} {key} needs updates "
                         f"{[(col_id, old_rec.get(col_id), new_rec[col_id]) for col_id in changed]}")
            update = {col_id: new_rec[col_id] for col_id in changed}
            update["id"] = old_rec["id"]
            updates[key] = update
        else:
            updates.pop(key, None)

    plan.updates = list(updates.values())
    plan.additions = list(additions.values())
    return plan


async def reconcile(
    api: "GristDocAPI",
    table_name: str,
    records: Sequence[Record],
    key_col_ids: Sequence[str],
    filters: Optional[Filters] = None,
) -> SyncPlan:
    """
    Updates a Grist table with new data, updating existing rows or adding new ones, matching rows
    on the given key columns. Rows are never removed; see find_obsolete_ids.

    If filters is given, its columns must be among key_col_ids. Only existing records matching the
    filters are candidates for update, and new records not matching them are ignored.

    Without transactions, an error part way through leaves the table partially synced. Rerunning
    re-diffs against the current state and only sends what's left.
    """
    validate_sync_args(records, key_col_ids, filters)
    existing = await api.fetch_table(table_name, filters)
    plan = build_sync_plan(table_name, existing, records, key_col_ids, filters)
    logger.info(plan.describe())
    await api.update_records(table_name, plan.updates)
    await api.add_records(table_name, plan.additions)
    return plan


def find_obsolete_ids(
    existing: Sequence[Record],
    synced: Sequence[Record],
    key_col_ids: Sequence[str],
) -> List[int]:
    """Returns ids of existing rows whose key doesn't appear among the synced records."""
    synced_keys = {make_key(rec, key_col_ids) for rec in synced}
    return [
        old_rec["id"] for old_rec in existing
        if make_key({col: old_rec.get(col) for col in key_col_ids}, key_col_ids) not in synced_keys
    ]

#
# End of sync.py
#######################################################################################################################
