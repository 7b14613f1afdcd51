from .client import GristDocAPI
from .exceptions import (
    GristAPIError, ValidationError, NotFoundError, ConfigError,
    RemoteError, AuthenticationError, APIConnectionError
)
from .schemas import Record, TableData, Filters, CopyInfo, SyncResult, ErrorResponse
from .sync import SyncPlan, build_sync_plan, reconcile, find_obsolete_ids
from .utils import make_key, filter_matches, values_equal

__all__ = [
    "GristDocAPI",
    "GristAPIError", "ValidationError", "NotFoundError", "ConfigError",
    "RemoteError", "AuthenticationError", "APIConnectionError",
    "Record", "TableData", "Filters", "CopyInfo", "SyncResult", "ErrorResponse",
    "SyncPlan", "build_sync_plan", "reconcile", "find_obsolete_ids",
    "make_key", "filter_matches", "values_equal",
]
