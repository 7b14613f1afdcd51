# grist_invoice_sync/grist_api/client.py
#
#
# Imports
import json
import re
from typing import Any, Dict, List, Optional, Sequence, TYPE_CHECKING
from urllib.parse import quote
#
# 3rd-party Libraries
import httpx
from loguru import logger
#
# Local Imports
from .exceptions import APIConnectionError, AuthenticationError, ConfigError, RemoteError, ValidationError
from .schemas import Filters, Record
from .sync import SyncPlan, reconcile
from .utils import chunk, desc_col_values, group_by_columns, make_table_data, table_data_to_records

if TYPE_CHECKING:
    from grist_invoice_sync.config import GristSettings
#
########################################################################################################################
#
# Functions:

DEFAULT_SERVER = "https://api.getgrist.com"
DEFAULT_CHUNK_SIZE = 500
DEFAULT_TIMEOUT = 30.0

_DOC_URL_RE = re.compile(r"^(https?:.*)/doc/([^/?#]+)")


def _is_valid_row_id(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


class GristDocAPI:
    """
    Client for one Grist document.

    `doc_url_or_id` is either a full doc URL (".../doc/<docId>"), in which case the server is taken
    from the URL, or just the doc id. Explicit keyword arguments override values from `settings`.
    """

    def __init__(
        self,
        doc_url_or_id: str,
        settings: Optional["GristSettings"] = None,
        *,
        server: Optional[str] = None,
        api_key: Optional[str] = None,
        chunk_size: Optional[int] = None,
        dry_run: Optional[bool] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.server = (server or (settings.server if settings else None) or DEFAULT_SERVER).rstrip('/')
        self.api_key = api_key or (settings.api_key if settings else None)
        self.chunk_size = chunk_size or (settings.chunk_size if settings else DEFAULT_CHUNK_SIZE)
        self.dry_run = bool(dry_run if dry_run is not None else (settings.dry_run if settings else False))
        self.timeout = timeout or (settings.request_timeout if settings else DEFAULT_TIMEOUT)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        match = _DOC_URL_RE.match(doc_url_or_id or "")
        if match:
            self.server = match.group(1)
            self.doc_id = match.group(2)
        else:
            self.doc_id = doc_url_or_id
        if not self.doc_id:
            raise ConfigError("Grist document id is required")
        if not self.api_key:
            raise ConfigError("Grist API key not configured (set GRIST_API_KEY or ~/.grist-api-key)")
        if self.chunk_size < 1:
            raise ConfigError(f"chunk_size must be positive, got {self.chunk_size}")

    @property
    def doc_url(self) -> str:
        return f"{self.server}/doc/{self.doc_id}"

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.server,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "GristDocAPI":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    # --- Table operations ---

    async def fetch_table(self, table_name: str, filters: Optional[Filters] = None) -> List[Record]:
        """
        Fetch all data in the table, returning a list of records keyed by column id.

        If filters is given, it maps column ids to lists of acceptable values, to fetch only
        matching records.
        """
        query = f"?filter={quote(json.dumps(filters))}" if filters else ""
        data = await self.doc_call(f"tables/{table_name}/data{query}")
        if not isinstance(data, dict) or not isinstance(data.get("id"), list):
            raise RemoteError(f"fetch_table {table_name} returned bad response: id column is not a list")
        num_rows = len(data["id"])
        for col_id, values in data.items():
            if not isinstance(values, list) or len(values) != num_rows:
                raise RemoteError(
                    f"fetch_table {table_name} returned bad response: column {col_id} does not have {num_rows} values"
                )
        logger.debug(f"fetch_table {table_name} returned {num_rows} rows")
        return table_data_to_records(data)

    async def add_records(self, table_name: str, records: Sequence[Record]) -> List[int]:
        """Adds new records to the table, returning the list of added rowIds in input order."""
        if not records:
            return []
        results: List[int] = []
        for recs in chunk(records, self.chunk_size):
            data = make_table_data(recs)
            logger.debug(f"add_records {table_name} {desc_col_values(data)}")
            resp = await self.doc_call(f"tables/{table_name}/data", data, "POST")
            if resp is None and self.dry_run:
                continue
            if not isinstance(resp, list) or len(resp) != len(recs):
                raise RemoteError(
                    f"add_records {table_name} returned bad response: expected {len(recs)} row ids, got {resp!r}"
                )
            results.extend(resp)
        return results

    async def update_records(self, table_name: str, records: Sequence[Record]) -> None:
        """
        Update existing records. Each record must contain the key "id" with the rowId to update.

        A single request requires a uniform set of columns, so records are grouped by column set
        and each group is sent separately (in chunks). If a request fails, earlier ones stay applied.
        """
        for rec in records:
            if not _is_valid_row_id(rec.get("id")):
                raise ValidationError(f"update_records requires numeric 'id' attribute in each record: {rec!r}")
        for group in group_by_columns(records).values():
            for recs in chunk(group, self.chunk_size):
                data = make_table_data(recs)
                logger.debug(f"update_records {table_name} {desc_col_values(data)}")
                await self.doc_call(f"tables/{table_name}/data", data, "PATCH")

    async def delete_records(self, table_name: str, record_ids: Sequence[int]) -> None:
        """Deletes records by rowId, using the "apply" endpoint with BulkRemoveRecord actions."""
        for rec_ids in chunk(record_ids, self.chunk_size):
            logger.debug(f"delete_records {table_name} {len(rec_ids)} records")
            await self.doc_call("apply", [["BulkRemoveRecord", table_name, rec_ids]], "POST")

    async def sync_table(
        self,
        table_name: str,
        records: Sequence[Record],
        key_col_ids: Sequence[str],
        filters: Optional[Filters] = None,
    ) -> SyncPlan:
        """Adds or updates rows to match `records` on `key_col_ids`. See sync.reconcile."""
        return await reconcile(self, table_name, records, key_col_ids, filters)

    async def get_doc_info(self) -> Dict[str, Any]:
        """Returns the document's metadata (including its 'name')."""
        return await self.call(f"/api/docs/{self.doc_id}")

    # --- Low-level REST calls ---

    async def doc_call(self, doc_rel_url: str, json_body: Any = None, method: Optional[str] = None) -> Any:
        return await self.call(f"/api/docs/{self.doc_id}/{doc_rel_url}", json_body, method)

    async def call(self, url: str, json_body: Any = None, method: Optional[str] = None) -> Any:
        method = (method or ("POST" if json_body is not None else "GET")).upper()
        full_url = f"{self.server}{url}"
        if self.dry_run and method != "GET":
            logger.info(f"DRYRUN NOT sending {method} request to {full_url}")
            return None

        client = await self._get_client()
        logger.debug(f"Sending {method} request to {full_url}")
        try:
            response = await client.request(method, url, json=json_body)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            error_detail = str(e)
            response_data = None
            try:
                response_data = e.response.json()
                if isinstance(response_data, dict) and response_data.get("error"):
                    error_detail = f"Grist: {response_data['error']}"
            except ValueError:
                response_data = {"raw_text": e.response.text}
            status_code = e.response.status_code
            logger.warning(f"{method} {full_url} failed with {status_code}: {error_detail}")
            if status_code in (401, 403):
                raise AuthenticationError(error_detail, status_code, response_data) from e
            raise RemoteError(error_detail, status_code, response_data) from e
        except httpx.RequestError as e:  # ConnectError, TimeoutException, etc.
            logger.warning(f"{method} {full_url} failed: {e!r}")
            raise APIConnectionError(f"Connection error to {full_url}: {e}") from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise RemoteError(
                "Failed to decode JSON response", response.status_code, {"raw_text": response.text}
            ) from e

#
# End of client.py
########################################################################################################################
