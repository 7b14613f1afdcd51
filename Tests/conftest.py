# Tests/conftest.py
#
#
# Imports
import json
from typing import Any, Dict, List, Optional, Tuple
#
# Third-party imports
import httpx
import pytest
#
# Local imports
from grist_invoice_sync.config import GristSettings
from grist_invoice_sync.grist_api import GristDocAPI
#
############################################################################################################################
#
# Functions:

TEST_API_KEY = "test-api-key"
TEST_SERVER = "http://grist.test"


class FakeGristServer:
    """
    In-memory stand-in for the Grist REST API, served through httpx.MockTransport.

    docs maps doc id -> table name -> list of row dicts (each with an "id").
    Every request is recorded in `requests` as (method, path, params, json body).
    """

    def __init__(self, api_key: str = TEST_API_KEY):
        self.api_key = api_key
        self.docs: Dict[str, Dict[str, List[Dict[str, Any]]]] = {}
        self.doc_names: Dict[str, str] = {}
        self.requests: List[Tuple[str, str, Dict[str, str], Any]] = []
        # (method, path suffix) -> (status, body); consumed by the first matching request
        self.failures: Dict[Tuple[str, str], Tuple[int, Any]] = {}
        self._next_id = 1

    # --- Test helpers ---

    def add_doc(self, doc_id: str, name: Optional[str] = None, **tables: List[Dict[str, Any]]):
        self.doc_names[doc_id] = name or doc_id
        self.docs[doc_id] = {}
        for table_name, rows in tables.items():
            self.docs[doc_id][table_name] = []
            for row in rows:
                self._insert(doc_id, table_name, dict(row))

    def rows(self, doc_id: str, table_name: str) -> List[Dict[str, Any]]:
        return self.docs[doc_id].setdefault(table_name, [])

    def fail_next(self, method: str, path_suffix: str, status: int, body: Any = None):
        self.failures[(method, path_suffix)] = (status, body)

    def calls(self, method: Optional[str] = None, path_suffix: str = "") -> List[Tuple[str, str, Dict[str, str], Any]]:
        return [r for r in self.requests if (method is None or r[0] == method) and r[1].endswith(path_suffix)]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def _insert(self, doc_id: str, table_name: str, row: Dict[str, Any]) -> int:
        if "id" not in row:
            row["id"] = self._next_id
        self._next_id = max(self._next_id, row["id"]) + 1
        self.rows(doc_id, table_name).append(row)
        return row["id"]

    # --- Request handling ---

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        params = dict(request.url.params)
        path = request.url.path
        self.requests.append((request.method, path, params, body))

        if request.headers.get("Authorization") != f"Bearer {self.api_key}":
            return httpx.Response(401, json={"error": "Unauthorized"})
        for (method, suffix), (status, fail_body) in list(self.failures.items()):
            if request.method == method and path.endswith(suffix):
                del self.failures[(method, suffix)]
                return httpx.Response(status, json=fail_body) if fail_body is not None else httpx.Response(status)

        parts = path.strip("/").split("/")  # api, docs, <docId>, ...
        if parts[:2] != ["api", "docs"] or len(parts) < 3 or parts[2] not in self.docs:
            return httpx.Response(404, json={"error": "document not found"})
        doc_id, rest = parts[2], parts[3:]

        if not rest and request.method == "GET":
            return httpx.Response(200, json={"id": doc_id, "name": self.doc_names[doc_id]})
        if rest == ["apply"] and request.method == "POST":
            for action, table_name, row_ids in body:
                assert action == "BulkRemoveRecord"
                self.docs[doc_id][table_name] = [r for r in self.rows(doc_id, table_name) if r["id"] not in row_ids]
            return httpx.Response(200, json={"actionNum": len(self.requests)})
        if len(rest) == 3 and rest[0] == "tables" and rest[2] == "data":
            table_name = rest[1]
            if request.method == "GET":
                filters = json.loads(params["filter"]) if "filter" in params else {}
                return httpx.Response(200, json=self._column_data(doc_id, table_name, filters))
            if request.method == "POST":
                return httpx.Response(200, json=[self._insert(doc_id, table_name, row) for row in _rows_of(body)])
            if request.method == "PATCH":
                by_id = {r["id"]: r for r in self.rows(doc_id, table_name)}
                for row in _rows_of(body):
                    by_id[row["id"]].update(row)
                return httpx.Response(200)
        return httpx.Response(404, json={"error": f"no route for {request.method} {path}"})

    def _column_data(self, doc_id: str, table_name: str, filters: Dict[str, List[Any]]) -> Dict[str, List[Any]]:
        rows = [r for r in self.rows(doc_id, table_name)
                if all(r.get(col) in accepted for col, accepted in filters.items())]
        columns: Dict[str, None] = {"id": None}
        for row in self.rows(doc_id, table_name):
            for col in row:
                columns.setdefault(col, None)
        return {col: [r.get(col) for r in rows] for col in columns}


def _rows_of(table_data: Dict[str, List[Any]]) -> List[Dict[str, Any]]:
    cols = list(table_data)
    count = len(table_data[cols[0]]) if cols else 0
    return [{col: table_data[col][i] for col in cols} for i in range(count)]


@pytest.fixture
def fake_grist():
    return FakeGristServer()


@pytest.fixture
def settings():
    return GristSettings(server=TEST_SERVER, api_key=TEST_API_KEY, source_doc_id="SRC")


@pytest.fixture
def make_api(fake_grist, settings):
    """Factory for GristDocAPI instances wired to the fake server."""
    def _make(doc_id: str = "DOC", cfg: Optional[GristSettings] = None, **kwargs) -> GristDocAPI:
        return GristDocAPI(doc_id, cfg or settings, transport=fake_grist.transport, **kwargs)
    return _make

#
# End of Tests/conftest.py
########################################################################################################################
