"""
Tabular (Airtable-style) store access addressed by table name.

Records are generic `{id, fields}` pairs; the schema of `fields` is a
convention owned by callers. Supports an in-memory fallback for tests/local
runs and a REST implementation for production.
"""

from __future__ import annotations

import copy
import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Protocol, Sequence, Tuple
from urllib.parse import quote

import requests

from famhub.errors import AdapterError

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30  # seconds
PAGE_SIZE = 100  # Airtable's per-page maximum

USER_TABLE = "User"
USERS_BY_EMAIL_TABLE = "Users"
QUESTIONS_TABLE = "Questions_user"
MEMORIES_TABLE = "Memories"
APP_TABLES = (USER_TABLE, USERS_BY_EMAIL_TABLE, QUESTIONS_TABLE, MEMORIES_TABLE)

SortSpec = Sequence[Tuple[str, str]]


@dataclass
class TabularRecord:
    id: str
    fields: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {"id": self.id, "fields": self.fields}


@dataclass
class ListOptions:
    """Options recognised by `list_records`."""

    max_records: Optional[int] = None
    view: Optional[str] = None
    sort: SortSpec = ()
    filter_by_formula: Optional[str] = None


class TabularClient(Protocol):
    """Interface for the spreadsheet-style store."""

    def list_records(
        self, table: str, options: Optional[ListOptions] = None
    ) -> list[TabularRecord]:
        ...

    def create(self, table: str, fields: dict) -> TabularRecord:
        ...


def _to_record(payload: dict) -> TabularRecord:
    return TabularRecord(id=payload["id"], fields=payload.get("fields") or {})


class AirtableClient:
    """REST client for the Airtable v0 API."""

    def __init__(
        self,
        api_key: str,
        base_id: str,
        endpoint_url: str = "https://api.airtable.com",
        timeout: float = REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        if not api_key or not base_id:
            raise ValueError("AIRTABLE_API_KEY and AIRTABLE_BASE_ID are required")
        self.base_url = f"{endpoint_url.rstrip('/')}/v0/{base_id}"
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {api_key}"})

    def _url(self, table: str) -> str:
        if not table:
            raise AdapterError("Table name is required")
        return f"{self.base_url}/{quote(table, safe='')}"

    def _request(self, method: str, url: str, **kwargs) -> dict:
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise AdapterError(
                f"Airtable request failed: {exc}", details={"type": type(exc).__name__}
            ) from exc

        if not response.ok:
            body = _error_body(response)
            message = _error_message(body) or f"Airtable returned {response.status_code}"
            raise AdapterError(message, details=body)
        return response.json()

    def list_records(
        self, table: str, options: Optional[ListOptions] = None
    ) -> list[TabularRecord]:
        options = options or ListOptions()
        params: list[tuple[str, Any]] = [("pageSize", PAGE_SIZE)]
        if options.max_records is not None:
            params.append(("maxRecords", options.max_records))
        if options.view:
            params.append(("view", options.view))
        if options.filter_by_formula:
            params.append(("filterByFormula", options.filter_by_formula))
        for index, (field_name, direction) in enumerate(options.sort):
            params.append((f"sort[{index}][field]", field_name))
            params.append((f"sort[{index}][direction]", direction))

        url = self._url(table)
        records: list[TabularRecord] = []
        offset: Optional[str] = None
        while True:
            page_params = params + ([("offset", offset)] if offset else [])
            payload = self._request("GET", url, params=page_params)
            records.extend(_to_record(item) for item in payload.get("records", []))
            offset = payload.get("offset")
            if not offset:
                break
            if options.max_records is not None and len(records) >= options.max_records:
                break
        if options.max_records is not None:
            records = records[: options.max_records]
        logger.debug("Fetched %d record(s) from %s", len(records), table)
        return records

    def create(self, table: str, fields: dict) -> TabularRecord:
        payload = self._request(
            "POST", self._url(table), json={"records": [{"fields": fields}]}
        )
        return _to_record(payload["records"][0])


def _error_body(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {"status": response.status_code, "text": response.text[:200]}


def _error_message(body: Any) -> Optional[str]:
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if isinstance(error, dict):
        return error.get("message") or error.get("type")
    if isinstance(error, str):
        return error
    return None


_EQUALS_FORMULA = re.compile(r"^\{?(?P<field>[^}=]+?)\}?\s*=\s*'(?P<value>.*)'$")


class InMemoryTabularClient:
    """
    Dict-of-tables test double.

    Views are ignored. Formulas are limited to a single `{Field} = 'value'`
    equality, which is all the handlers use.
    """

    def __init__(self, tables: Optional[Dict[str, Iterable[TabularRecord]]] = None):
        self.tables: Dict[str, Dict[str, TabularRecord]] = {}
        for name, records in (tables or {}).items():
            self.tables[name] = {record.id: record for record in records}

    def _table(self, table: str) -> Dict[str, TabularRecord]:
        if not table or table not in self.tables:
            raise AdapterError(
                f'Could not find table {table} in application',
                details={"error": {"type": "TABLE_NOT_FOUND"}},
            )
        return self.tables[table]

    def list_records(
        self, table: str, options: Optional[ListOptions] = None
    ) -> list[TabularRecord]:
        options = options or ListOptions()
        records = [copy.deepcopy(record) for record in self._table(table).values()]
        if options.filter_by_formula:
            match = _EQUALS_FORMULA.match(options.filter_by_formula.strip())
            if not match:
                raise AdapterError(
                    "Unsupported formula", details={"formula": options.filter_by_formula}
                )
            field_name = match.group("field").strip()
            records = [
                record
                for record in records
                if str(record.fields.get(field_name)) == match.group("value")
            ]
        for field_name, direction in reversed(list(options.sort)):
            records.sort(
                key=lambda record: (
                    record.fields.get(field_name) is not None,
                    record.fields.get(field_name),
                ),
                reverse=direction == "desc",
            )
        if options.max_records is not None:
            records = records[: options.max_records]
        return records

    def create(self, table: str, fields: dict) -> TabularRecord:
        rows = self._table(table)
        record = TabularRecord(id=f"rec{uuid.uuid4().hex[:14]}", fields=copy.deepcopy(fields))
        rows[record.id] = record
        return copy.deepcopy(record)

