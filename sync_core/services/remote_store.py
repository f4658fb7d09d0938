# SPDX-License-Identifier: Apache-2.0

"""
Remote store gateway for the owner-partitioned case tables.

This module defines the table-oriented CRUD interface the sync core needs
from the remote store, and its Supabase (PostgREST) implementation over
httpx. Every row is isolated by the user_id owner column.
"""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import httpx
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import ValidationError

from domain.payloads import snapshot_from_rows
from models.entities import Snapshot
from models.enums import ErrorKind, SyncTable
from utils.errors import ConfigurationException, RemoteStoreError, RemoteTimeoutError, classify_error

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class RemoteStore(ABC):
    """Table API consumed by the reconciliation engine."""

    @abstractmethod
    async def select_rows(self, table: str, owner_id: str) -> List[Dict[str, Any]]:
        """Select every row of a table owned by owner_id."""

    async def select_ids(self, table: str, owner_id: str) -> List[str]:
        """Select the identifiers of every row owned by owner_id."""
        rows = await self.select_rows(table, owner_id)
        return [row["id"] for row in rows if row.get("id")]

    @abstractmethod
    async def upsert(self, table: str, rows: Sequence[Dict[str, Any]]) -> None:
        """Insert or replace rows keyed on id."""

    @abstractmethod
    async def delete(self, table: str, owner_id: str, ids: Optional[Sequence[str]] = None) -> None:
        """Delete rows owned by owner_id, restricted to ids when given."""

    async def close(self) -> None:
        """Release any held connections."""


@dataclass
class RemoteStoreConfig:
    """Supabase connection settings."""
    url: Optional[str] = None
    anon_key: Optional[str] = None
    schema: str = "public"
    request_timeout: float = 30.0

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.anon_key)

    @classmethod
    def from_env(cls) -> "RemoteStoreConfig":
        return cls(
            url=os.getenv('SUPABASE_URL') or None,
            anon_key=os.getenv('SUPABASE_ANON_KEY') or None,
            schema=os.getenv('SUPABASE_SCHEMA', 'public'),
            request_timeout=float(os.getenv('SUPABASE_REQUEST_TIMEOUT', '30'))
        )


def escape_in_value(value: str) -> str:
    """Quote a value for a PostgREST in.(...) filter."""
    escaped = value.replace('\\', '\\\\').replace('"', '\\"')
    return f'"{escaped}"'


def to_in_filter(values: Sequence[str]) -> str:
    return "in.(" + ",".join(escape_in_value(v) for v in values) + ")"


class PostgrestRemoteStore(RemoteStore):
    """
    Supabase REST implementation of the remote store.

    Requests are authorized with the project anon key plus, once the user
    has signed in, the user's access token so row-level security applies.
    """

    def __init__(self, config: RemoteStoreConfig, client: Optional[httpx.AsyncClient] = None):
        if not config.is_configured:
            raise ConfigurationException("Supabase URL and anon key are required")

        self.config = config
        self.base_url = f"{config.url.rstrip('/')}/rest/v1"
        self._access_token: Optional[str] = None
        self._client = client or httpx.AsyncClient(timeout=config.request_timeout)
        self._owns_client = client is None

        logger.info(f"Remote store initialized for {self.base_url}")

    def set_access_token(self, access_token: Optional[str]) -> None:
        """Use the signed-in user's token for subsequent requests."""
        self._access_token = access_token

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            'apikey': self.config.anon_key,
            'Authorization': f"Bearer {self._access_token or self.config.anon_key}",
            'Content-Type': 'application/json',
            'Accept-Profile': self.config.schema,
            'Content-Profile': self.config.schema
        }
        if extra:
            headers.update(extra)
        return headers

    async def _request(
        self,
        method: str,
        table: str,
        params: Dict[str, str],
        json_body: Any = None,
        headers: Optional[Dict[str, str]] = None
    ) -> httpx.Response:
        with tracer.start_as_current_span(f"postgrest.{method.lower()}") as span:
            span.set_attributes({
                "db.system": "postgresql",
                "db.sql.table": table,
                "http.method": method
            })

            try:
                response = await self._client.request(
                    method,
                    f"{self.base_url}/{table}",
                    params=params,
                    json=json_body,
                    headers=self._headers(headers)
                )
            except httpx.TimeoutException as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, "timeout"))
                raise RemoteTimeoutError(f"Request to {table} timed out: {e}")
            except httpx.HTTPError as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise RemoteStoreError(f"Request to {table} failed: {e}")

            span.set_attribute("http.status_code", response.status_code)

            if response.status_code >= 400:
                error = self._parse_error(response)
                span.set_status(Status(StatusCode.ERROR, error.message))
                raise error

            return response

    @staticmethod
    def _parse_error(response: httpx.Response) -> RemoteStoreError:
        """Build a structured error from a PostgREST error body."""
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        return RemoteStoreError(
            body.get('message') or f"HTTP {response.status_code}",
            code=body.get('code'),
            status=response.status_code,
            details=body.get('details'),
            hint=body.get('hint')
        )

    async def select_rows(self, table: str, owner_id: str) -> List[Dict[str, Any]]:
        response = await self._request(
            "GET", table, {"select": "*", "user_id": f"eq.{owner_id}"}
        )
        return response.json()

    async def select_ids(self, table: str, owner_id: str) -> List[str]:
        response = await self._request(
            "GET", table, {"select": "id", "user_id": f"eq.{owner_id}"}
        )
        return [row["id"] for row in response.json() if row.get("id")]

    async def upsert(self, table: str, rows: Sequence[Dict[str, Any]]) -> None:
        if not rows:
            return
        await self._request(
            "POST", table, {"on_conflict": "id"},
            json_body=list(rows),
            headers={'Prefer': 'resolution=merge-duplicates,return=minimal'}
        )

    async def delete(self, table: str, owner_id: str, ids: Optional[Sequence[str]] = None) -> None:
        params = {"user_id": f"eq.{owner_id}"}
        if ids is not None:
            if not ids:
                return
            params["id"] = to_in_filter(ids)
        await self._request("DELETE", table, params, headers={'Prefer': 'return=minimal'})

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
            logger.info("Remote store connection closed")


async def fetch_snapshot(store: RemoteStore, owner_id: str) -> Optional[Snapshot]:
    """
    Fetch the owner's four collections from the remote store.

    Args:
        store: Remote store gateway
        owner_id: Owner identity

    Returns:
        Snapshot of the remote data, or None when any table could not be
        read (the caller keeps its local data)
    """
    with tracer.start_as_current_span("sync.fetch_snapshot") as span:
        span.set_attribute("sync.owner_id", owner_id)

        tables = [table.value for table in SyncTable]
        results = await asyncio.gather(
            *(store.select_rows(table, owner_id) for table in tables),
            return_exceptions=True
        )

        errors = {
            table: result for table, result in zip(tables, results)
            if isinstance(result, BaseException)
        }
        if errors:
            if any(classify_error(e) == ErrorKind.MISSING_TABLE for e in errors.values()):
                logger.warning(
                    "Remote tables not found, using local data. Provision the schema first.",
                    extra={"extra_fields": {"tables": sorted(errors)}}
                )
            else:
                logger.warning(
                    "Failed to fetch remote data, using local data",
                    extra={
                        "extra_fields": {
                            table: str(error) for table, error in errors.items()
                        }
                    }
                )
            span.set_status(Status(StatusCode.ERROR, "fetch failed"))
            return None

        try:
            snapshot = snapshot_from_rows(dict(zip(tables, results)))
        except ValidationError as e:
            logger.warning(
                "Remote data failed validation, using local data",
                extra={"extra_fields": {"error_count": e.error_count(), "error": str(e)}}
            )
            span.set_status(Status(StatusCode.ERROR, "invalid remote rows"))
            return None

        span.set_attributes({
            "sync.families": len(snapshot.families),
            "sync.members": len(snapshot.members),
            "sync.visits": len(snapshot.visits),
            "sync.deliveries": len(snapshot.deliveries)
        })
        logger.info(
            "Fetched remote snapshot",
            extra={
                "extra_fields": {
                    "owner_id": owner_id,
                    "families": len(snapshot.families),
                    "members": len(snapshot.members),
                    "visits": len(snapshot.visits),
                    "deliveries": len(snapshot.deliveries)
                }
            }
        )
        return snapshot


def create_remote_store(config: Optional[RemoteStoreConfig] = None) -> Optional[RemoteStore]:
    """
    Factory function to create the remote store from environment configuration.

    Returns:
        PostgrestRemoteStore, or None when Supabase is not configured
    """
    config = config or RemoteStoreConfig.from_env()
    if not config.is_configured:
        logger.warning("No SUPABASE_URL/SUPABASE_ANON_KEY configured, remote sync disabled")
        return None
    return PostgrestRemoteStore(config)
