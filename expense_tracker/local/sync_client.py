"""
Client half of the store-and-forward sync protocol.

The outbox is pushed as one batch; acknowledged items leave the queue and
failed ones stay for the next attempt. Pulls are incremental from the
stored watermark. Nothing is applied locally when the server cannot be
reached or answers with a 5xx.
"""
from __future__ import annotations

import logging

import httpx

from expense_tracker.errors import (
    ConflictError,
    ExpenseTrackerError,
    NotFoundError,
    PermissionDenied,
    TransportError,
    ValidationError,
)
from expense_tracker.local.store import COLLECTIONS, ENTITY_TYPES, Store
from expense_tracker.schemas.sync import (
    SyncPullResponse,
    SyncPushResponse,
    SyncResult,
    SyncStatusResponse,
)

logger = logging.getLogger(__name__)

OWNER_HEADER = "X-User-Id"

_COLLECTION_FOR_TYPE = {entity_type: name for name, entity_type in ENTITY_TYPES.items()}

_CLIENT_ERRORS = {
    400: ValidationError,
    403: PermissionDenied,
    404: NotFoundError,
    409: ConflictError,
}


class SyncClient:
    def __init__(self, store: Store, http: httpx.Client, base_path: str = "/api/sync"):
        self.store = store
        self.http = http
        self.base_path = base_path.rstrip("/")

    def _request(self, method: str, path: str, **kwargs) -> dict:
        headers = {OWNER_HEADER: self.store.owner_id}
        try:
            response = self.http.request(method, f"{self.base_path}{path}", headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("Sync %s %s failed: %s", method, path, exc)
            raise TransportError(f"Sync server unreachable: {exc}") from exc

        if response.status_code >= 500:
            logger.warning("Sync %s %s returned %d", method, path, response.status_code)
            raise TransportError(f"Sync server error ({response.status_code})")
        if response.status_code >= 400:
            error_class = _CLIENT_ERRORS.get(response.status_code, ExpenseTrackerError)
            raise error_class(_error_message(response))
        return response.json()

    # ── push ────────────────────────────────────────────────────────────

    def push(self) -> list[SyncResult]:
        outbox = self.store.outbox()
        if not outbox:
            return []

        body = {
            "items": [item.model_dump(by_alias=True) for item in outbox],
            "lastSyncTimestamp": self.store.watermark,
        }
        results = SyncPushResponse.model_validate(self._request("POST", "/push", json=body)).results

        remaining = []
        server_ids: dict[str, dict[str, str]] = {}
        for item, result in zip(outbox, results):
            if not result.success:
                remaining.append(item)
                continue
            if result.server_id:
                collection = _COLLECTION_FOR_TYPE[item.entity_type]
                server_ids.setdefault(collection, {})[item.entity_id] = result.server_id
        # Items the server did not answer for are retried
        remaining.extend(outbox[len(results):])
        self.store.set_outbox(remaining)

        for collection, ids in server_ids.items():
            self._record_server_ids(collection, ids)

        logger.info("Pushed %d items, %d still queued", len(outbox), len(remaining))
        return results

    def _record_server_ids(self, collection: str, ids: dict[str, str]) -> None:
        def assign(records):
            return [
                r.model_copy(update={"server_id": ids[r.id]})
                if r.id in ids and r.server_id != ids[r.id] else r
                for r in records
            ]

        self.store.mutate(collection, assign, record=False)

    # ── pull ────────────────────────────────────────────────────────────

    def pull(self) -> SyncPullResponse:
        """Apply server changes since the watermark; pending local edits win."""
        params = {}
        since = self.store.watermark
        if since:
            params["since"] = since
        response = SyncPullResponse.model_validate(self._request("GET", "/pull", params=params))

        pending = {item.entity_id for item in self.store.outbox()}
        applied = 0
        for collection in COLLECTIONS:
            records = [r for r in getattr(response, collection) if r.id not in pending]
            applied += self.store.apply_remote(collection, records)
        self.store.cleanup_subcategories()
        self.store.set_watermark(response.sync_timestamp)

        logger.info("Pulled %d records since %s", applied, since)
        return response

    # ── bootstrap / status ──────────────────────────────────────────────

    def full_sync(self) -> SyncPullResponse:
        """Push what is queued, then replace every collection with the server copy."""
        self.push()
        response = SyncPullResponse.model_validate(self._request("GET", "/full"))
        self.store.replace_all({name: getattr(response, name) for name in COLLECTIONS})
        self.store.set_watermark(response.sync_timestamp)
        logger.info("Full sync for %s complete", self.store.owner_id)
        return response

    def status(self) -> SyncStatusResponse:
        return SyncStatusResponse.model_validate(self._request("GET", "/status"))


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or body)
    return str(body)

