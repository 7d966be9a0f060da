"""
JSON backup of a local store.
"""
from __future__ import annotations

import json
import logging

from pydantic import ValidationError as PydanticValidationError

from expense_tracker.errors import ValidationError
from expense_tracker.local.store import COLLECTIONS, Store, iso_now

logger = logging.getLogger(__name__)

BACKUP_VERSION = "1.0"


def export_data(store: Store) -> dict:
    payload = {
        name: [record.to_wire() for record in store.get(name)]
        for name in COLLECTIONS
    }
    payload["exportedAt"] = iso_now()
    payload["version"] = BACKUP_VERSION
    return payload


def export_json(store: Store) -> str:
    return json.dumps(export_data(store), ensure_ascii=False, indent=2)


def import_data(store: Store, payload: dict) -> list[str]:
    """Restore every collection present in ``payload``; returns their names.

    Each collection is validated before anything is written, so a bad file
    leaves the store untouched. Absent collections are kept as they are.
    """
    if not isinstance(payload, dict) or not payload.get("version"):
        raise ValidationError("Backup file has no version")

    parsed = {}
    for name, model in COLLECTIONS.items():
        if name not in payload:
            continue
        raw = payload[name]
        if not isinstance(raw, list):
            raise ValidationError(f"Backup collection {name} must be a list")
        try:
            parsed[name] = [model.model_validate(record) for record in raw]
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid {name} in backup: {exc.error_count()} error(s)") from exc

    for name, records in parsed.items():
        store.mutate(name, lambda _, records=records: records)
    logger.info("Imported backup (version %s): %s", payload["version"], ", ".join(parsed) or "nothing")
    return list(parsed)


def import_json(store: Store, text: str) -> list[str]:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValidationError(f"Backup is not valid JSON: {exc.msg}") from exc
    return import_data(store, payload)
