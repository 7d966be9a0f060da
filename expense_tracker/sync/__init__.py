"""
Server-side sync engine.

Clients push queued mutations (``push``), fetch deltas since a watermark
(``pull``), bootstrap from a full snapshot (``full``) and check whether a
pull is worthwhile (``status``). The server is authoritative for rows it
already holds; client rows win only by not existing yet.
"""
from expense_tracker.sync.engine import full, process_item, pull, push, status

__all__ = ["full", "process_item", "pull", "push", "status"]
