# Overview: Catalog import planning (reconcile by sku) and the bounded-concurrency apply step.

"""
Catalog Import Service

Two phases:
1. reconcile() is pure. It compares incoming rows with the stored catalog
   by sku and decides what would be added, updated, skipped as unchanged,
   or rejected. Nothing is written, so callers can show it as a preview.
2. apply_batch() writes the plan a few items at a time. Each item has its
   own deadline; failures are counted and the batch keeps going. Earlier
   successful writes are never rolled back.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from flask import current_app

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Product
from ..models.catalog import new_id
from ..validation import enforce_rules_product
from .concurrency import run_with_retry
from .import_schemas import RECORD_FIELDS, ParseResult

logger = logging.getLogger(__name__)

ADD = "add"
UPDATE = "update"
ERROR = "error"
UNCHANGED = "unchanged"

Writer = Callable[[str, dict], None]
ProgressCallback = Callable[[int, int], None]


@dataclass
class ReconcilePlan:
    to_add: list[dict] = field(default_factory=list)
    to_update: list[dict] = field(default_factory=list)
    errors: int = 0
    unchanged: int = 0
    error_rows: list[dict] = field(default_factory=list)
    # One entry per incoming record, in input order: add/update/error/unchanged
    assignments: list[str] = field(default_factory=list)

    @property
    def added(self) -> int:
        return self.assignments.count(ADD)

    @property
    def updated(self) -> int:
        return self.assignments.count(UPDATE)

    def to_dict(self) -> dict:
        return {
            "to_add": self.added,
            "to_update": self.updated,
            "unchanged": self.unchanged,
            "errors": self.errors,
            "error_rows": self.error_rows,
            "products_to_add": self.to_add,
            "products_to_update": self.to_update,
        }


@dataclass
class BatchResult:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    failed_keys: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        if not self.failed:
            return f"{self.succeeded} items saved"
        return f"{self.failed} items failed; check details"

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "failed_keys": self.failed_keys,
            "message": self.message,
        }


def _as_record(product: Any) -> dict:
    if isinstance(product, dict):
        source = product
    else:
        source = {name: getattr(product, name) for name in ("id",) + RECORD_FIELDS}
    return {name: source.get(name) for name in ("id",) + RECORD_FIELDS}


def _differs(current: dict, candidate: dict) -> bool:
    return any(current.get(name) != candidate.get(name) for name in RECORD_FIELDS if name != "sku")


def _amount_problem(row: dict) -> str | None:
    """Product rules (non-negative amounts and stock) applied to one incoming row."""
    try:
        enforce_rules_product({name: row[name] for name in ("price_cents", "cost_cents", "stock") if name in row})
    except ValidationError as exc:
        return str(exc)
    return None


def reconcile(existing: Iterable[Any], incoming: Iterable[dict]) -> ReconcilePlan:
    """
    Plan an upsert of `incoming` records against `existing` products.

    - no sku, or a negative price, cost or stock: error, skipped
    - known sku: update keeping the stored id, only if a field differs
    - new sku: add with a fresh id; a later row with the same sku edits the
      pending add in place instead of creating a second product
    """
    plan = ReconcilePlan()
    lookup: dict[str, dict] = {}
    existing_ids: set[str] = set()
    for product in existing:
        record = _as_record(product)
        lookup[record["sku"]] = record
        existing_ids.add(record["id"])

    pending_add: dict[str, int] = {}
    pending_update: dict[str, int] = {}

    for position, row in enumerate(incoming, start=1):
        sku = str(row.get("sku") or "").strip()
        problem = "sku is required" if not sku else _amount_problem(row)
        if problem:
            plan.errors += 1
            plan.assignments.append(ERROR)
            row_number = row.get("row", position)
            plan.error_rows.append({"row": row_number, "error": f"Row {row_number}: {problem}"})
            continue

        current = lookup.get(sku)
        if current is None:
            new_id_value = new_id()
            while new_id_value in existing_ids:
                new_id_value = new_id()
            record = {name: row.get(name) for name in RECORD_FIELDS}
            record["sku"] = sku
            record["id"] = new_id_value
            pending_add[sku] = len(plan.to_add)
            plan.to_add.append(record)
            lookup[sku] = record
            plan.assignments.append(ADD)
            continue

        candidate = dict(current)
        for name in RECORD_FIELDS:
            if name in row:
                candidate[name] = row[name]
        candidate["sku"] = sku
        candidate["id"] = current["id"]

        if not _differs(current, candidate):
            plan.unchanged += 1
            plan.assignments.append(UNCHANGED)
            continue

        lookup[sku] = candidate
        plan.assignments.append(UPDATE)
        if sku in pending_add:
            plan.to_add[pending_add[sku]] = candidate
        elif sku in pending_update:
            plan.to_update[pending_update[sku]] = candidate
        else:
            pending_update[sku] = len(plan.to_update)
            plan.to_update.append(candidate)

    return plan


def make_product_writer(app) -> Writer:
    """
    Default writer: one product per call, each in its own app context and
    session so the calls can run on worker threads.
    """

    def write(op: str, record: dict) -> None:
        with app.app_context():
            try:
                def _op():
                    if op == ADD:
                        product = Product(id=record["id"])
                        db.session.add(product)
                    else:
                        product = db.session.get(Product, record["id"])
                        if product is None:
                            raise NotFoundError("Product not found", details={"product_id": record["id"]})
                    for name in RECORD_FIELDS:
                        if record.get(name) is not None:
                            setattr(product, name, record[name])
                    db.session.commit()

                run_with_retry(_op)
            except Exception:
                db.session.rollback()
                raise
            finally:
                db.session.remove()

    return write


def apply_batch(
    to_add: list[dict],
    to_update: list[dict],
    *,
    writer: Writer | None = None,
    concurrency: int = 5,
    item_timeout: float = 5.0,
    on_progress: ProgressCallback | None = None,
) -> BatchResult:
    """
    Write adds then updates in chunks of `concurrency` items.

    Every item in a chunk starts at once and gets `item_timeout` seconds.
    An item that raises or misses its deadline is counted as failed and
    abandoned (its write may still land). on_progress(processed, total) runs
    after each chunk.
    """
    if writer is None:
        writer = make_product_writer(current_app._get_current_object())
    concurrency = max(1, int(concurrency))

    ops = [(ADD, r) for r in to_add] + [(UPDATE, r) for r in to_update]
    total = len(ops)
    result = BatchResult()

    for start in range(0, total, concurrency):
        chunk = ops[start:start + concurrency]
        executor = ThreadPoolExecutor(max_workers=len(chunk), thread_name_prefix="catalog-import")
        try:
            futures = [(op, record, executor.submit(writer, op, record)) for op, record in chunk]
            deadline = time.monotonic() + item_timeout
            for op, record, future in futures:
                key = record.get("sku") or record.get("id")
                try:
                    future.result(timeout=max(0.0, deadline - time.monotonic()))
                    result.succeeded += 1
                except FuturesTimeoutError:
                    logger.warning("Catalog import %s timed out for %s", op, key)
                    result.failed += 1
                    result.failed_keys.append(key)
                except Exception as exc:
                    logger.warning("Catalog import %s failed for %s: %s", op, key, exc)
                    result.failed += 1
                    result.failed_keys.append(key)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        result.processed += len(chunk)
        if on_progress is not None:
            on_progress(result.processed, total)

    if result.failed:
        logger.warning("Catalog import finished with %d of %d items failed", result.failed, total)
    else:
        logger.info("Catalog import wrote %d items", result.succeeded)
    return result


def plan_import(parsed: ParseResult) -> ReconcilePlan:
    """Reconcile parsed rows against the stored catalog; row errors from parsing are carried over."""
    plan = reconcile(db.session.query(Product).all(), parsed.records)
    plan.errors += parsed.errors
    plan.error_rows = parsed.error_rows + plan.error_rows
    return plan


def preview_import(parsed: ParseResult) -> dict:
    return plan_import(parsed).to_dict()


def apply_import(
    parsed: ParseResult,
    *,
    writer: Writer | None = None,
    on_progress: ProgressCallback | None = None,
) -> dict:
    """Re-plan against the current catalog, then write the plan."""
    plan = plan_import(parsed)
    # Release the read transaction before worker threads start writing
    db.session.rollback()

    config = current_app.config
    result = apply_batch(
        plan.to_add,
        plan.to_update,
        writer=writer,
        concurrency=config.get("LEDGER_IMPORT_CONCURRENCY", 5),
        item_timeout=config.get("LEDGER_IMPORT_ITEM_TIMEOUT", 5.0),
        on_progress=on_progress,
    )
    return {
        "plan": {
            "to_add": plan.added,
            "to_update": plan.updated,
            "unchanged": plan.unchanged,
            "errors": plan.errors,
            "error_rows": plan.error_rows,
        },
        "result": result.to_dict(),
    }
