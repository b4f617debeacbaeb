# Overview: Pytest coverage for catalog import parsing, reconciliation and batch apply.

import io
import threading
import time

import pytest
from openpyxl import Workbook

from modaledger.extensions import db
from modaledger.models import Product
from modaledger.services import import_service
from modaledger.services.import_schemas import parse_product_rows, parse_product_workbook
from modaledger.services.import_service import apply_batch, reconcile

HEADER = "id,categoria,sku,nome,status,x5,x6,custo,preco,x9,estoque,x11,tamanho,cor,categoria2"


def _row(sku="BS-CA-RE-01-m", name="Camisa Renda", status="EM ESTOQUE", cost="60,00",
         price="100,00", stock="", size="m", color="Rosa", category="Camisas", fallback="Topos"):
    cells = ["1", fallback, sku, name, status, "", "", cost, price, "", stock, "", size, color, category]
    return ",".join(f'"{c}"' if "," in c else c for c in cells)


def _record(**overrides):
    record = {
        "sku": "BS-CA-RE-01-m",
        "name": "Camisa Renda",
        "category": "Camisas",
        "size": "m",
        "color": "Rosa",
        "price_cents": 10000,
        "cost_cents": 6000,
        "stock": 1,
    }
    record.update(overrides)
    return record


class TestParseRows:
    def test_comma_file_with_quoted_amounts(self):
        parsed = parse_product_rows("\n".join([HEADER, _row()]))
        assert parsed.errors == 0
        assert parsed.records == [dict(_record(), row=2)]

    def test_semicolon_file(self):
        header = HEADER.replace(",", ";")
        line = ";".join(["1", "Topos", "SKU-1", "Saia", "EM ESTOQUE", "", "", "R$ 1.234,50", "R$ 2.000,00", "", "", "", "G", "Azul", ""])
        parsed = parse_product_rows(f"{header}\n{line}\n")
        (record,) = parsed.records
        assert record["cost_cents"] == 123450
        assert record["price_cents"] == 200000
        assert record["category"] == "Topos"

    def test_status_and_stock_override(self):
        text = "\n".join([
            HEADER,
            _row(sku="A", status="em estoque"),
            _row(sku="B", status="VENDIDO"),
            _row(sku="C", status="VENDIDO", stock="7"),
        ])
        stocks = {r["sku"]: r["stock"] for r in parse_product_rows(text).records}
        assert stocks == {"A": 1, "B": 0, "C": 7}

    def test_defaults_for_missing_name_and_category(self):
        parsed = parse_product_rows("\n".join([HEADER, _row(name="", category="", fallback="")]))
        (record,) = parsed.records
        assert record["name"] == "Sem Nome"
        assert record["category"] == "Geral"

    def test_short_rows_and_missing_sku_are_errors(self):
        text = "\n".join([HEADER, "a,b", _row(sku=""), "", _row(sku="OK-1")])
        parsed = parse_product_rows(text)
        assert [r["sku"] for r in parsed.records] == ["OK-1"]
        assert parsed.errors == 2
        assert [e["row"] for e in parsed.error_rows] == [2, 3]
        assert parsed.error_rows[0]["error"].startswith("Row 2:")

    def test_header_only(self):
        parsed = parse_product_rows(HEADER + "\n")
        assert parsed.records == []
        assert parsed.errors == 0

    def test_workbook(self):
        wb = Workbook()
        sheet = wb.active
        sheet.append(HEADER.split(","))
        sheet.append([1, "Topos", "WB-1", "Calça", "EM ESTOQUE", None, None, 55.5, 129.9, None, 3, None, "40", "Jeans", "Calças"])
        sheet.append(["só", "isso"])
        buffer = io.BytesIO()
        wb.save(buffer)
        buffer.seek(0)

        parsed = parse_product_workbook(buffer)
        (record,) = parsed.records
        assert record["sku"] == "WB-1"
        assert record["cost_cents"] == 5550
        assert record["price_cents"] == 12990
        assert record["stock"] == 3
        assert record["category"] == "Calças"
        assert parsed.errors == 1
        assert parsed.error_rows[0]["row"] == 3


class TestReconcile:
    def test_changed_price_becomes_update_with_same_id(self):
        existing = [dict(_record(), id="stored-id")]
        plan = reconcile(existing, [_record(price_cents=12000)])
        assert plan.to_add == []
        assert len(plan.to_update) == 1
        assert plan.to_update[0]["id"] == "stored-id"
        assert plan.to_update[0]["price_cents"] == 12000

    def test_identical_record_is_unchanged(self):
        existing = [dict(_record(), id="stored-id")]
        plan = reconcile(existing, [_record()])
        assert plan.unchanged == 1
        assert plan.to_update == []

    def test_new_sku_is_added_with_fresh_id(self):
        existing = [dict(_record(), id="stored-id")]
        plan = reconcile(existing, [_record(sku="NEW-1")])
        assert len(plan.to_add) == 1
        assert plan.to_add[0]["id"] not in {"stored-id"}
        assert plan.to_add[0]["sku"] == "NEW-1"

    def test_repeated_new_sku_updates_pending_add(self):
        plan = reconcile([], [_record(sku="NEW-1", price_cents=100), _record(sku="NEW-1", price_cents=200)])
        assert len(plan.to_add) == 1
        assert plan.to_add[0]["price_cents"] == 200
        assert plan.to_update == []
        assert plan.assignments == ["add", "update"]

    def test_blank_sku_is_error(self):
        plan = reconcile([], [_record(sku=""), _record(sku="  ")])
        assert plan.errors == 2
        assert plan.to_add == []

    def test_negative_amounts_and_stock_are_errors(self):
        plan = reconcile([], [
            _record(sku="A", price_cents=-2500),
            _record(sku="B", cost_cents=-1),
            _record(sku="C", stock=-3),
            _record(sku="D"),
        ])
        assert plan.assignments == ["error", "error", "error", "add"]
        assert [p["sku"] for p in plan.to_add] == ["D"]
        assert plan.error_rows[0]["error"] == "Row 1: price_cents must be >= 0"
        assert plan.error_rows[2]["error"] == "Row 3: stock must be >= 0"

    def test_negative_update_keeps_stored_values(self):
        existing = [dict(_record(), id="stored-id")]
        plan = reconcile(existing, [_record(stock=-1)])
        assert plan.errors == 1
        assert plan.to_update == []

    def test_model_instances_are_accepted(self, db_session, make_product):
        product = make_product(sku="BS-CA-RE-01-m", price_cents=10000)
        plan = reconcile([product], [{"sku": "BS-CA-RE-01-m", "price_cents": 12000}])
        assert plan.to_update[0]["id"] == product.id
        assert plan.to_update[0]["name"] == product.name

    def test_every_record_lands_in_exactly_one_bucket(self):
        existing = [dict(_record(sku=f"S{i}"), id=f"id-{i}") for i in range(5)]
        incoming = [
            _record(sku="S0"),
            _record(sku="S1", price_cents=1),
            _record(sku=""),
            _record(sku="N1"),
            _record(sku="N1", stock=4),
            _record(sku="S1", price_cents=2),
            _record(sku="N2"),
            _record(sku="S2", name="Outro"),
        ]
        plan = reconcile(existing, incoming)
        assert len(plan.assignments) == len(incoming)
        assert plan.added + plan.updated + plan.errors + plan.unchanged == len(incoming)
        assert plan.assignments == ["unchanged", "update", "error", "add", "update", "update", "add", "update"]
        new_ids = {r["id"] for r in plan.to_add}
        assert new_ids.isdisjoint({f"id-{i}" for i in range(5)})
        assert len(plan.to_add) == 2
        # A stored product updated twice is written once, with the last values
        assert [r["sku"] for r in plan.to_update] == ["S1", "S2"]
        assert plan.to_update[0]["price_cents"] == 2


class TestApplyBatch:
    def test_failures_are_counted_and_processing_continues(self):
        written = []

        def writer(op, record):
            if record["sku"] == "BAD":
                raise RuntimeError("boom")
            written.append((op, record["sku"]))

        adds = [_record(sku=f"A{i}", id=f"a{i}") for i in range(6)] + [_record(sku="BAD", id="bad")]
        updates = [_record(sku="U1", id="u1")]
        progress = []

        result = apply_batch(adds, updates, writer=writer, concurrency=3, on_progress=lambda p, t: progress.append((p, t)))

        assert result.processed == 8
        assert result.succeeded == 7
        assert result.failed == 1
        assert result.failed_keys == ["BAD"]
        assert "1 items failed" in result.message
        assert progress == [(3, 8), (6, 8), (8, 8)]
        assert ("update", "U1") in written

    def test_slow_items_time_out(self):
        release = threading.Event()

        def writer(op, record):
            if record["sku"] == "SLOW":
                release.wait(2)

        try:
            result = apply_batch(
                [_record(sku="FAST", id="f"), _record(sku="SLOW", id="s")],
                [],
                writer=writer,
                item_timeout=0.1,
            )
        finally:
            release.set()

        assert result.succeeded == 1
        assert result.failed == 1
        assert result.failed_keys == ["SLOW"]

    def test_chunks_never_exceed_concurrency(self):
        active = 0
        peak = 0
        lock = threading.Lock()

        def writer(op, record):
            nonlocal active, peak
            with lock:
                active += 1
                peak = max(peak, active)
            time.sleep(0.01)
            with lock:
                active -= 1

        result = apply_batch([_record(sku=f"P{i}", id=f"p{i}") for i in range(12)], [], writer=writer, concurrency=5)
        assert result.succeeded == 12
        assert peak <= 5

    def test_empty_plan(self):
        progress = []
        result = apply_batch([], [], writer=lambda op, r: None, on_progress=lambda p, t: progress.append(p))
        assert result.processed == 0
        assert progress == []


class TestImportIntoStore:
    def test_csv_upsert_keeps_storage_id(self, db_session, make_product):
        stored = make_product(
            sku="BS-CA-RE-01-m", name="Camisa Renda", category="Camisas",
            size="m", color="Rosa", price_cents=10000, cost_cents=6000, stock=1,
        )
        text = "\n".join([HEADER, _row(price="120,00"), _row(sku="BS-SA-AZ-02-p", name="Saia")])

        preview = import_service.preview_import(parse_product_rows(text))
        assert preview["to_add"] == 1
        assert preview["to_update"] == 1
        assert db.session.query(Product).count() == 1

        outcome = import_service.apply_import(parse_product_rows(text))
        assert outcome["result"]["failed"] == 0
        assert outcome["result"]["succeeded"] == 2

        db.session.expire_all()
        updated = db.session.query(Product).filter_by(sku="BS-CA-RE-01-m").one()
        assert updated.id == stored.id
        assert updated.price_cents == 12000
        assert db.session.query(Product).count() == 2

    def test_reimport_is_a_no_op(self, db_session):
        text = "\n".join([HEADER, _row(sku="X-1")])
        import_service.apply_import(parse_product_rows(text))
        again = import_service.preview_import(parse_product_rows(text))
        assert again["unchanged"] == 1
        assert again["to_add"] == 0
        assert again["to_update"] == 0

    def test_negative_row_is_reported_not_written(self, db_session):
        text = "\n".join([
            HEADER,
            _row(sku="NEG-1", price="-25,00", cost="-10,00", stock="-3"),
            _row(sku="OK-1"),
        ])
        outcome = import_service.apply_import(parse_product_rows(text))

        assert outcome["plan"]["errors"] == 1
        assert outcome["plan"]["error_rows"][0]["row"] == 2
        assert outcome["result"]["succeeded"] == 1
        db.session.expire_all()
        assert [p.sku for p in db.session.query(Product).all()] == ["OK-1"]
