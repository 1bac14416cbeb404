# agent_pricing/tests/test_tool_pricing.py
from __future__ import annotations

"""
Tests de integración ligera para agent_pricing.tools.tool_pricing.

Principios:
- Base SQLite temporal por test, vía AppConfig(db_path=...).
- Validación del contrato: ok/mode/meta/data JSON-serializable.
- Manejo de errores (modo inválido, parámetros faltantes, líneas malas).
"""

from pathlib import Path
from typing import Any, Dict, List
import json
import pytest

from agent_pricing.tools.pricing.config import AppConfig
from agent_pricing.tools.pricing.repo import reset_repos
from agent_pricing.tools.tool_pricing import ingest_invoice_lines, price_insights


# ------------------------------ Helpers --------------------------------------


@pytest.fixture()
def cfg(tmp_path: Path):
    yield AppConfig(db_path=tmp_path / "pricing.db")
    reset_repos()


def _lines() -> List[Dict[str, Any]]:
    return [
        {"vendor_id": "V001", "item_number": "SKU-1", "name": "Aceite", "unit": "lt",
         "unit_price": "10.00", "quantity": "2", "business_date": "2025-06-27"},
        {"vendor_id": "V001", "item_number": "SKU-1", "name": "Aceite", "unit": "lt",
         "unit_price": "11.00", "quantity": "3", "business_date": "2025-06-28"},
        {"vendor_id": "V002", "item_number": "A-77", "name": "Aceite girasol", "unit": "lt",
         "unit_price": 9.5, "quantity": 1, "business_date": "2025-06-28"},
    ]


# ------------------------------ Tests: happy paths ----------------------------


def test_ingest_then_trackers(cfg: AppConfig) -> None:
    out = ingest_invoice_lines("R001", _lines(), app_cfg=cfg)
    assert out["ok"] is True
    assert out["success_count"] == 3
    json.dumps(out)

    res = price_insights("trackers", "R001", vendor_id="V001", item_number="SKU-1", app_cfg=cfg)
    assert res["ok"] is True
    assert res["meta"]["row_count"] == len(res["data"]) == 1
    row = res["data"][0]
    assert row["last_paid_price"] == pytest.approx(11.0)
    assert row["avg_7d"] == pytest.approx(10.6)
    assert row["avg_7d_fmt"] == "$10.60"
    assert row["diff_vs_7d_pct_fmt"] == "+3.77%"
    assert row["as_of_date"] == "2025-06-28"
    assert any("emparejar" in w for w in res["warnings"])
    json.dumps(res)


def test_mode_synonyms_and_by_vendor(cfg: AppConfig) -> None:
    ingest_invoice_lines("R001", _lines(), app_cfg=cfg)
    res = price_insights("Por_Proveedor", "R001", vendor_id="V001", app_cfg=cfg)  # type: ignore[arg-type]
    assert res["ok"] is True
    assert res["mode"] == "by_vendor"
    assert [r["item_number"] for r in res["data"]] == ["SKU-1"]


def test_history_and_activity(cfg: AppConfig) -> None:
    ingest_invoice_lines("R001", _lines(), app_cfg=cfg)
    hist = price_insights("history", "R001", vendor_id="V001", item_number="SKU-1",
                          as_of="2025-06-28", days=7, app_cfg=cfg)
    assert hist["ok"] is True
    assert [r["business_date"] for r in hist["data"]] == ["2025-06-27", "2025-06-28"]
    assert hist["data"][1]["avg_unit_price_fmt"] == "$11.00"

    act = price_insights("activity", "R001", as_of="2025-06-28", days=2, app_cfg=cfg)
    assert act["ok"] is True
    assert act["data"][0]["unique_vendors"] == 2
    json.dumps(act)


def test_summary_and_alerts(cfg: AppConfig) -> None:
    ingest_invoice_lines("R001", _lines(), app_cfg=cfg)
    summary = price_insights("resumen", "R001", app_cfg=cfg)  # type: ignore[arg-type]
    assert summary["ok"] is True
    assert summary["data"][0]["total_items"] == 2

    alerts = price_insights("alerts", "R001", threshold_pct=3, app_cfg=cfg)
    assert alerts["ok"] is True
    assert [a["item_number"] for a in alerts["data"]] == ["SKU-1"]
    json.dumps(alerts)


# ------------------------------ Tests: errores/defensivos ---------------------


def test_invalid_mode_returns_ok_false(cfg: AppConfig) -> None:
    out = price_insights("no_such_mode", "R001", app_cfg=cfg)  # type: ignore[arg-type]
    assert out["ok"] is False
    assert isinstance(out["error"], str)


def test_missing_params_returns_ok_false(cfg: AppConfig) -> None:
    out = price_insights("trackers", "R001", vendor_id="V001", app_cfg=cfg)
    assert out["ok"] is False
    assert "item_number" in out["error"]


def test_invalid_days_returns_ok_false(cfg: AppConfig) -> None:
    out = price_insights("history", "R001", vendor_id="V001", item_number="SKU-1", days=0, app_cfg=cfg)
    assert out["ok"] is False


def test_ingest_with_bad_line_reports_it(cfg: AppConfig) -> None:
    lines = _lines() + [{"vendor_id": "V001", "item_number": "SKU-1", "unit_price": "-3",
                         "quantity": "1", "business_date": "2025-06-28"}]
    out = ingest_invoice_lines("R001", lines, app_cfg=cfg)
    assert out["ok"] is False
    assert out["error_count"] == 1
    assert out["outcomes"][3]["ok"] is False
    assert out["outcomes"][3]["error"]
