# agent_pricing/tests/test_service.py
from __future__ import annotations

from datetime import date
from pathlib import Path
import pytest

from agent_pricing.tools.pricing.config import AppConfig
from agent_pricing.tools.pricing.consistency import validate_store
from agent_pricing.tools.pricing.dto import PricingQuery
from agent_pricing.tools.pricing.repo import build_repo, get_repo, reset_repos
from agent_pricing.tools.pricing.service import get_handler, run_ingestion, run_pricing_query, run_retention


@pytest.fixture()
def cfg(tmp_path: Path):
    yield AppConfig(db_path=tmp_path / "pricing.db", retention_days=30)
    reset_repos()


def test_get_repo_is_lazy_singleton(cfg: AppConfig) -> None:
    assert get_repo(cfg) is get_repo(cfg)


def test_unknown_handler():
    with pytest.raises(ValueError):
        get_handler("por_mes")


def test_ingestion_fills_restaurant_and_keeps_explicit(cfg: AppConfig) -> None:
    lines = [
        {"vendor_id": "V001", "item_number": "SKU-1", "unit_price": "2", "quantity": "1", "business_date": "2025-06-01"},
        {"restaurant_id": "R002", "vendor_id": "V001", "item_number": "SKU-1", "unit_price": "2",
         "quantity": "1", "business_date": "2025-06-01"},
    ]
    result = run_ingestion("R001", lines, app_cfg=cfg)
    assert result.success_count == 2
    store = get_repo(cfg).store
    assert store.get("R001", "V001", "SKU-1", date(2025, 6, 1)) is not None
    assert store.get("R002", "V001", "SKU-1", date(2025, 6, 1)) is not None


def test_no_history_warning(cfg: AppConfig) -> None:
    q = PricingQuery(mode="trackers", restaurant_id="R001", vendor_id="V404", item_number="X")
    res = run_pricing_query(q, app_cfg=cfg)
    assert res.ok is True
    assert res.data[0]["has_history"] is False
    assert len(res.warnings) == 2


def test_explicit_repo_and_retention(tmp_path: Path) -> None:
    cfg = AppConfig(db_path=tmp_path / "own.db", retention_days=30)
    repo = build_repo(cfg)
    try:
        run_ingestion("R001", [
            {"vendor_id": "V001", "item_number": "SKU-1", "unit_price": "2", "quantity": "1", "business_date": "2025-01-01"},
            {"vendor_id": "V001", "item_number": "SKU-1", "unit_price": "2", "quantity": "1", "business_date": "2025-06-01"},
        ], app_cfg=cfg, repo=repo)
        assert run_retention("R001", app_cfg=cfg, repo=repo, as_of=date(2025, 6, 15)).rollups_deleted == 1
        assert [r.business_date for r in repo.store.get_history("R001", "V001", "SKU-1")] == [date(2025, 6, 1)]
    finally:
        repo.store.close()


def test_retention_keeps_store_consistent(tmp_path: Path) -> None:
    cfg = AppConfig(db_path=tmp_path / "ret.db", retention_days=30)
    repo = build_repo(cfg)
    try:
        run_ingestion("R001", [
            {"vendor_id": "V001", "item_number": "SKU-1", "unit_price": "2.5", "quantity": "2", "business_date": "2025-01-01"},
            {"vendor_id": "V001", "item_number": "SKU-2", "unit_price": "4", "quantity": "1", "business_date": "2025-06-14"},
        ], app_cfg=cfg, repo=repo)
        assert validate_store(repo.store).failed == 0

        res = run_retention("R001", app_cfg=cfg, repo=repo, as_of=date(2025, 6, 15))
        assert res.rollups_deleted == 1
        assert [t.item_number for t in res.invalidated] == ["SKU-1"]
        assert res.refreshed == 1

        t = repo.store.get_trackers("R001", "V001", "SKU-1")
        assert t is not None and t.has_history is False
        assert t.as_of_date == date(2025, 1, 1)
        assert validate_store(repo.store).failed == 0
    finally:
        repo.store.close()
