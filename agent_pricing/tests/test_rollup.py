# agent_pricing/tests/test_rollup.py
from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict
import pytest

from agent_pricing.tools.pricing.config import AppConfig
from agent_pricing.tools.pricing.exceptions import ValidationError
from agent_pricing.tools.pricing.repo import PricingRepository, build_repo


@pytest.fixture()
def repo(tmp_path: Path):
    r = build_repo(AppConfig(db_path=tmp_path / "pricing.db", batch_chunk_size=2, ingest_workers=3))
    yield r
    r.store.close()


def _line(price: str, qty: str, day: int, item: str = "SKU-1", vendor: str = "V001") -> Dict[str, Any]:
    return {
        "restaurant_id": "R001",
        "vendor_id": vendor,
        "item_number": item,
        "name": "Harina 25kg",
        "unit": "saco",
        "unit_price": price,
        "quantity": qty,
        "business_date": f"2025-06-{day:02d}",
    }


def test_record_line_accumulates_weighted_average(repo: PricingRepository) -> None:
    repo.rollups.record_line(_line("10.00", "1", 1))
    rollup = repo.rollups.record_line(_line("12.00", "3", 1))
    assert rollup.quantity_sum == Decimal("4")
    assert rollup.spend_sum == Decimal("46.00")
    # 46 / 4 = 11.50, no el promedio simple (10 + 12) / 2 = 11.00
    assert rollup.avg_unit_price == Decimal("11.5")


def test_record_line_upserts_vendor_item_and_refreshes(repo: PricingRepository) -> None:
    repo.rollups.record_line(_line("10.00", "2", 3))
    vi = repo.store.get_vendor_item("R001", "V001", "SKU-1")
    assert vi is not None and vi.last_seen_name == "Harina 25kg"
    t = repo.store.get_trackers("R001", "V001", "SKU-1")
    assert t is not None
    assert t.as_of_date == date(2025, 6, 3)
    assert t.last_paid_price == Decimal("10")


def test_invalid_line_leaves_store_untouched(repo: PricingRepository) -> None:
    with pytest.raises(ValidationError):
        repo.rollups.record_line(_line("-5", "1", 1))
    assert repo.store.list_vendor_items() == []
    assert repo.store.get_history("R001", "V001", "SKU-1") == []


def test_batch_reports_bad_line_and_continues(repo: PricingRepository) -> None:
    lines = [
        _line("10.00", "2", 1),
        _line("11.00", "3", 2),
        _line("abc", "1", 2),
        _line("9.00", "1", 2, item="SKU-2"),
        "no soy un mapping",
    ]
    result = repo.rollups.record_batch(lines)  # type: ignore[arg-type]
    assert result.total_lines == 5
    assert result.success_count == 3
    assert result.error_count == 2
    assert result.chunks == 3
    assert [o.index for o in result.outcomes] == [0, 1, 2, 3, 4]
    assert [o.index for o in result.outcomes if not o.ok] == [2, 4]
    assert all(o.error for o in result.outcomes if not o.ok)

    # trackers refrescados una vez por item, en su última fecha
    t1 = repo.store.get_trackers("R001", "V001", "SKU-1")
    assert t1 is not None and t1.as_of_date == date(2025, 6, 2)
    assert repo.store.get_trackers("R001", "V001", "SKU-2") is not None


def test_batch_duplicate_lines_count_twice(repo: PricingRepository) -> None:
    line = _line("10.00", "2", 1)
    repo.rollups.record_batch([line, line, line])
    r = repo.store.get("R001", "V001", "SKU-1", date(2025, 6, 1))
    assert r is not None
    assert r.quantity_sum == Decimal("6")
    assert r.spend_sum == Decimal("60.00")


def test_batch_default_chunk_size(tmp_path: Path) -> None:
    cfg = replace(AppConfig(db_path=tmp_path / "big.db"), batch_chunk_size=50)
    r = build_repo(cfg)
    try:
        result = r.rollups.record_batch([_line("1.00", "1", 1 + i % 28) for i in range(120)], refresh=False)
    finally:
        r.store.close()
    assert result.chunks == 3
    assert result.success_count == 120


def test_over_range_price_is_rejected_before_any_write(repo: PricingRepository) -> None:
    with pytest.raises(ValidationError):
        repo.rollups.record_line(_line("1e20", "1", 1, item="BIG"))
    assert repo.store.get_vendor_item("R001", "V001", "BIG") is None


def test_batch_with_over_range_line_still_returns_result(repo: PricingRepository) -> None:
    lines = [
        _line("10.00", "1", 1),
        _line("1e20", "1", 1, item="BIG"),
        _line("9.00", "2", 1, item="SKU-2"),
    ]
    result = repo.rollups.record_batch(lines)
    assert result.success_count == 2
    assert result.error_count == 1
    bad = [o for o in result.outcomes if not o.ok]
    assert [o.index for o in bad] == [1]
    assert bad[0].error and "fuera de rango" in bad[0].error
    assert repo.store.get_vendor_item("R001", "V001", "BIG") is None
    assert repo.store.get_trackers("R001", "V001", "SKU-1") is not None
    assert repo.store.get_trackers("R001", "V001", "SKU-2") is not None


def test_batch_reports_storage_failure_and_continues(repo: PricingRepository, monkeypatch: pytest.MonkeyPatch) -> None:
    original = repo.store.upsert_increment

    def flaky(key, quantity, spend):
        if key.item_number == "ROTO":
            raise OverflowError("Python int too large to convert to SQLite INTEGER")
        return original(key, quantity, spend)

    monkeypatch.setattr(repo.store, "upsert_increment", flaky)
    result = repo.rollups.record_batch([_line("10.00", "1", 1, item="ROTO"), _line("10.00", "1", 1)])
    assert result.error_count == 1
    assert result.outcomes[0].error is not None and result.outcomes[0].error.startswith("OverflowError")
    assert result.outcomes[1].ok is True
