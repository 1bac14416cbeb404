# agent_pricing/tests/test_consistency.py
from __future__ import annotations

"""
Tests del validador offline de trackers.

Principios:
- Lo materializado por el motor debe coincidir con la recomputación independiente.
- Cualquier campo alterado o trackers ausentes cuentan como falla.
- El CLI devuelve 0 solo con pass rate 100%.
"""

from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path
import json
import random
import pytest

from agent_pricing.tools.pricing.config import AppConfig
from agent_pricing.tools.pricing.consistency import main, reference_trackers, validate_store
from agent_pricing.tools.pricing.exceptions import ConsistencyError
from agent_pricing.tools.pricing.repo import PricingRepository, build_repo

AS_OF = date(2025, 6, 28)


# ------------------------------ Helpers --------------------------------------


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "pricing.db"


@pytest.fixture()
def repo(db_path: Path):
    r = build_repo(AppConfig(db_path=db_path))
    yield r
    r.store.close()


def _seed(repo: PricingRepository) -> None:
    """Compras irregulares en 3 items y 2 vendors, con precios de 3-4 decimales."""
    lines = []
    for offset, qty, price in [(30, "1", "8.75"), (20, "2.5", "9.125"), (9, "1", "9.90"), (3, "4", "10.333"), (0, "1.5", "10.10")]:
        lines.append({
            "restaurant_id": "R001", "vendor_id": "V001", "item_number": "SKU-1",
            "name": "Arroz", "unit": "kg", "unit_price": price, "quantity": qty,
            "business_date": (AS_OF - timedelta(days=offset)).isoformat(),
        })
    for offset, qty, price in [(12, "10", "3.40"), (1, "6", "3.10")]:
        lines.append({
            "restaurant_id": "R001", "vendor_id": "V002", "item_number": "FRJ-7",
            "name": "Frijol", "unit": "kg", "unit_price": price, "quantity": qty,
            "business_date": (AS_OF - timedelta(days=offset)).isoformat(),
        })
    lines.append({
        "restaurant_id": "R001", "vendor_id": "V002", "item_number": "ARZ-2",
        "name": "Arroz", "unit": "kg", "unit_price": "9.60", "quantity": "3",
        "business_date": AS_OF.isoformat(),
    })
    result = repo.rollups.record_batch(lines)
    assert result.error_count == 0
    repo.store.set_canonical_item("R001", "V001", "SKU-1", "CAN-ARROZ")
    repo.store.set_canonical_item("R001", "V002", "ARZ-2", "CAN-ARROZ")
    repo.stats.refresh("R001", "V001", "SKU-1", as_of=AS_OF)


# ------------------------------ Tests ------------------------------------------


def test_reference_matches_scenario():
    from agent_pricing.tools.pricing.dto import DailyRollup

    history = [
        DailyRollup(restaurant_id="R", vendor_id="V", item_number="I", business_date=AS_OF - timedelta(days=1),
                    quantity_sum=Decimal("2"), spend_sum=Decimal("20.00")),
        DailyRollup(restaurant_id="R", vendor_id="V", item_number="I", business_date=AS_OF,
                    quantity_sum=Decimal("3"), spend_sum=Decimal("33.00")),
    ]
    ref = reference_trackers(history, AS_OF)
    assert ref["avg_7d"] == Decimal("10.6")
    assert ref["last_paid_price"] == Decimal("11")
    assert ref["diff_vs_7d_pct"] == pytest.approx(3.7736, abs=1e-4)


def test_engine_and_validator_agree(repo: PricingRepository) -> None:
    _seed(repo)
    report = validate_store(repo.store, restaurant_id="R001")
    assert report.checked == 3
    assert report.failed == 0
    assert report.pass_rate == 100.0
    report.raise_for_failures()


def test_tampered_trackers_fail(repo: PricingRepository) -> None:
    _seed(repo)
    t = repo.store.get_trackers("R001", "V002", "FRJ-7")
    assert t is not None
    repo.store.save_trackers(t.model_copy(update={"avg_28d": t.avg_28d + Decimal("0.01")}))

    report = validate_store(repo.store)
    assert report.failed == 1
    bad = report.failures()[0]
    assert (bad.vendor_id, bad.item_number) == ("V002", "FRJ-7")
    assert [d.field for d in bad.discrepancies] == ["avg_28d"]
    with pytest.raises(ConsistencyError):
        report.raise_for_failures()


def test_missing_trackers_fail(repo: PricingRepository) -> None:
    _seed(repo)
    repo.store.upsert_vendor_item("R001", "V003", "NUEVO", name="Sal", unit="kg")
    report = validate_store(repo.store, restaurant_id="R001")
    assert report.checked == 4
    assert [c.item_number for c in report.failures()] == ["NUEVO"]
    assert report.failures()[0].error


def test_sample_is_reproducible(repo: PricingRepository) -> None:
    _seed(repo)
    a = validate_store(repo.store, sample_size=2, seed=7)
    b = validate_store(repo.store, sample_size=2, seed=7)
    assert a.checked == 2
    assert [c.item_number for c in a.items] == [c.item_number for c in b.items]


def test_cli_exit_codes(repo: PricingRepository, db_path: Path, capsys) -> None:
    _seed(repo)
    assert main(["--db", str(db_path), "--json"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["pass_rate"] == 100.0

    t = repo.store.get_trackers("R001", "V001", "SKU-1")
    assert t is not None
    repo.store.save_trackers(t.model_copy(update={"last_paid_price": t.last_paid_price + Decimal("1")}))
    assert main(["--db", str(db_path)]) == 1
    assert "FAIL R001/V001/SKU-1" in capsys.readouterr().out


def _random_history(rng: random.Random) -> list:
    """Historias irregulares: huecos, días en cero, cantidades dispares y fechas fuera de la ventana."""
    lines = []
    for vendor in ("V001", "V002", "V003"):
        for item in ("A", "B"):
            for offset in range(40, -1, -1):
                if rng.random() < 0.6:
                    continue
                for _ in range(rng.randint(1, 3)):
                    qty = rng.choice(["0", "1", "1.5", "2.375", "12", f"{rng.uniform(0.1, 30):.3f}"])
                    price = f"{rng.uniform(1, 50):.{rng.choice([3, 4])}f}"
                    lines.append({
                        "restaurant_id": "R001", "vendor_id": vendor, "item_number": f"{vendor}-{item}",
                        "name": "Insumo", "unit": "kg", "unit_price": price, "quantity": qty,
                        "business_date": (AS_OF - timedelta(days=offset)).isoformat(),
                    })
    rng.shuffle(lines)
    return lines


@pytest.mark.parametrize("seed", range(12))
def test_random_histories_pass_validator(tmp_path: Path, seed: int) -> None:
    r = build_repo(AppConfig(db_path=tmp_path / f"s{seed}.db"))
    try:
        result = r.rollups.record_batch(_random_history(random.Random(seed)))
        assert result.error_count == 0
        report = validate_store(r.store)
        assert report.checked > 0
        assert report.failed == 0
    finally:
        r.store.close()
