import asyncio
from datetime import date
from typing import Any, Callable, Dict, List, Optional

import pytest

from payroll_backend.clients.payroll_calculations import Calculation
from payroll_backend.db.session import configure_engine, dispose_engine, init_db
from payroll_backend.errors import CalculationError, StoreError
from payroll_backend.store.client import Collections
from payroll_backend.store.sql_store import SQLStoreClient

COMPANY_ID = "company-1"
ACTOR_ID = "user-1"


class StubCalculator:
    """Deterministic stand-in for the remote payroll computation (8% deductions)."""

    def __init__(self, fail_on: Optional[List[str]] = None, delay: float = 0.0):
        self.fail_on = set(fail_on or [])
        self.delay = delay
        self.calls: List[str] = []

    async def calculate(self, employee_id, base_salary, period_type, adjustments):
        self.calls.append(employee_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if employee_id in self.fail_on:
            raise CalculationError("computation unavailable", employee_id=employee_id)
        health = round(base_salary * 0.04, 2)
        pension = round(base_salary * 0.04, 2)
        return Calculation(
            gross_pay=base_salary,
            health_deduction=health,
            pension_deduction=pension,
            net_pay=round(base_salary - health - pension, 2),
            raw={"periodType": period_type},
        )


class FaultyStore(SQLStoreClient):
    """SQL store that raises on chosen calls and remembers every mutating call."""

    def __init__(self, calculator, call_timeout=None):
        super().__init__(calculator, call_timeout=call_timeout)
        self.rules: List[Callable[[str, str, Dict[str, Any]], bool]] = []
        self.calls: List[tuple] = []

    def fail_when(self, rule: Callable[[str, str, Dict[str, Any]], bool]) -> None:
        self.rules.append(rule)

    def _check(self, kind: str, collection: str, data: Dict[str, Any]) -> None:
        self.calls.append((kind, collection, dict(data)))
        for rule in self.rules:
            if rule(kind, collection, data):
                raise StoreError(f"injected {kind} failure on {collection}", collection=collection)

    async def _insert(self, collection, payload):
        self._check("insert", collection, payload)
        return await super()._insert(collection, payload)

    async def _update(self, collection, match, payload):
        self._check("update", collection, {**match, **{f"set_{k}": v for k, v in payload.items()}})
        return await super()._update(collection, match, payload)

    async def _delete(self, collection, match):
        self._check("delete", collection, match)
        return await super()._delete(collection, match)


@pytest.fixture
async def database(tmp_path):
    configure_engine(f"sqlite+aiosqlite:///{tmp_path / 'payroll.db'}")
    await init_db()
    yield
    await dispose_engine()


@pytest.fixture
def calculator():
    return StubCalculator()


@pytest.fixture
async def store(database, calculator):
    client = SQLStoreClient(calculator)
    yield client
    await client.close()


@pytest.fixture
async def faulty_store(database, calculator):
    client = FaultyStore(calculator)
    yield client
    await client.close()


async def seed_period(
    store,
    company_id: str = COMPANY_ID,
    label: str = "1-15 Marzo 2025",
    state: str = "draft",
    **fields
) -> Dict[str, Any]:
    payload = {
        "company_id": company_id,
        "label": label,
        "start_date": date(2025, 3, 1),
        "end_date": date(2025, 3, 15),
        "period_type": "quincenal",
        "state": state,
    }
    payload.update(fields)
    return await store.insert(Collections.PERIODS, payload)


async def seed_payrolls(
    store,
    period: Optional[Dict[str, Any]],
    salaries: List[float],
    company_id: str = COMPANY_ID,
    state: str = "draft",
    period_label: Optional[str] = None,
    **fields
) -> List[Dict[str, Any]]:
    records = []
    for index, salary in enumerate(salaries, start=1):
        payload = {
            "company_id": company_id,
            "period_id": period["id"] if period else None,
            "period_label": period_label or (period["label"] if period else None),
            "employee_id": f"emp-{index}",
            "base_salary": salary,
            "state": state,
        }
        payload.update(fields)
        records.append(await store.insert(Collections.PAYROLLS, payload))
    return records


async def snapshot(store, period_id: str) -> Dict[str, Any]:
    """Current period, payroll records and vouchers, as the store returns them."""
    return {
        "period": await store.get(Collections.PERIODS, {"id": period_id}),
        "payrolls": await store.query(Collections.PAYROLLS, {"period_id": period_id}, order_by=["id"]),
        "vouchers": await store.query(Collections.VOUCHERS, {"period_id": period_id}),
    }
