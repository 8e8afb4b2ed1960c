"""
Client for the remote payroll computation function.

The computation itself is opaque to this backend: it receives an employee,
a base salary, the period type and the period's adjustments ("novedades")
and answers with gross pay, health and pension deductions and net pay.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from ..errors import CalculationError
from ..utils.retry_utils import retry_with_backoff

logger = logging.getLogger("payroll.clients.calculations")


@dataclass(frozen=True)
class Calculation:
    """Result of one employee's payroll computation."""
    gross_pay: float
    health_deduction: float
    pension_deduction: float
    net_pay: float
    raw: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def total_deductions(self) -> float:
        return self.health_deduction + self.pension_deduction

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Calculation":
        """Build a calculation from the function's camelCase result object."""
        try:
            return cls(
                gross_pay=float(payload["grossPay"]),
                health_deduction=float(payload["healthDeduction"]),
                pension_deduction=float(payload["pensionDeduction"]),
                net_pay=float(payload["netPay"]),
                raw=dict(payload),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise CalculationError(f"Malformed calculation result: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        detail = dict(self.raw)
        detail.update({
            "grossPay": self.gross_pay,
            "healthDeduction": self.health_deduction,
            "pensionDeduction": self.pension_deduction,
            "netPay": self.net_pay,
        })
        return detail


class PayrollCalculationClient:
    """HTTP client for the payroll-calculations function."""

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 30.0,
        max_attempts: int = 3,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.base_url = base_url
        self.max_attempts = max_attempts
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout, headers=headers)

    async def calculate(
        self,
        employee_id: str,
        base_salary: float,
        period_type: str,
        adjustments: List[Dict[str, Any]]
    ) -> Calculation:
        """
        Compute one employee's payroll.

        Transport failures are retried with backoff; an answer without
        ``success: true`` is not retried.

        Raises:
            CalculationError: if the function fails or answers with an error
        """
        body = {
            "action": "calculate",
            "employeeId": employee_id,
            "baseSalary": base_salary,
            "periodType": period_type,
            "novedades": adjustments,
        }

        try:
            response = await retry_with_backoff(
                self._client.post,
                self.base_url,
                json=body,
                max_attempts=self.max_attempts,
                initial_delay=0.5,
                exceptions=(httpx.TransportError,),
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise CalculationError(
                f"Calculation request failed for employee {employee_id}: {e}",
                employee_id=employee_id
            ) from e

        if not isinstance(data, dict) or not data.get("success"):
            message = data.get("error") if isinstance(data, dict) else None
            raise CalculationError(
                f"Calculation failed for employee {employee_id}: {message or 'unknown error'}",
                employee_id=employee_id
            )

        return Calculation.from_payload(data.get("result") or {})

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
