# Payroll Liquidation Backend Package
"""
Payroll liquidation backend.

This package provides:
- Saga-based payroll period liquidation with compensating rollback
- Consistency diagnostics over periods, payroll records and vouchers
- Recovery planning and execution for detected drift
- FastAPI routes and a background consistency monitor
"""

__version__ = "1.0.0"
