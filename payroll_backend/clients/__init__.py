from .payroll_calculations import Calculation, PayrollCalculationClient

__all__ = ['Calculation', 'PayrollCalculationClient']
