"""Payroll and invoice arithmetic."""

from erp_workflow.calculators.salary import (
    SalaryComponents,
    compute_net_salary,
    parse_amount,
    quantize,
    sum_amounts,
)

__all__ = [
    "SalaryComponents",
    "compute_net_salary",
    "parse_amount",
    "quantize",
    "sum_amounts",
]
