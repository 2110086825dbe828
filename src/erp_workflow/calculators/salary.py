"""Net salary arithmetic and amount parsing.

All amounts are non-negative ``Decimal`` values quantized to cents. Form
input arrives as strings such as ``"150 000"`` or ``"1250,50"``; it is
parsed here and never trusted for computed fields like the net salary.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from erp_workflow.workflow.errors import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def quantize(amount: Decimal) -> Decimal:
    """Round to cents, half up."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_amount(value: Any, field: str = "amount") -> Decimal:
    """Parse a currency amount into a non-negative Decimal.

    Accepts numbers and strings with thin-space / space thousands
    separators and a comma or dot decimal separator. Empty input is zero.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", field=field)
    elif isinstance(value, (int, float)):
        amount = Decimal(str(value))
    else:
        text = str(value).strip()
        if not text:
            return ZERO
        text = "".join(text.split()).replace(",", ".")
        try:
            amount = Decimal(text)
        except InvalidOperation:
            raise ValidationError(f"{field} is not a valid amount: {value!r}", field=field)
    if not amount.is_finite():
        raise ValidationError(f"{field} is not a valid amount: {value!r}", field=field)
    if amount < 0:
        raise ValidationError(f"{field} must not be negative", field=field)
    return quantize(amount)


@dataclass(frozen=True)
class SalaryComponents:
    """Editable components of a payroll item."""

    base_salary: Decimal = ZERO
    bonus: Decimal = ZERO
    tax: Decimal = ZERO
    social_contribution: Decimal = ZERO
    advance: Decimal = ZERO
    lateness_deduction: Decimal = ZERO
    other_deduction: Decimal = ZERO

    @classmethod
    def parse(cls, raw: dict[str, Any], base_salary: Decimal | None = None) -> SalaryComponents:
        """Build components from untrusted input.

        ``base_salary`` comes from the stored item when given; the client
        cannot change it through an item edit.
        """
        values = {
            f.name: parse_amount(raw.get(f.name), field=f.name)
            for f in fields(cls)
            if f.name != "base_salary"
        }
        base = base_salary if base_salary is not None else parse_amount(
            raw.get("base_salary"), field="base_salary"
        )
        return cls(base_salary=quantize(base), **values)

    @property
    def total_deductions(self) -> Decimal:
        return quantize(
            self.tax
            + self.social_contribution
            + self.advance
            + self.lateness_deduction
            + self.other_deduction
        )

    @property
    def gross(self) -> Decimal:
        return quantize(self.base_salary + self.bonus)

    def as_dict(self) -> dict[str, Decimal]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def compute_net_salary(components: SalaryComponents) -> Decimal:
    """net = base + bonus - (tax + social contribution + advance + lateness + other).

    Raises ValidationError when deductions exceed gross pay.
    """
    net = quantize(components.gross - components.total_deductions)
    if net < 0:
        raise ValidationError(
            f"Deductions ({components.total_deductions}) exceed gross pay ({components.gross})",
            field="net_salary",
        )
    return net


def sum_amounts(amounts: list[Decimal]) -> Decimal:
    """Sum amounts exactly, then quantize."""
    return quantize(sum((Decimal(a) for a in amounts), ZERO))
