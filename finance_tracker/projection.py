# finance_tracker/projection.py
"""
Compound-growth projection for SIP portfolios.
"""
import math
from dataclasses import asdict, dataclass

from .config import DEFAULT_PROJECTION_YEARS
from .errors import ComputationError, ValidationError


@dataclass(frozen=True)
class PortfolioProjection:
    current_portfolio_value: float
    monthly_investment: float
    projected_value: int
    total_contribution: float
    expected_gains: int
    projection_years: int

    def to_dict(self) -> dict:
        return asdict(self)


def round_half_up(value: float) -> int:
    """Nearest whole currency unit, halves rounded up."""
    return int(math.floor(value + 0.5))


def annuity_future_value(monthly_amount: float, monthly_rate: float, months: int) -> float:
    """Ordinary annuity (payments at period end). At r=0 this is just M*n."""
    if monthly_rate == 0:
        return monthly_amount * months
    return monthly_amount * (((1 + monthly_rate) ** months - 1) / monthly_rate)


def future_value(current_value: float, monthly_amount: float, annual_rate: float, years: int) -> float:
    if current_value < 0 or monthly_amount < 0:
        raise ValidationError("Current value and monthly amount cannot be negative")
    if annual_rate < 0:
        raise ValidationError(f"Expected return rate cannot be negative: {annual_rate}")
    if years < 0:
        raise ValidationError(f"Projection years cannot be negative: {years}")

    r = annual_rate / 100 / 12
    months = years * 12
    try:
        value = current_value * (1 + r) ** months + annuity_future_value(monthly_amount, r, months)
    except OverflowError as exc:
        raise ComputationError("Projection overflowed") from exc
    if not math.isfinite(value):
        raise ComputationError("Projection did not produce a finite result")
    return value


def project_portfolio(sips, years: int = DEFAULT_PROJECTION_YEARS) -> PortfolioProjection:
    """
    Aggregate projection over the active SIPs in `sips`.

    Any object exposing current_value, monthly_amount, expected_return_rate
    and is_active works (ORM rows or schemas).
    """
    total_current = 0.0
    total_monthly = 0.0
    projected = 0.0

    for sip in sips:
        if not getattr(sip, "is_active", True):
            continue
        total_current += sip.current_value
        total_monthly += sip.monthly_amount
        projected += future_value(sip.current_value, sip.monthly_amount, sip.expected_return_rate, years)

    total_contribution = total_monthly * 12 * years
    expected_gains = projected - total_current - total_contribution

    return PortfolioProjection(
        current_portfolio_value=total_current,
        monthly_investment=total_monthly,
        projected_value=round_half_up(projected),
        total_contribution=total_contribution,
        expected_gains=round_half_up(expected_gains),
        projection_years=years,
    )
