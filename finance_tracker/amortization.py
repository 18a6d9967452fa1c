# finance_tracker/amortization.py
"""
Reducing-balance loan maths for fixed-EMI loans.

Nothing here touches the database: callers pass plain numbers and decide
whether to persist anything afterwards.
"""
import logging
import math
from dataclasses import asdict, dataclass

from .errors import ComputationError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PrepaymentImpact:
    current_outstanding: float
    new_outstanding: float
    prepayment_amount: float
    tenure_reduction: int
    interest_saved: float
    new_tenure_months: int

    def to_dict(self) -> dict:
        return asdict(self)


def monthly_rate(annual_rate: float) -> float:
    return annual_rate / 100 / 12


def remaining_tenure(outstanding: float, emi: float, annual_rate: float) -> int:
    """
    Number of EMIs needed to clear `outstanding`:

        n = ceil( -ln(1 - B*r/E) / ln(1 + r) )

    which is the annuity present-value equation B = E * (1 - (1+r)^-n) / r
    solved for n. Raises ComputationError when the EMI does not cover the
    monthly interest (E <= B*r), since the balance would never go down.
    """
    if outstanding < 0:
        raise ValidationError(f"Outstanding amount cannot be negative: {outstanding}")
    if emi <= 0:
        raise ValidationError(f"EMI must be positive: {emi}")
    if annual_rate <= 0:
        raise ValidationError(f"Interest rate must be positive: {annual_rate}")
    if outstanding == 0:
        return 0

    r = monthly_rate(annual_rate)
    interest = outstanding * r
    if emi <= interest:
        raise ComputationError(
            f"EMI {emi:.2f} does not cover monthly interest {interest:.2f}; loan never amortizes"
        )

    months = -math.log(1 - interest / emi) / math.log(1 + r)
    if not math.isfinite(months):
        raise ComputationError("Tenure calculation did not produce a finite result")
    # float noise can leave an exact integer a hair above itself
    return max(0, math.ceil(round(months, 9)))


def prepayment_impact(outstanding: float, emi: float, annual_rate: float, prepayment: float) -> PrepaymentImpact:
    if prepayment <= 0:
        raise ValidationError(f"Prepayment amount must be positive: {prepayment}")

    current_tenure = remaining_tenure(outstanding, emi, annual_rate)
    new_outstanding = max(0.0, outstanding - prepayment)
    new_tenure = remaining_tenure(new_outstanding, emi, annual_rate) if new_outstanding > 0 else 0

    tenure_reduction = current_tenure - new_tenure
    principal_reduced = outstanding - new_outstanding
    interest_saved = max(0.0, tenure_reduction * emi - principal_reduced)

    logger.debug(
        "prepayment %.2f on %.2f: tenure %d -> %d", prepayment, outstanding, current_tenure, new_tenure
    )
    return PrepaymentImpact(
        current_outstanding=outstanding,
        new_outstanding=new_outstanding,
        prepayment_amount=prepayment,
        tenure_reduction=tenure_reduction,
        interest_saved=interest_saved,
        new_tenure_months=new_tenure,
    )
