# finance_tracker/health.py
from .models import HealthScore


def savings_rate(income: float, fixed_expenses: float, variable_expenses: float) -> float:
    if income <= 0:
        return 0.0
    return (income - fixed_expenses - variable_expenses) / income * 100


def investment_rate(income: float, investments: float) -> float:
    if income <= 0:
        return 0.0
    return investments / income * 100


def emergency_fund_months(emergency_fund: float, monthly_income: float) -> float:
    if monthly_income <= 0:
        return 0.0
    return emergency_fund / monthly_income


# (threshold, points), checked top-down
SAVINGS_BUCKETS = [(20, 30), (15, 25), (10, 20), (5, 15), (0, 10)]
INVESTMENT_BUCKETS = [(20, 30), (15, 25), (10, 20), (5, 15)]
EMERGENCY_BUCKETS = [(6, 40), (3, 30), (1, 20)]


def _bucket(value: float, buckets) -> int:
    for threshold, points in buckets:
        if value >= threshold:
            return points
    return 0


def health_points(savings: float, investment: float, fund_months: float) -> int:
    """Score in [0, 100]: savings up to 30, investment up to 30, emergency fund up to 40."""
    score = _bucket(savings, SAVINGS_BUCKETS)
    score += _bucket(investment, INVESTMENT_BUCKETS)

    emergency = _bucket(fund_months, EMERGENCY_BUCKETS)
    if emergency == 0 and fund_months > 0:
        emergency = 10
    score += emergency
    return score


def score_category(points: int) -> HealthScore:
    if points >= 80:
        return HealthScore.EXCELLENT
    if points >= 60:
        return HealthScore.GOOD
    if points >= 40:
        return HealthScore.FAIR
    return HealthScore.POOR


def calculate_health_score(savings: float, investment: float, fund_months: float) -> HealthScore:
    return score_category(health_points(savings, investment, fund_months))
