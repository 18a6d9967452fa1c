import pytest

from finance_tracker import health
from finance_tracker.models import HealthScore


def test_example_profile_scores_excellent():
    savings = health.savings_rate(85000, 30000, 15000)
    investment = health.investment_rate(85000, 12000)
    months = health.emergency_fund_months(255000, 85000)

    assert savings == pytest.approx(47.0588, rel=1e-4)
    assert investment == pytest.approx(14.1176, rel=1e-4)
    assert months == 3
    # 30 (savings >= 20) + 20 (investment >= 10) + 30 (3 months cover)
    assert health.health_points(savings, investment, months) == 80
    assert health.calculate_health_score(savings, investment, months) == HealthScore.EXCELLENT


@pytest.mark.parametrize("savings,points", [(25, 30), (20, 30), (15, 25), (12, 20), (5, 15), (0, 10), (-3, 0)])
def test_savings_buckets(savings, points):
    assert health.health_points(savings, -1, 0) == points


@pytest.mark.parametrize("investment,points", [(20, 30), (17, 25), (10, 20), (5, 15), (4.99, 0)])
def test_investment_buckets(investment, points):
    assert health.health_points(-1, investment, 0) == points


@pytest.mark.parametrize("months,points", [(6, 40), (3, 30), (1, 20), (0.5, 10), (0, 0)])
def test_emergency_buckets(months, points):
    assert health.health_points(-1, -1, months) == points


def test_points_are_monotonic_per_ratio():
    values = [x / 2 for x in range(-10, 60)]
    for fixed in (-5, 0, 7, 30):
        by_savings = [health.health_points(v, fixed, fixed / 5) for v in values]
        by_investment = [health.health_points(fixed, v, fixed / 5) for v in values]
        by_fund = [health.health_points(fixed, fixed, v / 5) for v in values]
        for series in (by_savings, by_investment, by_fund):
            assert series == sorted(series)
            assert all(0 <= p <= 100 for p in series)


def test_every_score_maps_to_one_category():
    expected = {HealthScore.POOR: range(0, 40), HealthScore.FAIR: range(40, 60),
                HealthScore.GOOD: range(60, 80), HealthScore.EXCELLENT: range(80, 101)}
    for points in range(0, 101):
        matches = [c for c, r in expected.items() if points in r]
        assert matches == [health.score_category(points)]


def test_zero_income_is_valid_and_poor():
    savings = health.savings_rate(0, 0, 0)
    investment = health.investment_rate(0, 0)
    months = health.emergency_fund_months(10000, 0)
    assert (savings, investment, months) == (0, 0, 0)
    assert health.calculate_health_score(savings, investment, months) == HealthScore.POOR
