# finance_tracker/ledger.py
"""
Budget ledger: keeps Budget.current_spent in step with the expense table.

Every expense mutation is turned into a list of (BudgetKey, delta) pairs by
the pure `deltas_for_*` helpers, and the deltas are applied to the stored
rows with a single UPDATE ... SET current_spent = current_spent + delta, so
concurrent writers never overwrite each other's totals. The caller owns the
transaction: the expense row and its deltas are committed together.
"""
import logging
from collections import OrderedDict, namedtuple
from datetime import datetime

from dateutil.relativedelta import relativedelta
from sqlalchemy import func, update
from sqlalchemy.orm import Session

from . import models
from .config import DEFAULT_BUDGETS, TOTAL_CATEGORY
from .errors import ConflictError

logger = logging.getLogger(__name__)

BudgetKey = namedtuple("BudgetKey", ["category", "month", "year"])

# The fields of an expense the ledger cares about. ORM rows quack the same way.
ExpenseState = namedtuple("ExpenseState", ["amount", "category", "expense_date"])


def snapshot(expense) -> ExpenseState:
    return ExpenseState(expense.amount, expense.category, expense.expense_date)


def month_bounds(month: int, year: int):
    """[start, end) datetimes for a calendar month."""
    start = datetime(year, month, 1)
    return start, start + relativedelta(months=1)


def keys_for(category: str, when: datetime):
    keys = [BudgetKey(category, when.month, when.year)]
    if category != TOTAL_CATEGORY:
        keys.append(BudgetKey(TOTAL_CATEGORY, when.month, when.year))
    return keys


def _merge(pairs):
    merged = OrderedDict()
    for key, delta in pairs:
        merged[key] = merged.get(key, 0.0) + delta
    return [(key, delta) for key, delta in merged.items() if delta != 0]


# -----------------------------
# Delta derivation (pure)
# -----------------------------
def deltas_for_create(expense):
    return _merge((key, expense.amount) for key in keys_for(expense.category, expense.expense_date))


def deltas_for_update(old, new):
    """
    Remove the old amount from the old keys and add the new amount to the new
    keys. Keys present on both sides collapse to their signed difference, so a
    plain amount change touches each row once.
    """
    pairs = [(key, -old.amount) for key in keys_for(old.category, old.expense_date)]
    pairs += [(key, new.amount) for key in keys_for(new.category, new.expense_date)]
    return _merge(pairs)


def deltas_for_delete(expense):
    return _merge((key, -expense.amount) for key in keys_for(expense.category, expense.expense_date))


# -----------------------------
# Applying deltas
# -----------------------------
def apply_budget_delta(db: Session, user_id: int, key: BudgetKey, delta: float) -> bool:
    """Atomic in-place increment. Returns False when no budget row matches."""
    stmt = (
        update(models.Budget)
        .where(
            models.Budget.user_id == user_id,
            models.Budget.category == key.category,
            models.Budget.month == key.month,
            models.Budget.year == key.year,
        )
        .values(current_spent=models.Budget.current_spent + delta)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    if result.rowcount == 0:
        logger.debug("no budget for user %s %s; delta %.2f skipped", user_id, key, delta)
        return False
    logger.debug("budget user %s %s += %.2f", user_id, key, delta)
    return True


def apply_deltas(db: Session, user_id: int, deltas):
    """Apply deltas inside the caller's transaction; returns the keys that matched a budget."""
    return [key for key, delta in deltas if apply_budget_delta(db, user_id, key, delta)]


# -----------------------------
# Seeding / repair
# -----------------------------
def spent_for(db: Session, user_id: int, category: str, month: int, year: int) -> float:
    start, end = month_bounds(month, year)
    query = db.query(func.sum(models.Expense.amount)).filter(
        models.Expense.user_id == user_id,
        models.Expense.expense_date >= start,
        models.Expense.expense_date < end,
    )
    if category != TOTAL_CATEGORY:
        query = query.filter(models.Expense.category == category)
    return query.scalar() or 0.0


def initialize_default_budgets(db: Session, user_id: int, month: int, year: int):
    existing = db.query(models.Budget).filter(
        models.Budget.user_id == user_id,
        models.Budget.month == month,
        models.Budget.year == year,
    ).first()
    if existing:
        logger.warning("budgets already exist for user %s %02d/%d", user_id, month, year)
        raise ConflictError(f"Budgets already exist for {month:02d}/{year}")

    budgets = []
    for category, limit in DEFAULT_BUDGETS.items():
        budget = models.Budget(
            user_id=user_id,
            category=category,
            monthly_limit=limit,
            current_spent=spent_for(db, user_id, category, month, year),
            month=month,
            year=year,
        )
        db.add(budget)
        budgets.append(budget)
    db.commit()
    for budget in budgets:
        db.refresh(budget)
    logger.info("initialized %d default budgets for user %s %02d/%d", len(budgets), user_id, month, year)
    return budgets


def recalculate_budgets(db: Session, user_id: int, month: int, year: int):
    """Recompute current_spent for every budget row of a period from the expense table."""
    budgets = db.query(models.Budget).filter(
        models.Budget.user_id == user_id,
        models.Budget.month == month,
        models.Budget.year == year,
    ).all()
    for budget in budgets:
        budget.current_spent = spent_for(db, user_id, budget.category, month, year)
    db.commit()
    for budget in budgets:
        db.refresh(budget)
    return budgets
