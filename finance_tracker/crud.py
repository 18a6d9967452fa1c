import csv
import io
import logging
from datetime import datetime, timezone

from dateutil import parser as date_parser
from passlib.context import CryptContext
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import health, ledger, models
from .amortization import monthly_rate, prepayment_impact
from .config import DEFAULT_INSURANCE, DEFAULT_PROJECTION_YEARS, TOTAL_CATEGORY
from .errors import ConflictError, NotFoundError, ValidationError
from .projection import project_portfolio

logger = logging.getLogger(__name__)

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def _naive(dt: datetime) -> datetime:
    """Store everything as naive UTC so month windows compare cleanly."""
    if dt is not None and dt.tzinfo is not None:
        return dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def _current_period(today=None):
    today = today or datetime.now()
    return today.month, today.year


def _commit_or_rollback(db: Session):
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise


# -----------------------------
# Password helpers
# -----------------------------
def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)

# -----------------------------
# Users / profile
# -----------------------------
def create_user(db: Session, name: str, email: str, password: str, monthly_income: float = 0.0, emergency_fund: float = 0.0):
    if get_user_by_email(db, email):
        raise ConflictError("Email already registered")
    db_user = models.User(
        name=name,
        email=email,
        password=get_password_hash(password),
        monthly_income=monthly_income,
        emergency_fund=emergency_fund,
    )
    db.add(db_user)
    _commit_or_rollback(db)
    db.refresh(db_user)
    logger.info("registered user %s", db_user.id)
    return db_user

def get_user_by_email(db: Session, email: str):
    return db.query(models.User).filter(models.User.email == email).first()

def authenticate_user(db: Session, email: str, password: str):
    user = get_user_by_email(db, email)
    if not user:
        return None
    if not verify_password(password, user.password):
        return None
    return user

def get_user(db: Session, user_id: int):
    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")
    return user

def get_user_profile(db: Session, user_id: int) -> dict:
    user = get_user(db, user_id)
    return {
        "monthly_income": user.monthly_income or 0.0,
        "emergency_fund": user.emergency_fund or 0.0,
    }

def update_profile(db: Session, user_id: int, changes: dict, complete_onboarding: bool = False):
    user = get_user(db, user_id)
    goals = changes.pop("financial_goals", None)
    if goals is not None:
        user.financial_goals = ",".join(g.strip() for g in goals if g.strip())
    for field, value in changes.items():
        if value is not None:
            setattr(user, field, value)
    if complete_onboarding:
        user.is_onboarding_complete = True
    _commit_or_rollback(db)
    db.refresh(user)
    return user

# -----------------------------
# Accounts
# -----------------------------
def list_accounts(db: Session, user_id: int):
    return db.query(models.Account).filter(models.Account.user_id == user_id)\
             .order_by(models.Account.id.desc()).all()

def get_account(db: Session, user_id: int, account_id: int):
    account = db.query(models.Account).filter(
        models.Account.id == account_id, models.Account.user_id == user_id
    ).first()
    if not account:
        raise NotFoundError("Account not found")
    return account

def create_account(db: Session, user_id: int, name: str, type, balance: float):
    account = models.Account(user_id=user_id, name=name, type=type, balance=balance)
    db.add(account)
    _commit_or_rollback(db)
    db.refresh(account)
    return account

def update_account(db: Session, user_id: int, account_id: int, changes: dict):
    account = get_account(db, user_id, account_id)
    for field, value in changes.items():
        if value is not None:
            setattr(account, field, value)
    _commit_or_rollback(db)
    db.refresh(account)
    return account

def delete_account(db: Session, user_id: int, account_id: int):
    account = get_account(db, user_id, account_id)
    db.delete(account)
    _commit_or_rollback(db)

# -----------------------------
# Expenses
# -----------------------------
def _check_expense(amount: float, category: str):
    if amount is None or amount <= 0:
        raise ValidationError(f"Invalid amount: {amount}. Must be greater than 0.")
    if not category or not category.strip():
        raise ValidationError("Category is required")
    if category.strip() == TOTAL_CATEGORY:
        raise ValidationError(f"'{TOTAL_CATEGORY}' is reserved for the aggregate budget")


def create_expense(db: Session, user_id: int, amount: float, category: str, expense_date: datetime,
                   description: str = None, is_fixed: bool = False):
    """
    Insert the expense and bump the matching category and total budgets in
    one transaction.
    """
    _check_expense(amount, category)
    if description and len(description) > 255:
        description = description[:255]

    exp = models.Expense(
        user_id=user_id,
        amount=amount,
        category=category.strip(),
        description=description,
        expense_date=_naive(expense_date),
        is_fixed=bool(is_fixed),
    )
    try:
        db.add(exp)
        db.flush()
        ledger.apply_deltas(db, user_id, ledger.deltas_for_create(exp))
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(exp)
    return exp


def list_expenses(db: Session, user_id: int, month: int = None, year: int = None, category: str = None):
    query = db.query(models.Expense).filter(models.Expense.user_id == user_id)
    if month and year:
        start, end = ledger.month_bounds(month, year)
        query = query.filter(models.Expense.expense_date >= start, models.Expense.expense_date < end)
    if category:
        query = query.filter(models.Expense.category == category)
    return query.order_by(models.Expense.expense_date.desc()).all()


def list_expense_categories(db: Session, user_id: int):
    rows = db.query(models.Expense.category).filter(models.Expense.user_id == user_id)\
             .distinct().order_by(models.Expense.category).all()
    return [category for (category,) in rows]


def get_expense(db: Session, user_id: int, expense_id: int, for_update: bool = False):
    query = db.query(models.Expense).filter(
        models.Expense.id == expense_id, models.Expense.user_id == user_id
    )
    if for_update:
        query = query.with_for_update()
    exp = query.first()
    if not exp:
        raise NotFoundError("Expense not found")
    return exp


def update_expense(db: Session, user_id: int, expense_id: int, changes: dict):
    """
    Apply `changes` and move the amount between budget rows: the old amount
    leaves the old (category, month, year) keys and the new amount lands on
    the new ones.
    """
    changes = {k: v for k, v in changes.items() if v is not None or k == "description"}
    try:
        exp = get_expense(db, user_id, expense_id, for_update=True)
        old = ledger.snapshot(exp)

        if "amount" in changes or "category" in changes:
            _check_expense(changes.get("amount", exp.amount), changes.get("category", exp.category))
        if "category" in changes:
            changes["category"] = changes["category"].strip()
        if "expense_date" in changes:
            changes["expense_date"] = _naive(changes["expense_date"])

        for field, value in changes.items():
            setattr(exp, field, value)
        db.flush()

        ledger.apply_deltas(db, user_id, ledger.deltas_for_update(old, ledger.snapshot(exp)))
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(exp)
    return exp


def delete_expense(db: Session, user_id: int, expense_id: int):
    try:
        exp = get_expense(db, user_id, expense_id, for_update=True)
        deltas = ledger.deltas_for_delete(exp)
        db.delete(exp)
        db.flush()
        ledger.apply_deltas(db, user_id, deltas)
        db.commit()
    except Exception:
        db.rollback()
        raise


def expense_breakdown(db: Session, user_id: int, month: int, year: int) -> dict:
    expenses = list_expenses(db, user_id, month=month, year=year)
    category_totals = {}
    for exp in expenses:
        category_totals[exp.category] = category_totals.get(exp.category, 0.0) + exp.amount
    total = sum(e.amount for e in expenses)
    fixed = sum(e.amount for e in expenses if e.is_fixed)
    return {
        "total_expenses": total,
        "fixed_expenses": fixed,
        "variable_expenses": total - fixed,
        "category_totals": category_totals,
        "expense_count": len(expenses),
    }


def budget_alerts(db: Session, user_id: int, category: str, when: datetime):
    """Messages for the category/total budgets of `when` that are over their limit."""
    alerts = []
    for key in ledger.keys_for(category, when):
        budget = find_budget(db, user_id, key.category, key.month, key.year)
        if budget and budget.monthly_limit > 0 and budget.current_spent > budget.monthly_limit:
            over = budget.current_spent - budget.monthly_limit
            alerts.append(
                f"Over budget in {budget.category}: {budget.current_spent:.2f}/{budget.monthly_limit:.2f} "
                f"({over:.2f} over)"
            )
    return alerts

# -----------------------------
# Import expenses from CSV file
# -----------------------------
def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "y", "fixed")


def import_csv(db: Session, user_id: int, file_bytes: bytes, alert_callback=None):
    """
    Import expenses from a CSV file with a header row.
    Columns: date, description, amount, category[, is_fixed]
    - Uses dateutil to parse flexible date formats.
    - Skips invalid rows and counts them.
    - Every row goes through create_expense so budgets stay in step.
    """
    text = file_bytes.decode("utf-8", errors="ignore")
    reader = csv.reader(io.StringIO(text))
    next(reader, None)  # skip header

    imported = 0
    skipped = 0

    for row in reader:
        if len(row) < 4:
            skipped += 1
            continue

        date_str, desc, amount_str, category = (c.strip() for c in row[:4])
        is_fixed = _parse_bool(row[4]) if len(row) > 4 else False

        try:
            amount = float(amount_str.replace("$", "").replace(",", ""))
        except ValueError:
            skipped += 1
            continue

        try:
            dt = date_parser.parse(date_str, dayfirst=False)
        except (ValueError, OverflowError):
            skipped += 1
            continue

        try:
            exp = create_expense(db, user_id, amount, category, dt, description=desc or None, is_fixed=is_fixed)
        except ValidationError as exc:
            logger.info("csv row skipped for user %s: %s", user_id, exc.message)
            skipped += 1
            continue
        imported += 1

        if alert_callback:
            for message in budget_alerts(db, user_id, exp.category, exp.expense_date):
                alert_callback(user_id, message)

    logger.info("csv import for user %s: %d imported, %d skipped", user_id, imported, skipped)
    return {
        "message": "CSV imported successfully",
        "imported": imported,
        "skipped": skipped,
    }

# -----------------------------
# Budgets
# -----------------------------
def list_budgets(db: Session, user_id: int, month: int = None, year: int = None):
    query = db.query(models.Budget).filter(models.Budget.user_id == user_id)
    if month and year:
        query = query.filter(models.Budget.month == month, models.Budget.year == year)
    return query.order_by(models.Budget.year.desc(), models.Budget.month.desc(), models.Budget.category).all()

def get_current_budgets(db: Session, user_id: int, today=None) -> dict:
    month, year = _current_period(today)
    budgets = list_budgets(db, user_id, month, year)
    return {
        "total_budget": next((b for b in budgets if b.category == TOTAL_CATEGORY), None),
        "category_budgets": [b for b in budgets if b.category != TOTAL_CATEGORY],
        "month": month,
        "year": year,
    }

def find_budget(db: Session, user_id: int, category: str, month: int, year: int):
    return db.query(models.Budget).filter(
        models.Budget.user_id == user_id,
        models.Budget.category == category,
        models.Budget.month == month,
        models.Budget.year == year,
    ).first()

def get_budget(db: Session, user_id: int, budget_id: int):
    budget = db.query(models.Budget).filter(
        models.Budget.id == budget_id, models.Budget.user_id == user_id
    ).first()
    if not budget:
        raise NotFoundError("Budget not found")
    return budget

def create_budget(db: Session, user_id: int, category: str, monthly_limit: float, month: int, year: int):
    category = category.strip()
    if find_budget(db, user_id, category, month, year):
        raise ConflictError("Budget already exists for this category and period")

    budget = models.Budget(
        user_id=user_id,
        category=category,
        monthly_limit=monthly_limit,
        current_spent=ledger.spent_for(db, user_id, category, month, year),
        month=month,
        year=year,
    )
    db.add(budget)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Budget already exists for this category and period")
    db.refresh(budget)
    return budget

def update_budget(db: Session, user_id: int, budget_id: int, monthly_limit: float = None):
    budget = get_budget(db, user_id, budget_id)
    if monthly_limit is not None:
        budget.monthly_limit = monthly_limit
    _commit_or_rollback(db)
    db.refresh(budget)
    return budget

def delete_budget(db: Session, user_id: int, budget_id: int):
    budget = get_budget(db, user_id, budget_id)
    db.delete(budget)
    _commit_or_rollback(db)

def initialize_budgets(db: Session, user_id: int, today=None):
    month, year = _current_period(today)
    try:
        return ledger.initialize_default_budgets(db, user_id, month, year)
    except IntegrityError:
        db.rollback()
        raise ConflictError(f"Budgets already exist for {month:02d}/{year}")

# -----------------------------
# Loans
# -----------------------------
def _check_amortizes(outstanding: float, emi: float, annual_rate: float):
    interest = outstanding * monthly_rate(annual_rate)
    if emi <= interest:
        raise ValidationError(
            f"EMI {emi:.2f} must exceed the monthly interest {interest:.2f} on the outstanding amount"
        )

def list_loans(db: Session, user_id: int):
    return db.query(models.Loan).filter(models.Loan.user_id == user_id)\
             .order_by(models.Loan.id.desc()).all()

def get_loan(db: Session, user_id: int, loan_id: int):
    loan = db.query(models.Loan).filter(
        models.Loan.id == loan_id, models.Loan.user_id == user_id
    ).first()
    if not loan:
        raise NotFoundError("Loan not found")
    return loan

def create_loan(db: Session, user_id: int, data: dict):
    _check_amortizes(data["outstanding_amount"], data["emi_amount"], data["interest_rate"])
    loan = models.Loan(user_id=user_id, **{**data, "start_date": _naive(data["start_date"])})
    db.add(loan)
    _commit_or_rollback(db)
    db.refresh(loan)
    return loan

def update_loan(db: Session, user_id: int, loan_id: int, changes: dict):
    loan = get_loan(db, user_id, loan_id)
    changes = {k: v for k, v in changes.items() if v is not None}
    if "start_date" in changes:
        changes["start_date"] = _naive(changes["start_date"])
    _check_amortizes(
        changes.get("outstanding_amount", loan.outstanding_amount),
        changes.get("emi_amount", loan.emi_amount),
        changes.get("interest_rate", loan.interest_rate),
    )
    for field, value in changes.items():
        setattr(loan, field, value)
    _commit_or_rollback(db)
    db.refresh(loan)
    return loan

def delete_loan(db: Session, user_id: int, loan_id: int):
    loan = get_loan(db, user_id, loan_id)
    db.delete(loan)
    _commit_or_rollback(db)

def simulate_prepayment(db: Session, user_id: int, loan_id: int, prepayment: float, apply: bool = False) -> dict:
    """
    Prepayment what-if for a stored loan. With apply=True the new outstanding
    amount is written back; a prepayment that clears the balance closes the
    loan and removes its row.
    """
    loan = get_loan(db, user_id, loan_id)
    impact = prepayment_impact(loan.outstanding_amount, loan.emi_amount, loan.interest_rate, prepayment)
    result = impact.to_dict()
    result["applied"] = False
    result["closed"] = False

    if apply:
        if impact.new_outstanding <= 0:
            db.delete(loan)
            result["closed"] = True
        else:
            loan.outstanding_amount = impact.new_outstanding
        _commit_or_rollback(db)
        result["applied"] = True
        logger.info("loan %s prepaid %.2f, outstanding now %.2f", loan_id, prepayment, impact.new_outstanding)
    return result

# -----------------------------
# SIP investments
# -----------------------------
def list_sips(db: Session, user_id: int):
    return db.query(models.SipInvestment).filter(models.SipInvestment.user_id == user_id)\
             .order_by(models.SipInvestment.id.desc()).all()

def list_active_sips(db: Session, user_id: int):
    return db.query(models.SipInvestment).filter(
        models.SipInvestment.user_id == user_id,
        models.SipInvestment.is_active.is_(True),
    ).all()

def get_sip(db: Session, user_id: int, sip_id: int):
    sip = db.query(models.SipInvestment).filter(
        models.SipInvestment.id == sip_id, models.SipInvestment.user_id == user_id
    ).first()
    if not sip:
        raise NotFoundError("SIP investment not found")
    return sip

def create_sip(db: Session, user_id: int, data: dict):
    sip = models.SipInvestment(user_id=user_id, **{**data, "start_date": _naive(data["start_date"])})
    db.add(sip)
    _commit_or_rollback(db)
    db.refresh(sip)
    return sip

def update_sip(db: Session, user_id: int, sip_id: int, changes: dict):
    sip = get_sip(db, user_id, sip_id)
    for field, value in changes.items():
        if value is None:
            continue
        setattr(sip, field, _naive(value) if field == "start_date" else value)
    _commit_or_rollback(db)
    db.refresh(sip)
    return sip

def delete_sip(db: Session, user_id: int, sip_id: int):
    sip = get_sip(db, user_id, sip_id)
    db.delete(sip)
    _commit_or_rollback(db)

def add_monthly_investment(db: Session, user_id: int, sip_id: int, amount: float, investment_date: datetime):
    get_sip(db, user_id, sip_id)
    if amount <= 0:
        raise ValidationError(f"Invalid amount: {amount}")
    entry = models.MonthlyInvestment(
        user_id=user_id, sip_id=sip_id, amount=amount, investment_date=_naive(investment_date)
    )
    db.add(entry)
    _commit_or_rollback(db)
    db.refresh(entry)
    return entry

def list_sip_contributions(db: Session, user_id: int, sip_id: int):
    return db.query(models.MonthlyInvestment).filter(
        models.MonthlyInvestment.user_id == user_id,
        models.MonthlyInvestment.sip_id == sip_id,
    ).order_by(models.MonthlyInvestment.investment_date.desc()).all()

def list_monthly_investments(db: Session, user_id: int, start: datetime, end: datetime):
    return db.query(models.MonthlyInvestment).filter(
        models.MonthlyInvestment.user_id == user_id,
        models.MonthlyInvestment.investment_date >= start,
        models.MonthlyInvestment.investment_date < end,
    ).all()

def portfolio_projection(db: Session, user_id: int, years: int = DEFAULT_PROJECTION_YEARS) -> dict:
    return project_portfolio(list_active_sips(db, user_id), years).to_dict()

# -----------------------------
# Financial summaries
# -----------------------------
SUMMARY_FIELDS = (
    "total_income", "fixed_expenses", "variable_expenses",
    "total_investments", "emergency_fund", "insurance",
)

def upsert_summary(db: Session, user_id: int, month: int, year: int, fields: dict):
    """Compute rates and health score from `fields` and write the one row for the period."""
    values = {name: float(fields.get(name) or 0.0) for name in SUMMARY_FIELDS}
    income = values["total_income"]
    values["savings_rate"] = health.savings_rate(income, values["fixed_expenses"], values["variable_expenses"])
    values["investment_rate"] = health.investment_rate(income, values["total_investments"])
    values["health_score"] = health.calculate_health_score(
        values["savings_rate"],
        values["investment_rate"],
        health.emergency_fund_months(values["emergency_fund"], income),
    )

    for attempt in range(2):
        summary = get_summary_or_none(db, user_id, month, year)
        if summary is None:
            summary = models.FinancialSummary(user_id=user_id, month=month, year=year)
            db.add(summary)
        for name, value in values.items():
            setattr(summary, name, value)
        try:
            db.commit()
            break
        except IntegrityError:
            # another request inserted the same period first; update theirs
            db.rollback()
            if attempt:
                raise ConflictError(f"Could not save summary for {month:02d}/{year}")
    db.refresh(summary)
    return summary

def save_summary(db: Session, user_id: int, data: dict):
    get_user(db, user_id)
    if data.get("total_income", 0) <= 0:
        raise ValidationError("Total income must be positive")
    return upsert_summary(db, user_id, data["month"], data["year"], data)

def generate_monthly_summary(db: Session, user_id: int, month: int, year: int):
    profile = get_user_profile(db, user_id)
    start, end = ledger.month_bounds(month, year)

    expenses = list_expenses(db, user_id, month=month, year=year)
    fixed = sum(e.amount for e in expenses if e.is_fixed)
    variable = sum(e.amount for e in expenses if not e.is_fixed)

    # every loan contributes its full EMI to every month
    loan_emis = sum(loan.emi_amount for loan in list_loans(db, user_id))
    investments = sum(inv.amount for inv in list_monthly_investments(db, user_id, start, end))

    logger.debug("generating summary for user %s %02d/%d", user_id, month, year)
    return upsert_summary(db, user_id, month, year, {
        "total_income": profile["monthly_income"],
        "fixed_expenses": fixed + loan_emis,
        "variable_expenses": variable,
        "total_investments": investments,
        "emergency_fund": profile["emergency_fund"],
        "insurance": DEFAULT_INSURANCE,
    })

def get_summary_or_none(db: Session, user_id: int, month: int, year: int):
    return db.query(models.FinancialSummary).filter(
        models.FinancialSummary.user_id == user_id,
        models.FinancialSummary.month == month,
        models.FinancialSummary.year == year,
    ).first()

def get_summary(db: Session, user_id: int, month: int, year: int):
    summary = get_summary_or_none(db, user_id, month, year)
    if not summary:
        raise NotFoundError("Financial summary not found")
    return summary

def get_current_summary(db: Session, user_id: int, today=None):
    month, year = _current_period(today)
    summary = get_summary_or_none(db, user_id, month, year)
    if summary is None:
        summary = generate_monthly_summary(db, user_id, month, year)
    return summary

def list_summaries(db: Session, user_id: int):
    return db.query(models.FinancialSummary).filter(models.FinancialSummary.user_id == user_id)\
             .order_by(models.FinancialSummary.year.desc(), models.FinancialSummary.month.desc()).all()

# -----------------------------
# Dashboard overview
# -----------------------------
def get_overview(db: Session, user_id: int, today=None) -> dict:
    month, year = _current_period(today)
    loans = list_loans(db, user_id)
    total_loans = sum(l.outstanding_amount for l in loans)
    total_emi = sum(l.emi_amount for l in loans)
    total_investments = db.query(func.sum(models.SipInvestment.current_value))\
                          .filter(models.SipInvestment.user_id == user_id).scalar() or 0.0
    account_balance = db.query(func.sum(models.Account.balance))\
                        .filter(models.Account.user_id == user_id).scalar() or 0.0
    total_budget = find_budget(db, user_id, TOTAL_CATEGORY, month, year)

    return {
        "net_worth": total_investments - total_loans,
        "total_investments": total_investments,
        "total_loans": total_loans,
        "total_emi": total_emi,
        "account_balance": account_balance,
        "monthly_budget": total_budget.monthly_limit if total_budget else 0.0,
        "spent_amount": total_budget.current_spent if total_budget else 0.0,
        "month": month,
        "year": year,
    }
