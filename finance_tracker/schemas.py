# finance_tracker/schemas.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, constr

from .models import AccountType, HealthScore, SipCategory


# -----------------------------
# User Schemas
# -----------------------------
class UserCreate(BaseModel):
    name: constr(strip_whitespace=True, min_length=1, max_length=50)
    email: EmailStr
    password: constr(min_length=6)
    monthly_income: float = Field(0.0, ge=0)
    emergency_fund: float = Field(0.0, ge=0)


class UserLogin(BaseModel):
    email: EmailStr
    password: constr(min_length=6)


class Onboarding(BaseModel):
    monthly_income: float = Field(..., gt=0)
    emergency_fund: float = Field(..., ge=0)
    risk_tolerance: constr(pattern="^(low|medium|high)$")
    financial_goals: List[str] = []


class ProfileUpdate(BaseModel):
    name: Optional[constr(strip_whitespace=True, min_length=1, max_length=50)] = None
    monthly_income: Optional[float] = Field(None, gt=0)
    emergency_fund: Optional[float] = Field(None, ge=0)
    risk_tolerance: Optional[constr(pattern="^(low|medium|high)$")] = None
    financial_goals: Optional[List[str]] = None


class UserOut(BaseModel):
    id: int
    name: str
    email: str
    monthly_income: float
    emergency_fund: float
    risk_tolerance: Optional[str] = None
    financial_goals: Optional[str] = None
    is_onboarding_complete: bool

    class Config:
        from_attributes = True


# -----------------------------
# Account Schemas
# -----------------------------
class AccountCreate(BaseModel):
    name: constr(strip_whitespace=True, min_length=1)
    type: AccountType
    balance: float


class AccountUpdate(BaseModel):
    name: Optional[constr(strip_whitespace=True, min_length=1)] = None
    type: Optional[AccountType] = None
    balance: Optional[float] = None


class AccountOut(AccountCreate):
    id: int
    user_id: int

    class Config:
        from_attributes = True


# -----------------------------
# Expense Schemas
# -----------------------------
class ExpenseCreate(BaseModel):
    amount: float = Field(..., gt=0)
    category: constr(strip_whitespace=True, min_length=1)
    description: Optional[str] = None
    expense_date: datetime
    is_fixed: bool = False


class ExpenseUpdate(BaseModel):
    amount: Optional[float] = Field(None, gt=0)
    category: Optional[constr(strip_whitespace=True, min_length=1)] = None
    description: Optional[str] = None
    expense_date: Optional[datetime] = None
    is_fixed: Optional[bool] = None


class ExpenseOut(BaseModel):
    id: int
    user_id: int
    amount: float
    category: str
    description: Optional[str] = None
    expense_date: datetime
    is_fixed: bool

    class Config:
        from_attributes = True


class ExpenseBreakdown(BaseModel):
    total_expenses: float
    fixed_expenses: float
    variable_expenses: float
    category_totals: dict
    expense_count: int


# -----------------------------
# Budget Schemas
# -----------------------------
class BudgetCreate(BaseModel):
    category: constr(strip_whitespace=True, min_length=1)
    monthly_limit: float = Field(..., ge=0)
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2020)


class BudgetUpdate(BaseModel):
    monthly_limit: Optional[float] = Field(None, ge=0)


class BudgetOut(BudgetCreate):
    id: int
    user_id: int
    current_spent: float

    class Config:
        from_attributes = True


class CurrentBudgets(BaseModel):
    total_budget: Optional[BudgetOut] = None
    category_budgets: List[BudgetOut]
    month: int
    year: int


# -----------------------------
# Loan Schemas
# -----------------------------
class LoanCreate(BaseModel):
    loan_name: constr(strip_whitespace=True, min_length=1)
    principal_amount: float = Field(..., gt=0)
    outstanding_amount: float = Field(..., gt=0)
    interest_rate: float = Field(..., gt=0)
    emi_amount: float = Field(..., gt=0)
    tenure_months: int = Field(..., gt=0)
    start_date: datetime


class LoanUpdate(BaseModel):
    loan_name: Optional[constr(strip_whitespace=True, min_length=1)] = None
    principal_amount: Optional[float] = Field(None, gt=0)
    outstanding_amount: Optional[float] = Field(None, gt=0)
    interest_rate: Optional[float] = Field(None, gt=0)
    emi_amount: Optional[float] = Field(None, gt=0)
    tenure_months: Optional[int] = Field(None, gt=0)
    start_date: Optional[datetime] = None


class LoanOut(LoanCreate):
    id: int
    user_id: int

    class Config:
        from_attributes = True


class PrepaymentIn(BaseModel):
    prepayment_amount: float = Field(..., gt=0)
    apply: bool = False


class PrepaymentOut(BaseModel):
    current_outstanding: float
    new_outstanding: float
    prepayment_amount: float
    tenure_reduction: int
    interest_saved: float
    new_tenure_months: int
    applied: bool = False
    closed: bool = False


# -----------------------------
# SIP Schemas
# -----------------------------
class SipCreate(BaseModel):
    sip_name: constr(strip_whitespace=True, min_length=1)
    category: SipCategory
    monthly_amount: float = Field(..., gt=0)
    current_value: float = Field(..., ge=0)
    allocation_percentage: float = Field(..., ge=0, le=100)
    expected_return_rate: float = Field(..., gt=0)
    start_date: datetime
    is_active: bool = True


class SipUpdate(BaseModel):
    sip_name: Optional[constr(strip_whitespace=True, min_length=1)] = None
    category: Optional[SipCategory] = None
    monthly_amount: Optional[float] = Field(None, gt=0)
    current_value: Optional[float] = Field(None, ge=0)
    allocation_percentage: Optional[float] = Field(None, ge=0, le=100)
    expected_return_rate: Optional[float] = Field(None, gt=0)
    start_date: Optional[datetime] = None
    is_active: Optional[bool] = None


class SipOut(SipCreate):
    id: int
    user_id: int

    class Config:
        from_attributes = True


class MonthlyInvestmentCreate(BaseModel):
    sip_id: int
    amount: float = Field(..., gt=0)
    investment_date: datetime


class MonthlyInvestmentOut(MonthlyInvestmentCreate):
    id: int
    user_id: int

    class Config:
        from_attributes = True


class ProjectionOut(BaseModel):
    current_portfolio_value: float
    monthly_investment: float
    projected_value: int
    total_contribution: float
    expected_gains: int
    projection_years: int


# -----------------------------
# Summary Schemas
# -----------------------------
class SummaryCreate(BaseModel):
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2020)
    total_income: float = Field(..., gt=0)
    fixed_expenses: float = Field(..., ge=0)
    variable_expenses: float = Field(..., ge=0)
    total_investments: float = Field(..., ge=0)
    emergency_fund: float = Field(..., ge=0)
    insurance: float = Field(..., ge=0)


class SummaryOut(BaseModel):
    id: int
    user_id: int
    month: int
    year: int
    total_income: float
    fixed_expenses: float
    variable_expenses: float
    total_investments: float
    emergency_fund: float
    insurance: float
    savings_rate: float
    investment_rate: float
    health_score: HealthScore

    class Config:
        from_attributes = True


class Overview(BaseModel):
    net_worth: float
    total_investments: float
    total_loans: float
    total_emi: float
    account_balance: float
    monthly_budget: float
    spent_amount: float
    month: int
    year: int
