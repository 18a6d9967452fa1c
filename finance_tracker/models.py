# finance_tracker/models.py
import enum

from sqlalchemy import (
    Boolean, Column, DateTime, Enum, Float, ForeignKey, Integer, String,
    UniqueConstraint, func,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class AccountType(str, enum.Enum):
    SAVINGS = "SAVINGS"
    CHECKING = "CHECKING"
    INVESTMENT = "INVESTMENT"
    LOAN = "LOAN"


class SipCategory(str, enum.Enum):
    LARGE_CAP = "LARGE_CAP"
    MID_CAP = "MID_CAP"
    SMALL_CAP = "SMALL_CAP"
    DEBT = "DEBT"
    HYBRID = "HYBRID"


class HealthScore(str, enum.Enum):
    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    password = Column(String, nullable=False)
    monthly_income = Column(Float, nullable=False, default=0.0)
    emergency_fund = Column(Float, nullable=False, default=0.0)
    risk_tolerance = Column(String)  # low / medium / high
    financial_goals = Column(String)  # comma-separated
    is_onboarding_complete = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, server_default=func.now())

    accounts = relationship("Account", back_populates="user", cascade="all, delete-orphan")
    expenses = relationship("Expense", back_populates="user", cascade="all, delete-orphan")
    budgets = relationship("Budget", back_populates="user", cascade="all, delete-orphan")
    loans = relationship("Loan", back_populates="user", cascade="all, delete-orphan")
    sips = relationship("SipInvestment", back_populates="user", cascade="all, delete-orphan")
    summaries = relationship("FinancialSummary", back_populates="user", cascade="all, delete-orphan")


class Account(Base):
    __tablename__ = "accounts"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    type = Column(Enum(AccountType), nullable=False)
    balance = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime, server_default=func.now())

    user = relationship("User", back_populates="accounts")


class Expense(Base):
    __tablename__ = "expenses"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    category = Column(String, nullable=False)
    description = Column(String)
    expense_date = Column(DateTime, nullable=False, index=True)
    is_fixed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, server_default=func.now())

    user = relationship("User", back_populates="expenses")


class Budget(Base):
    __tablename__ = "budgets"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    category = Column(String, nullable=False)
    monthly_limit = Column(Float, nullable=False, default=0.0)
    current_spent = Column(Float, nullable=False, default=0.0)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)

    user = relationship("User", back_populates="budgets")

    # one row per user per category per period
    __table_args__ = (
        UniqueConstraint("user_id", "category", "month", "year", name="uq_budget_period"),
    )


class Loan(Base):
    __tablename__ = "loans"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    loan_name = Column(String, nullable=False)
    principal_amount = Column(Float, nullable=False)
    outstanding_amount = Column(Float, nullable=False)
    interest_rate = Column(Float, nullable=False)  # annual %
    emi_amount = Column(Float, nullable=False)
    tenure_months = Column(Integer, nullable=False)
    start_date = Column(DateTime, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    user = relationship("User", back_populates="loans")


class SipInvestment(Base):
    __tablename__ = "sip_investments"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    sip_name = Column(String, nullable=False)
    category = Column(Enum(SipCategory), nullable=False)
    monthly_amount = Column(Float, nullable=False)
    current_value = Column(Float, nullable=False, default=0.0)
    allocation_percentage = Column(Float, nullable=False, default=0.0)
    expected_return_rate = Column(Float, nullable=False)  # annual %
    start_date = Column(DateTime, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, server_default=func.now())

    user = relationship("User", back_populates="sips")
    monthly_investments = relationship(
        "MonthlyInvestment", back_populates="sip", cascade="all, delete-orphan"
    )


class MonthlyInvestment(Base):
    __tablename__ = "monthly_investments"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    sip_id = Column(Integer, ForeignKey("sip_investments.id"), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    investment_date = Column(DateTime, nullable=False, index=True)

    sip = relationship("SipInvestment", back_populates="monthly_investments")


class FinancialSummary(Base):
    __tablename__ = "financial_summaries"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    total_income = Column(Float, nullable=False, default=0.0)
    fixed_expenses = Column(Float, nullable=False, default=0.0)
    variable_expenses = Column(Float, nullable=False, default=0.0)
    total_investments = Column(Float, nullable=False, default=0.0)
    emergency_fund = Column(Float, nullable=False, default=0.0)
    insurance = Column(Float, nullable=False, default=0.0)
    savings_rate = Column(Float, nullable=False, default=0.0)
    investment_rate = Column(Float, nullable=False, default=0.0)
    health_score = Column(Enum(HealthScore), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="summaries")

    __table_args__ = (
        UniqueConstraint("user_id", "month", "year", name="uq_summary_period"),
    )
