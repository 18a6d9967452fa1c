# finance_tracker/main.py
import logging
from typing import List, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, File, HTTPException, Query, UploadFile, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import crud, ledger, schemas
from .config import CORS_ORIGINS, DEFAULT_PROJECTION_YEARS, configure_logging
from .database import get_db, init_db
from .errors import FinanceError
from .websocket_manager import manager

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Personal Finance Tracker API")

# -----------------------------
# CORS
# -----------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def create_tables():
    init_db()


# -----------------------------
# Alert helper
# -----------------------------
async def send_budget_alert(user_id: int, message: str):
    """Push an over-budget alert to the user's socket, if one is open."""
    delivered = await manager.send_alert(user_id, message)
    if not delivered:
        logger.debug("alert for user %s not delivered: %s", user_id, message)


def schedule_budget_alerts(background_tasks: BackgroundTasks, db: Session, user_id: int, expense):
    for message in crud.budget_alerts(db, user_id, expense.category, expense.expense_date):
        background_tasks.add_task(send_budget_alert, user_id, message)
    return expense

# -----------------------------
# Root endpoint
# -----------------------------
@app.get("/")
def root():
    return {"message": "Personal Finance Tracker API is running"}

# -----------------------------
# User registration & login
# -----------------------------
@app.post("/register", status_code=201)
def register(user: schemas.UserCreate, db: Session = Depends(get_db)):
    u = crud.create_user(db, user.name, user.email, user.password, user.monthly_income, user.emergency_fund)
    return {"user_id": u.id, "email": u.email}

@app.post("/login")
def login(user: schemas.UserLogin, db: Session = Depends(get_db)):
    db_user = crud.authenticate_user(db, user.email, user.password)
    if not db_user:
        raise HTTPException(status_code=401, detail="Invalid credentials")

    return {
        "user_id": db_user.id,
        "email": db_user.email,
        "is_onboarding_complete": db_user.is_onboarding_complete,
    }

# -----------------------------
# Profile
# -----------------------------
@app.get("/users/{user_id}/profile", response_model=schemas.UserOut)
def get_profile(user_id: int, db: Session = Depends(get_db)):
    return crud.get_user(db, user_id)

@app.put("/users/{user_id}/profile", response_model=schemas.UserOut)
def update_profile(user_id: int, payload: schemas.ProfileUpdate, db: Session = Depends(get_db)):
    return crud.update_profile(db, user_id, payload.model_dump(exclude_unset=True))

@app.post("/users/{user_id}/onboarding", response_model=schemas.UserOut)
def onboarding(user_id: int, payload: schemas.Onboarding, db: Session = Depends(get_db)):
    return crud.update_profile(db, user_id, payload.model_dump(), complete_onboarding=True)

# -----------------------------
# Accounts
# -----------------------------
@app.get("/accounts/{user_id}", response_model=List[schemas.AccountOut])
def list_accounts(user_id: int, db: Session = Depends(get_db)):
    return crud.list_accounts(db, user_id)

@app.post("/accounts/{user_id}", response_model=schemas.AccountOut, status_code=201)
def create_account(user_id: int, payload: schemas.AccountCreate, db: Session = Depends(get_db)):
    return crud.create_account(db, user_id, payload.name, payload.type, payload.balance)

@app.get("/accounts/{user_id}/{account_id}", response_model=schemas.AccountOut)
def get_account(user_id: int, account_id: int, db: Session = Depends(get_db)):
    return crud.get_account(db, user_id, account_id)

@app.put("/accounts/{user_id}/{account_id}", response_model=schemas.AccountOut)
def update_account(user_id: int, account_id: int, payload: schemas.AccountUpdate, db: Session = Depends(get_db)):
    return crud.update_account(db, user_id, account_id, payload.model_dump(exclude_unset=True))

@app.delete("/accounts/{user_id}/{account_id}")
def delete_account(user_id: int, account_id: int, db: Session = Depends(get_db)):
    crud.delete_account(db, user_id, account_id)
    return {"message": "Account deleted successfully"}

# -----------------------------
# Expenses
# -----------------------------
@app.get("/expenses/{user_id}", response_model=List[schemas.ExpenseOut])
def get_expenses(
    user_id: int,
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2000),
    category: Optional[str] = None,
    db: Session = Depends(get_db),
):
    return crud.list_expenses(db, user_id, month=month, year=year, category=category)

@app.get("/expenses/{user_id}/categories", response_model=List[str])
def expense_categories(user_id: int, db: Session = Depends(get_db)):
    return crud.list_expense_categories(db, user_id)

@app.get("/expenses/{user_id}/summary/{year}/{month}", response_model=schemas.ExpenseBreakdown)
def expense_breakdown(user_id: int, year: int, month: int, db: Session = Depends(get_db)):
    if not 1 <= month <= 12:
        raise HTTPException(status_code=400, detail="Month must be between 1 and 12")
    return crud.expense_breakdown(db, user_id, month, year)

@app.post("/expenses/{user_id}/import")
async def import_expenses(
    user_id: int,
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
):
    contents = await file.read()

    def schedule_alert(uid, msg):
        background_tasks.add_task(send_budget_alert, uid, msg)

    return crud.import_csv(db, user_id, contents, alert_callback=schedule_alert)

@app.post("/expenses/{user_id}", response_model=schemas.ExpenseOut, status_code=201)
def create_expense(user_id: int, payload: schemas.ExpenseCreate, background_tasks: BackgroundTasks, db: Session = Depends(get_db)):
    exp = crud.create_expense(
        db, user_id, payload.amount, payload.category, payload.expense_date,
        description=payload.description, is_fixed=payload.is_fixed,
    )
    return schedule_budget_alerts(background_tasks, db, user_id, exp)

@app.get("/expenses/{user_id}/{expense_id}", response_model=schemas.ExpenseOut)
def get_expense(user_id: int, expense_id: int, db: Session = Depends(get_db)):
    return crud.get_expense(db, user_id, expense_id)

@app.put("/expenses/{user_id}/{expense_id}", response_model=schemas.ExpenseOut)
def update_expense(user_id: int, expense_id: int, payload: schemas.ExpenseUpdate, background_tasks: BackgroundTasks, db: Session = Depends(get_db)):
    exp = crud.update_expense(db, user_id, expense_id, payload.model_dump(exclude_unset=True))
    return schedule_budget_alerts(background_tasks, db, user_id, exp)

@app.delete("/expenses/{user_id}/{expense_id}")
def delete_expense(user_id: int, expense_id: int, db: Session = Depends(get_db)):
    crud.delete_expense(db, user_id, expense_id)
    return {"message": "Expense deleted successfully"}

# -----------------------------
# Budgets
# -----------------------------
@app.get("/budgets/{user_id}", response_model=List[schemas.BudgetOut])
def list_budgets(
    user_id: int,
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2020),
    db: Session = Depends(get_db),
):
    return crud.list_budgets(db, user_id, month, year)

@app.get("/budgets/{user_id}/current", response_model=schemas.CurrentBudgets)
def current_budgets(user_id: int, db: Session = Depends(get_db)):
    return crud.get_current_budgets(db, user_id)

@app.post("/budgets/{user_id}/initialize", response_model=List[schemas.BudgetOut], status_code=201)
def initialize_budgets(user_id: int, db: Session = Depends(get_db)):
    return crud.initialize_budgets(db, user_id)

@app.post("/budgets/{user_id}/recalculate/{year}/{month}", response_model=List[schemas.BudgetOut])
def recalculate_budgets(user_id: int, year: int, month: int, db: Session = Depends(get_db)):
    if not 1 <= month <= 12 or year < 2020:
        raise HTTPException(status_code=400, detail="Invalid period")
    return ledger.recalculate_budgets(db, user_id, month, year)

@app.post("/budgets/{user_id}", response_model=schemas.BudgetOut, status_code=201)
def create_budget(user_id: int, payload: schemas.BudgetCreate, db: Session = Depends(get_db)):
    return crud.create_budget(db, user_id, payload.category, payload.monthly_limit, payload.month, payload.year)

@app.get("/budgets/{user_id}/{budget_id}", response_model=schemas.BudgetOut)
def get_budget(user_id: int, budget_id: int, db: Session = Depends(get_db)):
    return crud.get_budget(db, user_id, budget_id)

@app.put("/budgets/{user_id}/{budget_id}", response_model=schemas.BudgetOut)
def update_budget(user_id: int, budget_id: int, payload: schemas.BudgetUpdate, db: Session = Depends(get_db)):
    return crud.update_budget(db, user_id, budget_id, payload.monthly_limit)

@app.delete("/budgets/{user_id}/{budget_id}")
def delete_budget(user_id: int, budget_id: int, db: Session = Depends(get_db)):
    crud.delete_budget(db, user_id, budget_id)
    return {"message": "Budget deleted successfully"}

# -----------------------------
# Loans
# -----------------------------
@app.get("/loans/{user_id}", response_model=List[schemas.LoanOut])
def list_loans(user_id: int, db: Session = Depends(get_db)):
    return crud.list_loans(db, user_id)

@app.post("/loans/{user_id}", response_model=schemas.LoanOut, status_code=201)
def create_loan(user_id: int, payload: schemas.LoanCreate, db: Session = Depends(get_db)):
    return crud.create_loan(db, user_id, payload.model_dump())

@app.get("/loans/{user_id}/{loan_id}", response_model=schemas.LoanOut)
def get_loan(user_id: int, loan_id: int, db: Session = Depends(get_db)):
    return crud.get_loan(db, user_id, loan_id)

@app.put("/loans/{user_id}/{loan_id}", response_model=schemas.LoanOut)
def update_loan(user_id: int, loan_id: int, payload: schemas.LoanUpdate, db: Session = Depends(get_db)):
    return crud.update_loan(db, user_id, loan_id, payload.model_dump(exclude_unset=True))

@app.delete("/loans/{user_id}/{loan_id}")
def delete_loan(user_id: int, loan_id: int, db: Session = Depends(get_db)):
    crud.delete_loan(db, user_id, loan_id)
    return {"message": "Loan deleted successfully"}

@app.post("/loans/{user_id}/{loan_id}/prepayment", response_model=schemas.PrepaymentOut)
def loan_prepayment(user_id: int, loan_id: int, payload: schemas.PrepaymentIn, db: Session = Depends(get_db)):
    return crud.simulate_prepayment(db, user_id, loan_id, payload.prepayment_amount, apply=payload.apply)

# -----------------------------
# SIP investments
# -----------------------------
@app.get("/investments/{user_id}", response_model=List[schemas.SipOut])
def list_sips(user_id: int, db: Session = Depends(get_db)):
    return crud.list_sips(db, user_id)

@app.post("/investments/{user_id}", response_model=schemas.SipOut, status_code=201)
def create_sip(user_id: int, payload: schemas.SipCreate, db: Session = Depends(get_db)):
    return crud.create_sip(db, user_id, payload.model_dump())

@app.get("/investments/{user_id}/projection", response_model=schemas.ProjectionOut)
def portfolio_projection(user_id: int, years: int = Query(DEFAULT_PROJECTION_YEARS, ge=1, le=50), db: Session = Depends(get_db)):
    return crud.portfolio_projection(db, user_id, years)

@app.post("/investments/{user_id}/monthly", response_model=schemas.MonthlyInvestmentOut, status_code=201)
def add_monthly_investment(user_id: int, payload: schemas.MonthlyInvestmentCreate, db: Session = Depends(get_db)):
    return crud.add_monthly_investment(db, user_id, payload.sip_id, payload.amount, payload.investment_date)

@app.get("/investments/{user_id}/monthly/{sip_id}", response_model=List[schemas.MonthlyInvestmentOut])
def list_monthly_investments(user_id: int, sip_id: int, db: Session = Depends(get_db)):
    return crud.list_sip_contributions(db, user_id, sip_id)

@app.get("/investments/{user_id}/{sip_id}", response_model=schemas.SipOut)
def get_sip(user_id: int, sip_id: int, db: Session = Depends(get_db)):
    return crud.get_sip(db, user_id, sip_id)

@app.put("/investments/{user_id}/{sip_id}", response_model=schemas.SipOut)
def update_sip(user_id: int, sip_id: int, payload: schemas.SipUpdate, db: Session = Depends(get_db)):
    return crud.update_sip(db, user_id, sip_id, payload.model_dump(exclude_unset=True))

@app.delete("/investments/{user_id}/{sip_id}")
def delete_sip(user_id: int, sip_id: int, db: Session = Depends(get_db)):
    crud.delete_sip(db, user_id, sip_id)
    return {"message": "Investment deleted successfully"}

# -----------------------------
# Financial summaries
# -----------------------------
@app.get("/summary/{user_id}", response_model=List[schemas.SummaryOut])
def list_summaries(user_id: int, db: Session = Depends(get_db)):
    return crud.list_summaries(db, user_id)

@app.get("/summary/{user_id}/current", response_model=schemas.SummaryOut)
def current_summary(user_id: int, db: Session = Depends(get_db)):
    return crud.get_current_summary(db, user_id)

@app.get("/summary/{user_id}/{year}/{month}", response_model=schemas.SummaryOut)
def get_summary(user_id: int, year: int, month: int, db: Session = Depends(get_db)):
    return crud.get_summary(db, user_id, month, year)

@app.post("/summary/{user_id}", response_model=schemas.SummaryOut)
def save_summary(user_id: int, payload: schemas.SummaryCreate, db: Session = Depends(get_db)):
    return crud.save_summary(db, user_id, payload.model_dump())

@app.post("/summary/{user_id}/generate/{year}/{month}", response_model=schemas.SummaryOut)
def generate_summary(user_id: int, year: int, month: int, db: Session = Depends(get_db)):
    if not 1 <= month <= 12 or year < 2020:
        raise HTTPException(status_code=400, detail="Invalid period")
    return crud.generate_monthly_summary(db, user_id, month, year)

# -----------------------------
# Dashboard overview
# -----------------------------
@app.get("/overview/{user_id}", response_model=schemas.Overview)
def overview(user_id: int, db: Session = Depends(get_db)):
    return crud.get_overview(db, user_id)

# -----------------------------
# WebSocket for budget alerts
# -----------------------------
@app.websocket("/ws/alerts/{user_id}")
async def alerts_socket(ws: WebSocket, user_id: int):
    await ws.accept()
    await manager.connect(user_id, ws)
    try:
        while True:
            # clients only listen; anything they send is ignored
            await ws.receive_text()
    except WebSocketDisconnect:
        await manager.disconnect(user_id, ws)
        logger.info("alert socket for user %s closed", user_id)

# -----------------------------
# Global Error Handlers
# -----------------------------
@app.exception_handler(FinanceError)
async def finance_exception_handler(request: Request, exc: FinanceError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

@app.exception_handler(IntegrityError)
async def integrity_exception_handler(request: Request, exc: IntegrityError):
    logger.warning("integrity error on %s: %s", request.url.path, exc.orig)
    return JSONResponse(
        status_code=409,
        content={"error": "conflict", "message": "A record with this data already exists"}
    )

@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.error("database error on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"error": "storage_unavailable", "message": "Storage is temporarily unavailable"}
    )

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled error on %s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal Server Error", "message": str(exc)}
    )

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"error": "Validation Error", "details": jsonable_encoder(exc.errors())}
    )

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail}
    )
