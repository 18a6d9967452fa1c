import random
import threading

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from conftest import add_budget, at, spent
from finance_tracker import crud, ledger, models
from finance_tracker.database import init_db
from finance_tracker.errors import ConflictError
from finance_tracker.ledger import BudgetKey, ExpenseState


def test_create_hits_category_and_total():
    deltas = ledger.deltas_for_create(ExpenseState(1500, "food", at(2024, 3)))
    assert deltas == [(BudgetKey("food", 3, 2024), 1500), (BudgetKey("total", 3, 2024), 1500)]


def test_amount_change_applies_signed_difference():
    old = ExpenseState(1500, "food", at(2024, 3))
    new = ExpenseState(1200, "food", at(2024, 3, 20))
    assert ledger.deltas_for_update(old, new) == [
        (BudgetKey("food", 3, 2024), -300), (BudgetKey("total", 3, 2024), -300),
    ]


def test_category_change_leaves_total_untouched():
    old = ExpenseState(900, "food", at(2024, 3))
    new = ExpenseState(900, "shopping", at(2024, 3))
    assert ledger.deltas_for_update(old, new) == [
        (BudgetKey("food", 3, 2024), -900), (BudgetKey("shopping", 3, 2024), 900),
    ]


def test_date_change_moves_between_months():
    old = ExpenseState(400, "food", at(2024, 3))
    new = ExpenseState(650, "food", at(2024, 4))
    assert sorted(ledger.deltas_for_update(old, new)) == sorted([
        (BudgetKey("food", 3, 2024), -400), (BudgetKey("total", 3, 2024), -400),
        (BudgetKey("food", 4, 2024), 650), (BudgetKey("total", 4, 2024), 650),
    ])


def test_no_change_no_deltas():
    state = ExpenseState(400, "food", at(2024, 3))
    assert ledger.deltas_for_update(state, state) == []


def test_delete_reverses_create():
    state = ExpenseState(75, "utilities", at(2025, 1))
    create = dict(ledger.deltas_for_create(state))
    delete = dict(ledger.deltas_for_delete(state))
    assert create.keys() == delete.keys()
    assert all(create[k] == -delete[k] for k in create)


def test_missing_budget_is_a_noop(db, user):
    assert ledger.apply_budget_delta(db, user.id, BudgetKey("food", 3, 2024), 100) is False


def test_create_expense_updates_both_rows(db, user):
    add_budget(db, user.id, "food", 3, 2024, 8000)
    add_budget(db, user.id, "total", 3, 2024, 30000, spent=2000)

    crud.create_expense(db, user.id, 1500, "food", at(2024, 3), is_fixed=False)

    assert spent(db, user.id, "food", 3, 2024) == 1500
    assert spent(db, user.id, "total", 3, 2024) == 3500


def test_expense_without_budget_still_saved(db, user):
    exp = crud.create_expense(db, user.id, 250, "travel", at(2024, 3))
    assert exp.id is not None
    assert db.query(models.Budget).count() == 0


def test_large_expense_reaches_the_ledger(db, user):
    add_budget(db, user.id, "property", 3, 2024, 20_000_000)
    add_budget(db, user.id, "total", 3, 2024, 20_000_000)

    crud.create_expense(db, user.id, 12_000_000, "property", at(2024, 3))

    assert spent(db, user.id, "property", 3, 2024) == 12_000_000
    assert spent(db, user.id, "total", 3, 2024) == 12_000_000


def test_update_and_delete_use_stored_values(db, user):
    for month in (3, 4):
        add_budget(db, user.id, "food", month, 2024, 8000)
        add_budget(db, user.id, "shopping", month, 2024, 5000)
        add_budget(db, user.id, "total", month, 2024, 30000)

    exp = crud.create_expense(db, user.id, 1000, "food", at(2024, 3))
    crud.update_expense(db, user.id, exp.id, {"category": "shopping", "expense_date": at(2024, 4), "amount": 700})

    assert spent(db, user.id, "food", 3, 2024) == 0
    assert spent(db, user.id, "total", 3, 2024) == 0
    assert spent(db, user.id, "shopping", 4, 2024) == 700
    assert spent(db, user.id, "total", 4, 2024) == 700

    crud.delete_expense(db, user.id, exp.id)
    assert spent(db, user.id, "shopping", 4, 2024) == 0
    assert spent(db, user.id, "total", 4, 2024) == 0


def test_random_mutations_keep_budgets_exact(db, user):
    rng = random.Random(7)
    categories = ["food", "shopping", "utilities"]
    months = [5, 6]
    for month in months:
        for category in categories + ["total"]:
            add_budget(db, user.id, category, month, 2024, 10000)

    live = {}
    for _ in range(120):
        action = rng.choice(["create", "create", "update", "delete"])
        if action == "create" or not live:
            exp = crud.create_expense(db, user.id, rng.randint(1, 5000), rng.choice(categories),
                                      at(2024, rng.choice(months), rng.randint(1, 28)))
            live[exp.id] = exp
        elif action == "update":
            exp_id = rng.choice(list(live))
            changes = rng.choice([
                {"amount": rng.randint(1, 5000)},
                {"category": rng.choice(categories)},
                {"expense_date": at(2024, rng.choice(months), rng.randint(1, 28))},
                {"amount": rng.randint(1, 5000), "category": rng.choice(categories),
                 "expense_date": at(2024, rng.choice(months), 3)},
            ])
            live[exp_id] = crud.update_expense(db, user.id, exp_id, changes)
        else:
            exp_id = rng.choice(list(live))
            crud.delete_expense(db, user.id, exp_id)
            del live[exp_id]

    for month in months:
        expenses = crud.list_expenses(db, user.id, month=month, year=2024)
        for category in categories:
            expected = sum(e.amount for e in expenses if e.category == category)
            assert spent(db, user.id, category, month, 2024) == pytest.approx(expected)
        assert spent(db, user.id, "total", month, 2024) == pytest.approx(sum(e.amount for e in expenses))


def test_delta_order_does_not_matter(db, user):
    add_budget(db, user.id, "food", 3, 2024, 8000)
    add_budget(db, user.id, "total", 3, 2024, 30000)

    states = [ExpenseState(a, "food", at(2024, 3)) for a in (120, 80, 300, 45)]
    deltas = [d for s in states for d in ledger.deltas_for_create(s)]
    deltas += ledger.deltas_for_delete(states[2])
    random.Random(3).shuffle(deltas)

    ledger.apply_deltas(db, user.id, deltas)
    db.commit()
    assert spent(db, user.id, "food", 3, 2024) == 245
    assert spent(db, user.id, "total", 3, 2024) == 245


def test_initialize_defaults_once(db, user):
    crud.create_expense(db, user.id, 600, "food", at(2024, 3, 2))

    budgets = ledger.initialize_default_budgets(db, user.id, 3, 2024)
    by_category = {b.category: b for b in budgets}
    assert set(by_category) == {"total", "food", "transportation", "entertainment",
                                "utilities", "shopping", "healthcare", "miscellaneous"}
    assert by_category["total"].monthly_limit == 30000
    assert by_category["food"].current_spent == 600
    assert by_category["total"].current_spent == 600

    with pytest.raises(ConflictError):
        ledger.initialize_default_budgets(db, user.id, 3, 2024)


def test_recalculate_repairs_drift(db, user):
    add_budget(db, user.id, "food", 3, 2024, 8000, spent=999)
    crud.create_expense(db, user.id, 100, "food", at(2024, 3))
    assert spent(db, user.id, "food", 3, 2024) == 1099

    ledger.recalculate_budgets(db, user.id, 3, 2024)
    assert spent(db, user.id, "food", 3, 2024) == 100


def test_other_users_budgets_are_untouched(db, user, other_user):
    add_budget(db, other_user.id, "food", 3, 2024, 8000)
    crud.create_expense(db, user.id, 500, "food", at(2024, 3))
    assert spent(db, other_user.id, "food", 3, 2024) == 0


def test_concurrent_creates_both_land(tmp_path):
    # separate connections on a file database, so each session has its own transaction
    engine = create_engine(f"sqlite:///{tmp_path / 'ledger.db'}",
                           connect_args={"check_same_thread": False, "timeout": 30})
    init_db(bind=engine)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    setup = Session()
    u = models.User(name="Asha", email="asha@example.com", password="x")
    setup.add(u)
    setup.commit()
    user_id = u.id
    add_budget(setup, user_id, "food", 3, 2024, 8000)
    add_budget(setup, user_id, "total", 3, 2024, 30000)
    setup.close()

    start = threading.Barrier(2)
    errors = []

    def record(amount):
        session = Session()
        try:
            start.wait()
            for _ in range(10):
                crud.create_expense(session, user_id, amount, "food", at(2024, 3))
        except Exception as exc:
            errors.append(exc)
        finally:
            session.close()

    workers = [threading.Thread(target=record, args=(amount,)) for amount in (100, 250)]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join()

    assert errors == []
    check = Session()
    try:
        assert check.query(models.Expense).count() == 20
        assert spent(check, user_id, "food", 3, 2024) == 3500
        assert spent(check, user_id, "total", 3, 2024) == 3500
    finally:
        check.close()
        engine.dispose()
