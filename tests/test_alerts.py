import asyncio

from conftest import add_budget, at
from finance_tracker import crud
from finance_tracker.websocket_manager import AlertManager


class FakeSocket:
    def __init__(self, fail=False):
        self.sent = []
        self.closed = False
        self.fail = fail

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("socket gone")
        self.sent.append(data)

    async def close(self):
        self.closed = True


def test_alert_delivered_to_connected_user():
    manager = AlertManager()
    ws = FakeSocket()

    async def scenario():
        await manager.connect(7, ws)
        return await manager.send_alert(7, "Over budget in food")

    assert asyncio.run(scenario()) is True
    assert ws.sent == [{"type": "budget_alert", "message": "Over budget in food"}]


def test_new_connection_replaces_old_one():
    manager = AlertManager()
    old, new = FakeSocket(), FakeSocket()

    async def scenario():
        await manager.connect(7, old)
        await manager.connect(7, new)
        await manager.send_alert(7, "hello")

    asyncio.run(scenario())
    assert old.closed
    assert new.sent and not old.sent


def test_failed_send_drops_connection():
    manager = AlertManager()

    async def scenario():
        await manager.connect(3, FakeSocket(fail=True))
        return await manager.send_alert(3, "x")

    assert asyncio.run(scenario()) is False
    assert not manager.is_connected(3)
    assert asyncio.run(manager.send_alert(3, "x")) is False


def test_budget_alerts_only_when_over_limit(db, user):
    add_budget(db, user.id, "food", 3, 2024, 1000)
    add_budget(db, user.id, "total", 3, 2024, 30000)

    exp = crud.create_expense(db, user.id, 800, "food", at(2024, 3))
    assert crud.budget_alerts(db, user.id, exp.category, exp.expense_date) == []

    exp = crud.create_expense(db, user.id, 400, "food", at(2024, 3))
    alerts = crud.budget_alerts(db, user.id, exp.category, exp.expense_date)
    assert len(alerts) == 1
    assert alerts[0].startswith("Over budget in food: 1200.00/1000.00")
