from datetime import datetime, timezone

from habit.models import Habit, ReminderSettings, User

class FakeSender:
    """Records every send; addresses in ``fail_for`` report failure, ``raise_for`` raise."""

    def __init__(self, fail_for=(), raise_for=()):
        self.sent = []
        self.fail_for = set(fail_for)
        self.raise_for = set(raise_for)

    async def send(self, address, content):
        if address in self.raise_for:
            raise ConnectionError(f"transport down for {address}")
        if address in self.fail_for:
            return False
        self.sent.append((address, content))
        return True

    @property
    def addresses(self):
        return [a for a, _ in self.sent]

def make_user(user_id="u1", email="u1@example.com", **kw):
    return User(user_id=user_id, email=email, display_name=kw.pop("display_name", user_id.upper()), **kw)

def make_habit(habit_id="h1", user_id="u1", windows=("morning",), times=(), enabled=True, **kw):
    reminder = ReminderSettings(
        enabled=enabled,
        windows=list(windows),
        times=list(times),
        schedule=list(kw.pop("schedule", [])),
        times_per_week=kw.pop("times_per_week", 7),
    )
    return Habit(habit_id=habit_id, user_id=user_id, name=kw.pop("name", f"Habit {habit_id}"), reminder=reminder, **kw)

# Monday 2024-03-04, 07:30 UTC -> morning
MONDAY_MORNING = datetime(2024, 3, 4, 7, 30, tzinfo=timezone.utc)
