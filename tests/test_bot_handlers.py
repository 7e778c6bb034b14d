"""Bot handlers called directly with stand-in messages and callbacks."""

import json
from types import SimpleNamespace

import pytest
from aiogram.filters import CommandObject

from coach_crm.bot.handlers.leads import NOT_LINKED, cb_status, cmd_leads, cmd_status
from coach_crm.bot.handlers.meetings import cmd_meetings
from coach_crm.bot.handlers.notifications import cb_mark_read
from coach_crm.data import CrmData
from coach_crm.data.leads import STATUS_IN_PROGRESS
from coach_crm.notify import NotificationCenter


class StubMessage:
    def __init__(self) -> None:
        self.from_user = SimpleNamespace(id=42, full_name="Coach")
        self.answers: list[str] = []
        self.markup_cleared = False

    async def answer(self, text: str, **kwargs) -> None:
        self.answers.append(text)

    async def edit_reply_markup(self, reply_markup=None) -> None:
        self.markup_cleared = reply_markup is None


class StubCallback:
    def __init__(self, data: str) -> None:
        self.data = data
        self.message = StubMessage()
        self.from_user = self.message.from_user
        self.answers: list[tuple[str | None, bool]] = []

    async def answer(self, text: str | None = None, show_alert: bool = False) -> None:
        self.answers.append((text, show_alert))


def _command(name: str, args: str | None = None) -> CommandObject:
    return CommandObject(prefix="/", command=name, args=args)


@pytest.fixture
def center() -> NotificationCenter:
    return NotificationCenter()


@pytest.fixture
def crm(client, center) -> CrmData:
    return CrmData(client, user_id="U1", notifier=center)


@pytest.mark.asyncio
async def test_status_command_keeps_multi_word_status(crm: CrmData, fake):
    fake.route("PATCH", "leads", [{"id": "L1", "status_main": "לא רלוונטי כרגע"}])
    message = StubMessage()

    await cmd_status(message, _command("status", "L1  לא רלוונטי כרגע "), crm)

    patch = fake.calls("PATCH", "leads")[0]
    assert patch.url.params["id"] == "eq.L1"
    assert json.loads(patch.content) == {"status_main": "לא רלוונטי כרגע", "status_sub": None}


@pytest.mark.asyncio
async def test_status_command_without_status_shows_usage(crm: CrmData, fake):
    message = StubMessage()

    await cmd_status(message, _command("status", "L1"), crm)

    assert message.answers[0].startswith("שימוש: /status")
    assert fake.requests == []


@pytest.mark.asyncio
async def test_status_button_maps_index_to_status(crm: CrmData, fake):
    fake.route("PATCH", "leads", [{"id": "L1", "status_main": STATUS_IN_PROGRESS}])
    callback = StubCallback("ls:L1:1")

    await cb_status(callback, crm)

    assert json.loads(fake.calls("PATCH", "leads")[0].content)["status_main"] == STATUS_IN_PROGRESS
    assert callback.answers == [(None, False)]


@pytest.mark.asyncio
@pytest.mark.parametrize("data", ["ls:L1:7", "ls:L1:x", "ls:L1"])
async def test_status_button_with_bad_index_does_nothing(crm: CrmData, fake, data):
    callback = StubCallback(data)

    await cb_status(callback, crm)

    assert fake.requests == []
    assert callback.answers == [(None, False)]


@pytest.mark.asyncio
async def test_failed_status_button_reports_through_toast(crm: CrmData, center: NotificationCenter, fake):
    fake.route("PATCH", "leads", {"message": "boom"}, status=500)
    callback = StubCallback("ls:L1:0")

    await cb_status(callback, crm)

    assert [toast.message for toast in center.errors] == ["נכשל בעדכון השדה"]
    assert callback.answers == [(None, False)]


@pytest.mark.asyncio
async def test_meetings_rejects_unknown_mode(crm: CrmData, fake):
    message = StubMessage()

    await cmd_meetings(message, _command("meetings", "year"), crm)

    assert message.answers == ["שימוש: /meetings [day|week|month]"]
    assert fake.requests == []


@pytest.mark.asyncio
async def test_meetings_day_queries_visible_range(crm: CrmData, fake):
    fake.route("GET", "meetings", [])
    message = StubMessage()

    await cmd_meetings(message, _command("meetings", "DAY"), crm)

    window = fake.calls("GET", "meetings")[0].url.params["and"]
    assert "T00:00:00" in window and "T23:59:59" in window
    assert message.answers == ["אין פגישות בתקופה הזאת."]


@pytest.mark.asyncio
async def test_mark_read_button_clears_keyboard(crm: CrmData, fake):
    fake.route(
        "PATCH",
        "notifications",
        [{"id": "N1", "user_id": "U1", "type": "lead_created", "title": "t", "message": "m", "is_read": True}],
    )
    callback = StubCallback("nr:N1")

    await cb_mark_read(callback, crm)

    assert fake.calls("PATCH", "notifications")[0].url.params["id"] == "eq.N1"
    assert callback.message.markup_cleared
    assert callback.answers == [("סומן כנקרא", False)]


@pytest.mark.asyncio
async def test_unlinked_trainer_is_told_to_start(fake):
    message = StubMessage()
    callback = StubCallback("ls:L1:0")

    await cmd_leads(message, None)
    await cb_status(callback, None)

    assert message.answers == [NOT_LINKED]
    assert callback.answers == [(NOT_LINKED, True)]
    assert fake.requests == []
