from __future__ import annotations

from aiogram import F, Router, html
from aiogram.filters import Command, CommandStart
from aiogram.types import CallbackQuery, Message

from coach_crm.bot.keyboards import Keyboards
from coach_crm.core import get_settings
from coach_crm.db.models import Profile

router = Router(name="start")

NOT_LINKED = (
    "לא נמצא פרופיל מאמן שמקושר לחשבון הטלגרם הזה.\n"
    "בקש ממנהל המערכת לקשר את המזהה <code>{telegram_id}</code> לפרופיל שלך."
)

HELP_TEXT = """
<b>📋 פקודות זמינות:</b>

<b>👥 לידים</b>
/leads — לידים לפי התצוגה ברירת המחדל
/lead &lt;מזהה&gt; — פרטי ליד
/status &lt;מזהה&gt; &lt;סטטוס&gt; — עדכון סטטוס ליד

<b>📅 פגישות</b>
/meetings [day|week|month] — פגישות בתקופה הנוכחית

<b>🔔 התראות</b>
/notifications — התראות אחרונות
/read_all — סימון כל ההתראות כנקראו

<b>❓ עזרה</b>
/help — ההודעה הזאת
""".strip()


@router.message(CommandStart())
async def cmd_start(message: Message, profile: Profile | None = None) -> None:
    """
    /start for trainers.

    Greets a linked trainer by name; anyone else gets their Telegram id so an
    admin can link it to a profile.
    """

    settings = get_settings()

    if profile is None:
        await message.answer(NOT_LINKED.format(telegram_id=message.from_user.id))
        return

    name = profile.full_name or message.from_user.full_name
    lines = [
        f"👋 שלום {html.bold(html.quote(name))}!",
        "",
        "בחר פעולה או השתמש ב-/help בכל רגע.",
    ]
    if settings.is_debug:
        lines.append("")
        lines.append(f"מצב: <b>DEBUG</b> | user_id={profile.id} | role={profile.role.value}")

    await message.answer("\n".join(lines), reply_markup=Keyboards.main_menu())


@router.message(Command("help"))
async def cmd_help(message: Message) -> None:
    await message.answer(HELP_TEXT)


@router.callback_query(F.data == "menu_help")
async def cb_help(callback: CallbackQuery) -> None:
    await callback.message.answer(HELP_TEXT)
    await callback.answer()
