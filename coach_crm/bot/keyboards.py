from __future__ import annotations

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from coach_crm.data.leads import STATUS_IN_PROGRESS, STATUS_NEW

# Telegram caps callback_data at 64 bytes, so prefixes stay short
READ_NOTIFICATION = "nr:"
SET_STATUS = "ls:"

QUICK_STATUSES = (STATUS_NEW, STATUS_IN_PROGRESS)


class Keyboards:
    """
    Centralized keyboard/button builder for consistent UI.
    """

    @staticmethod
    def main_menu() -> InlineKeyboardMarkup:
        """Main menu buttons."""
        buttons = [
            [
                InlineKeyboardButton(text="👥 לידים", callback_data="menu_leads"),
                InlineKeyboardButton(text="🔔 התראות", callback_data="menu_notifications"),
            ],
            [InlineKeyboardButton(text="❓ עזרה", callback_data="menu_help")],
        ]
        return InlineKeyboardMarkup(inline_keyboard=buttons)

    @staticmethod
    def notification_actions(notification_id: str) -> InlineKeyboardMarkup:
        return InlineKeyboardMarkup(
            inline_keyboard=[
                [
                    InlineKeyboardButton(
                        text="✔️ סמן כנקרא",
                        callback_data=f"{READ_NOTIFICATION}{notification_id}",
                    )
                ]
            ]
        )

    @staticmethod
    def lead_statuses(lead_id: str) -> InlineKeyboardMarkup:
        """One button per quick status; the index keeps callback data short."""
        row = [
            InlineKeyboardButton(text=status, callback_data=f"{SET_STATUS}{lead_id}:{index}")
            for index, status in enumerate(QUICK_STATUSES)
        ]
        return InlineKeyboardMarkup(inline_keyboard=[row])
