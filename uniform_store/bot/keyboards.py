from aiogram.types import KeyboardButton, ReplyKeyboardMarkup

from uniform_store.constants import ORDER_STATUSES


def main_kb() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        keyboard=[
            [KeyboardButton(text="/help"), KeyboardButton(text="/orders")],
            [KeyboardButton(text="/leads"), KeyboardButton(text="/products")],
            [KeyboardButton(text="/product_add"), KeyboardButton(text="/ping")],
        ],
        resize_keyboard=True,
    )


def categories_kb(categories: list[str]) -> ReplyKeyboardMarkup:
    rows = [[KeyboardButton(text=c)] for c in categories[:8]]
    rows.append([KeyboardButton(text="-")])
    rows.append([KeyboardButton(text="/cancel")])
    return ReplyKeyboardMarkup(keyboard=rows, resize_keyboard=True, one_time_keyboard=True)


def statuses_help() -> str:
    return ", ".join(f"{k} ({v})" for k, v in ORDER_STATUSES.items())
