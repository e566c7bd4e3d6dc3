from aiogram.types import KeyboardButton, ReplyKeyboardMarkup

from partspos.constants import PAYMENT_METHODS


def main_kb() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        keyboard=[
            [KeyboardButton(text="/sale_start"), KeyboardButton(text="/cart")],
            [KeyboardButton(text="/customer"), KeyboardButton(text="/finish")],
            [KeyboardButton(text="/help"), KeyboardButton(text="/ping")],
        ],
        resize_keyboard=True,
    )


def payment_kb() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        keyboard=[[KeyboardButton(text=f"/pay {m}") for m in PAYMENT_METHODS]],
        resize_keyboard=True,
        one_time_keyboard=True,
    )
