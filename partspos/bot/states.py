from aiogram.fsm.state import State, StatesGroup


class CustomerSelect(StatesGroup):
    waiting_query = State()
