from __future__ import annotations

import asyncio
import html
import logging

from aiogram import Router
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext
from aiogram.types import FSInputFile, Message, ReplyKeyboardRemove

from partspos.backend.api import BackendClient
from partspos.bot.keyboards import main_kb, payment_kb
from partspos.bot.states import CustomerSelect
from partspos.config import settings
from partspos.constants import PAYMENT_METHODS
from partspos.errors import ApiError, CartValidationError, LineNotFound, SaleValidationError
from partspos.services.cart import Cart, CartSessions
from partspos.services.checkout import submit_sale
from partspos.services.loyalty import refresh_loyalty
from partspos.services.pricing import decompose_pricing, recommended_sale_price
from partspos.services.receipt_pdf import generate_receipt_pdf
from partspos.utils.formatters import money, percent
from partspos.utils.validators import parse_number, parse_qty

logger = logging.getLogger(__name__)

router = Router()

# one cart per chat
SESSIONS = CartSessions()

_backend: BackendClient | None = None


def get_backend() -> BackendClient:
    global _backend
    if _backend is None:
        _backend = BackendClient()
    return _backend


def _is_admin(message: Message) -> bool:
    try:
        return int(message.from_user.id) in settings.admin_ids
    except (AttributeError, TypeError, ValueError):
        return False


def _args(message: Message) -> list[str]:
    return (message.text or "").split()[1:]


def _esc(v) -> str:
    return html.escape(str(v))


async def _require_cart(message: Message) -> Cart | None:
    cart = SESSIONS.get(message.chat.id)
    if cart is None:
        await message.answer("Start a sale first: /sale_start")
    return cart


def cart_text(cart: Cart) -> str:
    if cart.is_empty():
        return "🧺 The cart is empty. Add parts with /add PRODUCT_ID [QTY]"

    t = cart.totals()
    lines = ["<b>Cart</b>"]
    for it, ln in zip(cart.lines, t.lines):
        disc = f" (-{percent(it.discount_rate)})" if it.discount_rate else ""
        lines.append(
            f"• <code>{_esc(it.product_id)}</code> {_esc(it.label)} × {it.quantity} @ "
            f"{money(ln.final_unit_price)}{disc} = {money(ln.total_incl_tax)}"
        )
    lines.append("")
    lines.append(f"Items: {t.item_count}")
    lines.append(f"Total excl. tax: {money(t.total_excl_tax)}")
    lines.append(f"Tax: {money(t.total_tax)}")
    lines.append(f"Subtotal: {money(t.subtotal_incl_tax)}")
    if t.global_discount > 0:
        lines.append(f"Discount {percent(t.global_discount)}: -{money(t.global_discount_amount)}")
    if t.loyalty_discount > 0:
        lines.append(f"Loyalty {percent(t.loyalty_discount)}: -{money(t.loyalty_discount_amount)}")
    lines.append(f"<b>To pay: {money(t.total_incl_tax)}</b>")
    lines.append("")
    customer = cart.customer.full_name if cart.customer is not None else settings.counter_customer
    lines.append(f"Customer: {_esc(customer)} | Payment: {cart.payment_method}")
    return "\n".join(lines)


@router.message(Command("start"))
async def cmd_start(message: Message):
    if not _is_admin(message):
        return
    await message.answer("✅ Cashier ready. /sale_start to open a sale, /help for commands", reply_markup=main_kb())


@router.message(Command("cancel"))
async def cmd_cancel(message: Message, state: FSMContext):
    if not _is_admin(message):
        return
    await state.clear()
    await message.answer("❎ Cancelled.", reply_markup=ReplyKeyboardRemove())


@router.message(Command("help"))
async def cmd_help(message: Message):
    if not _is_admin(message):
        return

    text = (
        "<b>Cashier commands</b>\n\n"
        "<b>General</b>\n"
        "/start, /help, /ping, /cancel\n\n"
        "<b>Catalog</b>\n"
        "/find QUERY — search parts\n"
        "/price PRODUCT_ID — pricing breakdown\n"
        f"/sales [{'|'.join(PAYMENT_METHODS)}] — recent sales\n\n"
        "<b>Sale</b>\n"
        "/sale_start — open a new sale (drops the current one)\n"
        "/add PRODUCT_ID [QTY] [DISCOUNT%] [PRICE]\n"
        "/qty PRODUCT_ID QTY\n"
        "/discount PRODUCT_ID DISCOUNT%\n"
        "/price_set PRODUCT_ID PRICE — change a line's unit price\n"
        "/remove PRODUCT_ID\n"
        "/global DISCOUNT% — discount on the whole sale\n"
        "/customer [QUERY] — select a customer\n"
        "/customer_id ID — select a customer by id\n"
        "/customer_clear — back to counter customer\n"
        f"/pay {'|'.join(PAYMENT_METHODS)}\n"
        "/cart — show cart and totals\n"
        "/finish — submit the sale + PDF receipt\n"
    )
    await message.answer(text)


@router.message(Command("ping"))
async def cmd_ping(message: Message):
    if not _is_admin(message):
        return
    await message.answer("pong ✅")


# ---------------- catalog ----------------

@router.message(Command("find"))
async def cmd_find(message: Message):
    if not _is_admin(message):
        return

    query = " ".join(_args(message))
    if not query:
        await message.answer("Format: /find QUERY")
        return

    try:
        products = await asyncio.to_thread(get_backend().search_products, query)
    except (ApiError, CartValidationError) as e:
        await message.answer(f"❌ {_esc(e)}")
        return

    if not products:
        await message.answer("Nothing found.")
        return

    lines = ["<b>Parts:</b>"]
    for p in products:
        lines.append(
            f"• <code>{_esc(p.id)}</code> {_esc(p.sku)} {_esc(p.name)} | {money(p.sale_price)} | stock {p.stock_qty}"
        )
    await message.answer("\n".join(lines))


@router.message(Command("price"))
async def cmd_price(message: Message):
    if not _is_admin(message):
        return

    parts = _args(message)
    if len(parts) != 1:
        await message.answer("Format: /price PRODUCT_ID")
        return

    try:
        record = await asyncio.to_thread(get_backend().get_product_record, parts[0])
    except ApiError as e:
        await message.answer(f"❌ {_esc(e)}")
        return

    d = decompose_pricing(record)
    await message.answer(
        f"<b>{_esc(record.get('name') or parts[0])}</b>\n"
        f"Last purchase: {money(d['lastPurchasePrice'])}\n"
        f"CMP: {money(d['cmpPrice'])}\n"
        f"Price excl. tax: {money(d['priceHT'])}\n"
        f"Margin: {money(d['marginAmount'])} ({percent(d['marginRate'])})\n"
        f"Tax: {money(d['taxAmount'])} ({percent(d['taxRate'])})\n"
        f"Sale price: {money(d['salePriceTTC'])}\n"
        f"Recommended: {money(recommended_sale_price(record))}"
    )


@router.message(Command("sales"))
async def cmd_sales(message: Message):
    if not _is_admin(message):
        return

    parts = _args(message)
    method = parts[0].upper() if parts else None
    if len(parts) > 1 or (method is not None and method not in PAYMENT_METHODS):
        await message.answer(f"Format: /sales [{'|'.join(PAYMENT_METHODS)}]")
        return

    try:
        sales = await asyncio.to_thread(get_backend().list_sales, limit=10, payment_method=method)
    except (ApiError, CartValidationError) as e:
        await message.answer(f"❌ {_esc(e)}")
        return

    if not sales:
        await message.answer("No sales yet.")
        return

    lines = ["<b>Recent sales:</b>"]
    for s in sales:
        lines.append(
            f"• {s.day} <code>{_esc(s.reference or s.id)}</code> {_esc(s.customer_name)} | "
            f"{s.payment_method} | {money(s.total_incl_tax)}"
        )
    await message.answer("\n".join(lines))


# ---------------- sale ----------------

@router.message(Command("sale_start"))
async def cmd_sale_start(message: Message):
    if not _is_admin(message):
        return
    SESSIONS.start(message.chat.id)
    await message.answer("🧺 New sale opened.", reply_markup=main_kb())


@router.message(Command("add"))
async def cmd_add(message: Message):
    if not _is_admin(message):
        return
    cart = await _require_cart(message)
    if cart is None:
        return

    parts = _args(message)
    if not 1 <= len(parts) <= 4:
        await message.answer("Format: /add PRODUCT_ID [QTY] [DISCOUNT%] [PRICE]")
        return

    product_id = parts[0]
    try:
        qty = parse_qty(parts[1]) if len(parts) >= 2 else 1
        discount = parse_number(parts[2], "discount") if len(parts) >= 3 else 0
        price = parse_number(parts[3], "price") if len(parts) >= 4 else None
    except ValueError as e:
        await message.answer(f"❌ {_esc(e)}")
        return

    try:
        product = await asyncio.to_thread(get_backend().get_product, product_id)
        item = cart.add_product(product, quantity=qty, discount_rate=discount, unit_price=price)
    except (ApiError, CartValidationError) as e:
        await message.answer(f"❌ {_esc(e)}")
        return

    warn = ""
    if item.stock_qty is not None and item.quantity > item.stock_qty:
        warn = f"\n⚠️ Only {item.stock_qty} in stock"
    await message.answer(f"✅ {_esc(item.label)} × {item.quantity} in cart{warn}\n\n{cart_text(cart)}")


@router.message(Command("qty"))
async def cmd_qty(message: Message):
    if not _is_admin(message):
        return
    cart = await _require_cart(message)
    if cart is None:
        return

    parts = _args(message)
    if len(parts) != 2:
        await message.answer("Format: /qty PRODUCT_ID QTY")
        return

    try:
        cart.update_quantity(parts[0], parse_qty(parts[1]))
    except (LineNotFound, ValueError) as e:
        await message.answer(f"❌ {_esc(e)}")
        return
    await message.answer(cart_text(cart))


@router.message(Command("discount"))
async def cmd_discount(message: Message):
    if not _is_admin(message):
        return
    cart = await _require_cart(message)
    if cart is None:
        return

    parts = _args(message)
    if len(parts) != 2:
        await message.answer("Format: /discount PRODUCT_ID DISCOUNT%")
        return

    try:
        cart.set_discount_rate(parts[0], parts[1])
    except (LineNotFound, CartValidationError) as e:
        await message.answer(f"❌ {_esc(e)}")
        return
    await message.answer(cart_text(cart))


@router.message(Command("price_set"))
async def cmd_price_set(message: Message):
    if not _is_admin(message):
        return
    cart = await _require_cart(message)
    if cart is None:
        return

    parts = _args(message)
    if len(parts) != 2:
        await message.answer("Format: /price_set PRODUCT_ID PRICE")
        return

    try:
        cart.set_unit_price(parts[0], parse_number(parts[1], "price"))
    except (LineNotFound, ValueError) as e:
        await message.answer(f"❌ {_esc(e)}")
        return
    await message.answer(cart_text(cart))


@router.message(Command("remove"))
async def cmd_remove(message: Message):
    if not _is_admin(message):
        return
    cart = await _require_cart(message)
    if cart is None:
        return

    parts = _args(message)
    if len(parts) != 1:
        await message.answer("Format: /remove PRODUCT_ID")
        return

    try:
        item = cart.remove_line(parts[0])
    except LineNotFound as e:
        await message.answer(f"❌ {_esc(e)}")
        return
    await message.answer(f"✅ Removed {_esc(item.label)}\n\n{cart_text(cart)}")


@router.message(Command("global"))
async def cmd_global(message: Message):
    if not _is_admin(message):
        return
    cart = await _require_cart(message)
    if cart is None:
        return

    parts = _args(message)
    if len(parts) != 1:
        await message.answer("Format: /global DISCOUNT%")
        return

    try:
        cart.set_global_discount(parts[0])
    except CartValidationError as e:
        await message.answer(f"❌ {_esc(e)}")
        return
    await message.answer(cart_text(cart))


async def _select_customer(message: Message, cart: Cart, query: str) -> None:
    try:
        found = await asyncio.to_thread(get_backend().search_customers, query)
    except (ApiError, CartValidationError) as e:
        await message.answer(f"❌ {_esc(e)}")
        return

    if not found:
        await message.answer("No customer found.")
        return
    if len(found) > 1:
        lines = ["Several customers match, pick one with /customer_id ID:"]
        for c in found:
            lines.append(f"• <code>{_esc(c.id)}</code> {_esc(c.full_name)}")
        await message.answer("\n".join(lines))
        return

    customer = refresh_loyalty(found[0])
    cart.select_customer(customer)
    await message.answer(f"👤 Customer: {_esc(customer.full_name)}\n\n{cart_text(cart)}")


@router.message(Command("customer"))
async def cmd_customer(message: Message, state: FSMContext):
    if not _is_admin(message):
        return
    cart = await _require_cart(message)
    if cart is None:
        return

    query = " ".join(_args(message))
    if query:
        await _select_customer(message, cart, query)
        return

    await state.set_state(CustomerSelect.waiting_query)
    await message.answer("Type a customer name or phone.\nCancel: /cancel", reply_markup=ReplyKeyboardRemove())


@router.message(CustomerSelect.waiting_query)
async def customer_wait_query(message: Message, state: FSMContext):
    if not _is_admin(message):
        return

    query = (message.text or "").strip()
    if not query or query.startswith("/"):
        await message.answer("Type the name as text. Cancel: /cancel")
        return

    await state.clear()
    cart = await _require_cart(message)
    if cart is None:
        return
    await _select_customer(message, cart, query)


@router.message(Command("customer_id"))
async def cmd_customer_id(message: Message):
    if not _is_admin(message):
        return
    cart = await _require_cart(message)
    if cart is None:
        return

    parts = _args(message)
    if len(parts) != 1:
        await message.answer("Format: /customer_id ID")
        return

    try:
        customer = refresh_loyalty(await asyncio.to_thread(get_backend().get_customer, parts[0]))
    except (ApiError, CartValidationError) as e:
        await message.answer(f"❌ {_esc(e)}")
        return
    cart.select_customer(customer)
    await message.answer(f"👤 Customer: {_esc(customer.full_name)}\n\n{cart_text(cart)}")


@router.message(Command("customer_clear"))
async def cmd_customer_clear(message: Message):
    if not _is_admin(message):
        return
    cart = await _require_cart(message)
    if cart is None:
        return
    cart.select_customer(None)
    await message.answer(cart_text(cart))


@router.message(Command("pay"))
async def cmd_pay(message: Message):
    if not _is_admin(message):
        return
    cart = await _require_cart(message)
    if cart is None:
        return

    parts = _args(message)
    if len(parts) != 1:
        await message.answer(f"Format: /pay {'|'.join(PAYMENT_METHODS)}", reply_markup=payment_kb())
        return

    try:
        method = cart.set_payment_method(parts[0])
    except CartValidationError as e:
        await message.answer(f"❌ {_esc(e)}")
        return
    await message.answer(f"💳 Payment: {PAYMENT_METHODS[method]}", reply_markup=main_kb())


@router.message(Command("cart"))
async def cmd_cart(message: Message):
    if not _is_admin(message):
        return
    cart = await _require_cart(message)
    if cart is None:
        return
    await message.answer(cart_text(cart))


@router.message(Command("finish"))
async def cmd_finish(message: Message):
    if not _is_admin(message):
        return
    cart = await _require_cart(message)
    if cart is None:
        return

    try:
        receipt = await asyncio.to_thread(submit_sale, cart, get_backend(), SESSIONS)
    except SaleValidationError as e:
        await message.answer("❌ Sale blocked:\n" + "\n".join(_esc(err) for err in e.errors))
        return
    except ApiError as e:
        await message.answer(f"❌ {_esc(e.message)}\nThe cart is kept: fix it and /finish again.")
        return

    try:
        pdf_path = await asyncio.to_thread(generate_receipt_pdf, receipt)
        await message.answer_document(FSInputFile(pdf_path))
    except Exception as e:
        logger.exception("receipt PDF failed for %s", receipt.reference)
        await message.answer(f"⚠️ Sale saved, but the PDF receipt failed: {_esc(e)}")

    await message.answer(
        f"✅ Sale {_esc(receipt.reference)} saved.\n"
        f"Customer: {_esc(receipt.customer_name)}\n"
        f"Payment: {receipt.payment_method}\n"
        f"Items: {receipt.totals.item_count}\n"
        f"Total: {money(receipt.totals.total_incl_tax)}",
        reply_markup=main_kb(),
    )
