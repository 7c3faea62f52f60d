import logging
import shlex
from decimal import Decimal, InvalidOperation

from aiogram import Router
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext
from aiogram.types import Message, ReplyKeyboardRemove

from uniform_store.bot.keyboards import categories_kb, main_kb, statuses_help
from uniform_store.bot.states import ProductAdd
from uniform_store.config import settings
from uniform_store.constants import ORDER_STATUSES
from uniform_store.db.sqlite import (
    add_news,
    add_product,
    get_user_by_email,
    init_db,
    list_categories,
    list_leads,
    list_orders,
    list_products,
    set_admin,
    set_order_status,
)
from uniform_store.utils.formatters import date_br, money
from uniform_store.utils.validators import require_positive_number

log = logging.getLogger(__name__)

router = Router()

LIST_LIMIT = 15


def _is_admin(message: Message) -> bool:
    try:
        return int(message.from_user.id) == int(settings.admin_id)
    except (AttributeError, TypeError, ValueError):
        return False


def _parse_price(text: str) -> Decimal:
    try:
        price = Decimal(text.strip().replace(",", "."))
    except InvalidOperation:
        raise ValueError(f"preço inválido: {text}")
    require_positive_number(float(price), "preço")
    return price


@router.message(Command("start"))
async def cmd_start(message: Message):
    if not _is_admin(message):
        return
    init_db()
    await message.answer("✅ Painel da loja ativo", reply_markup=main_kb())


@router.message(Command("cancel"))
async def cmd_cancel(message: Message, state: FSMContext):
    if not _is_admin(message):
        return
    await state.clear()
    await message.answer("❎ Cancelado.", reply_markup=ReplyKeyboardRemove())


@router.message(Command("help"))
async def cmd_help(message: Message):
    if not _is_admin(message):
        return

    text = (
        "<b>Painel da loja — comandos</b>\n\n"
        "/start — iniciar\n"
        "/cancel — cancelar entrada\n"
        "/ping — teste\n\n"
        "<b>Pedidos</b>\n"
        "/orders [STATUS] — últimos pedidos\n"
        "/order_status ID STATUS — alterar status\n"
        f"Status: {statuses_help()}\n\n"
        "<b>Leads</b>\n"
        "/leads — últimos contatos\n\n"
        "<b>Produtos</b>\n"
        "/products — lista\n"
        "/product_add — assistente de cadastro\n"
        '/product_add "NOME" CATEGORIA PREÇO — cadastro direto\n\n'
        "<b>Notícias</b>\n"
        "/news_add TÍTULO | TEXTO\n\n"
        "<b>Usuários</b>\n"
        "/admin_grant EMAIL — dar acesso ao admin do site\n"
    )
    await message.answer(text)


@router.message(Command("ping"))
async def cmd_ping(message: Message):
    if not _is_admin(message):
        return
    await message.answer("pong ✅")


# ---------------- orders ----------------

@router.message(Command("orders"))
async def cmd_orders(message: Message):
    if not _is_admin(message):
        return

    parts = (message.text or "").split()
    status = parts[1].strip().lower() if len(parts) > 1 else None
    if status and status not in ORDER_STATUSES:
        await message.answer(f"Status desconhecido. Use: {statuses_help()}")
        return

    rows = list_orders(status)[:LIST_LIMIT]
    if not rows:
        await message.answer("Nenhum pedido.")
        return

    lines = ["<b>Pedidos:</b>"]
    for o in rows:
        customer = o["customer"] or {}
        lines.append(
            f"• #{o['id']} {o['order_id']} | {date_br(o['created_at'])} | "
            f"{customer.get('name') or o['user_name']} | {money(Decimal(o['total']))} | "
            f"{ORDER_STATUSES.get(o['status'], o['status'])}"
        )
    await message.answer("\n".join(lines))


@router.message(Command("order_status"))
async def cmd_order_status(message: Message):
    if not _is_admin(message):
        return

    parts = (message.text or "").split()
    if len(parts) != 3:
        await message.answer(f"Formato: /order_status ID STATUS\nStatus: {statuses_help()}")
        return

    try:
        row_id = int(parts[1].lstrip("#"))
    except ValueError:
        await message.answer("ID deve ser um número (veja /orders)")
        return

    ok, err = set_order_status(row_id, parts[2].strip().lower())
    if ok:
        await message.answer(f"✅ Pedido #{row_id}: {ORDER_STATUSES[parts[2].strip().lower()]}")
    else:
        await message.answer(f"❌ {err}")


# ---------------- leads ----------------

@router.message(Command("leads"))
async def cmd_leads(message: Message):
    if not _is_admin(message):
        return

    rows = list_leads()[:LIST_LIMIT]
    if not rows:
        await message.answer("Nenhum lead ainda.")
        return

    lines = ["<b>Leads:</b>"]
    for r in rows:
        extra = f" | {r['order_id']}" if r["order_id"] else ""
        lines.append(
            f"• {date_br(r['created_at'])} | {r['name']} | {r['phone'] or '-'} | {r['email'] or '-'} | {r['source']}{extra}"
        )
    await message.answer("\n".join(lines))


# ---------------- products ----------------

@router.message(Command("products"))
async def cmd_products(message: Message):
    if not _is_admin(message):
        return
    init_db()
    rows = list_products(only_active=False)
    if not rows:
        await message.answer("Nenhum produto. Adicione: /product_add")
        return
    lines = ["<b>Produtos:</b>"]
    for r in rows:
        lines.append(f"• #{r['id']} {r['name']} ({r['category'] or '-'}) — {money(Decimal(r['price']))} [{r['status']}]")
    await message.answer("\n".join(lines))


@router.message(Command("product_add"))
async def cmd_product_add(message: Message, state: FSMContext):
    if not _is_admin(message):
        return

    init_db()

    try:
        args = shlex.split(message.text or "")
    except ValueError:
        args = []
    if len(args) >= 4:
        _, name, category, price = args[:4]
        try:
            add_product(name, _parse_price(price), category=category)
            await message.answer(f"✅ Produto adicionado: {name}")
        except ValueError as e:
            await message.answer(f"❌ Erro ao adicionar produto: {e}")
        return

    await state.clear()
    await state.set_state(ProductAdd.waiting_name)
    await message.answer(
        "Ok, vamos cadastrar um produto.\n\n1/3) Nome do produto\nCancelar: /cancel",
        reply_markup=ReplyKeyboardRemove(),
    )


@router.message(ProductAdd.waiting_name)
async def product_add_name(message: Message, state: FSMContext):
    if not _is_admin(message):
        return

    name = (message.text or "").strip()
    if not name or name.startswith("/"):
        await message.answer("Digite o nome em texto. Cancelar: /cancel")
        return

    await state.update_data(name=name)
    await state.set_state(ProductAdd.waiting_category)
    await message.answer(
        "2/3) Categoria (ou '-' para nenhuma)\nCancelar: /cancel",
        reply_markup=categories_kb(list_categories()),
    )


@router.message(ProductAdd.waiting_category)
async def product_add_category(message: Message, state: FSMContext):
    if not _is_admin(message):
        return

    raw = (message.text or "").strip()
    category = "" if raw == "-" else raw
    await state.update_data(category=category)
    await state.set_state(ProductAdd.waiting_price)
    await message.answer(
        "3/3) Preço (ex.: 49.90)\nCancelar: /cancel",
        reply_markup=ReplyKeyboardRemove(),
    )


@router.message(ProductAdd.waiting_price)
async def product_add_price(message: Message, state: FSMContext):
    if not _is_admin(message):
        return

    try:
        price = _parse_price(message.text or "")
    except ValueError as e:
        await message.answer(f"❌ {e}. Tente de novo ou /cancel")
        return

    data = await state.get_data()
    try:
        product_id = add_product(data["name"], price, category=data.get("category", ""))
        await message.answer(f"✅ Produto #{product_id} adicionado: {data['name']} — {money(price)}")
    except ValueError as e:
        await message.answer(f"❌ Erro ao adicionar produto: {e}")
    finally:
        await state.clear()


# ---------------- news / users ----------------

@router.message(Command("news_add"))
async def cmd_news_add(message: Message):
    if not _is_admin(message):
        return

    parts = (message.text or "").split(maxsplit=1)
    if len(parts) < 2 or not parts[1].strip():
        await message.answer("Formato: /news_add TÍTULO | TEXTO")
        return

    title, _, body = parts[1].partition("|")
    try:
        news_id = add_news(title.strip(), body.strip())
        await message.answer(f"✅ Notícia #{news_id} publicada")
    except ValueError as e:
        await message.answer(f"❌ {e}")


@router.message(Command("admin_grant"))
async def cmd_admin_grant(message: Message):
    if not _is_admin(message):
        return

    parts = (message.text or "").split()
    if len(parts) != 2:
        await message.answer("Formato: /admin_grant EMAIL")
        return

    user = get_user_by_email(parts[1].strip().lower())
    if not user:
        await message.answer("❌ Usuário não encontrado")
        return
    set_admin(int(user["id"]))
    log.info("admin granted to %s", user["email"])
    await message.answer(f"✅ {user['email']} agora é administrador")
