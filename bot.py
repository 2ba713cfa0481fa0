#!/usr/bin/env python3
"""
Telegram-бот таймера спорного босса.
После спауна босс 12 часов не может появиться, следующие 12 часов идёт окно появления.
Токен и базы из .env файла, админы из admins.txt.
"""
import re
import logging
import signal
import sys
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from telegram import Update, InlineKeyboardMarkup, InlineKeyboardButton
from telegram.error import BadRequest, TelegramError
from telegram.ext import (
    Application,
    CommandHandler,
    CallbackQueryHandler,
    ContextTypes,
)

from bosstimer import config
from bosstimer.alerts import BOSS_SPAWN_CHANNEL, BOSS_TIMER_CHANNEL, GUILD_EVENTS_CHANNEL
from bosstimer.clock import HOUR, QUIET_DURATION, WINDOW_END, Phase, RemainingTime, now_ms
from bosstimer.db import LocalSession, RemoteSession, ensure_db_exists
from bosstimer.events import TABLE as EVENTS_TABLE, GuildEvents
from bosstimer.feed import PollingChangeFeed
from bosstimer.kv import SqlKeyValueStore
from bosstimer.notifier import JobQueueNotifier
from bosstimer.preferences import KEYS as PREFERENCE_KEYS, NotificationPreferences
from bosstimer.records import RecordStoreError, SqlRecordStore
from bosstimer.scheduler import AlertScheduler
from bosstimer.services import TimerService
from bosstimer.state import SpawnStateStore
from bosstimer.subscribers import SubscriberRegistry
from bosstimer.sync import GuildEventSync, StaleSpawnError, RemoteSpawnSync, TABLE as SPAWN_TABLE
from bosstimer.ticker import Ticker

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)
logger = logging.getLogger(__name__)

ADMINS_FILE = config.ADMINS_FILE
TZ = ZoneInfo(config.TIMEZONE)

PREFERENCE_LABELS = {
    "reminder": "Напоминания в окне появления",
    "spawn": "Уведомления о спауне",
    "events": "Напоминания о событиях гильдии",
}


def load_admins() -> set[str]:
    if not ADMINS_FILE.exists():
        ADMINS_FILE.write_text("# Список админов\n", encoding="utf-8")
        return set()
    admins = set()
    with open(ADMINS_FILE, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            admins.add(line)
    return admins


def save_admins(admins: set[str]):
    with open(ADMINS_FILE, "w", encoding="utf-8") as f:
        f.write("# Список админов\n")
        for admin in sorted(admins):
            f.write(f"{admin}\n")


def is_admin(user) -> bool:
    admins = load_admins()
    if str(user.id) in admins:
        return True
    if user.username and f"@{user.username}" in admins:
        return True
    return False


def to_ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


def from_ms(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000, TZ)


def format_dt(ms: int | None) -> str:
    if ms is None:
        return "--.--.---- --:--"
    return from_ms(ms).strftime("%d.%m.%Y %H:%M")


def format_remaining(rem: RemainingTime | None, seconds: bool = True) -> str:
    if rem is None:
        return "⏳ Нет активного таймера"
    left = f"{rem.hours}ч {rem.minutes}м"
    if seconds:
        left += f" {rem.seconds}с"
    if rem.phase == Phase.QUIET:
        return f"🕒 Босс не появится ещё {left}"
    return f"🟢 Окно появления открыто, осталось {left}"


def format_timer_text(anchor: int | None, rem: RemainingTime | None, seconds: bool = True) -> str:
    lines = [format_remaining(rem, seconds=seconds)]
    if anchor is not None:
        lines.append(f"Последний спаун: {format_dt(anchor)}")
        lines.append(f"Окно: {format_dt(anchor + QUIET_DURATION)} – {format_dt(anchor + WINDOW_END)}")
    return "\n".join(lines)


def parse_spawn_datetime(s: str, now: datetime | None = None) -> datetime | None:
    """Время спауна: пусто/now = сейчас, HH:MM = сегодня или вчера, DD.MM.YYYY HH:MM = точное."""
    now = now or datetime.now(TZ)
    s = (s or "").strip()
    if not s or s.lower() == "now":
        return now
    m = re.fullmatch(r"(\d{1,2})\.(\d{1,2})\.(\d{4})\s+(\d{1,2}):(\d{2})", s)
    if m:
        d, mo, y, h, mi = (int(g) for g in m.groups())
        try:
            return datetime(y, mo, d, h, mi, tzinfo=TZ)
        except ValueError:
            return None
    m = re.fullmatch(r"(\d{1,2}):(\d{2})", s)
    if m:
        h, mi = int(m.group(1)), int(m.group(2))
        if h > 23 or mi > 59:
            return None
        today = now.replace(hour=h, minute=mi, second=0, microsecond=0)
        if today > now:
            return today - timedelta(days=1)
        return today
    return None


def parse_event_args(s: str) -> tuple[datetime, str] | None:
    """`DD.MM.YYYY HH:MM Название события`"""
    m = re.fullmatch(r"(\d{1,2})\.(\d{1,2})\.(\d{4})\s+(\d{1,2}):(\d{2})\s+(.+)", (s or "").strip())
    if not m:
        return None
    d, mo, y, h, mi = (int(g) for g in m.groups()[:5])
    try:
        return datetime(y, mo, d, h, mi, tzinfo=TZ), m.group(6).strip()
    except ValueError:
        return None


def make_spawn_button() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [InlineKeyboardButton("Босс появился", callback_data="spawn_confirm")]
    ])


def make_confirm_buttons() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [
            InlineKeyboardButton("Босс появился", callback_data="spawn_do"),
            InlineKeyboardButton("Отмена", callback_data="spawn_cancel"),
        ]
    ])


def report_spawn_text(sync: RemoteSpawnSync, spawned_at: int) -> str:
    try:
        ok = sync.report_spawn(spawned_at)
    except StaleSpawnError:
        return (
            f"⚠️ Спаун {format_dt(spawned_at)} старше текущего ({format_dt(sync.state.anchor)}).\n"
            f"Таймер не изменён."
        )
    if not ok:
        return "❌ Не удалось записать спаун в общую базу. Остальные не уведомлены, попробуйте ещё раз."
    return (
        f"✅ Спаун зафиксирован: {format_dt(spawned_at)}\n"
        f"Окно появления: {format_dt(spawned_at + QUIET_DURATION)} – {format_dt(spawned_at + WINDOW_END)}"
    )


async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    help_text = """
🤖 **Таймер спорного босса**

После спауна босс 12 часов не может появиться.
Следующие 12 часов открыто окно появления: напоминание каждый час,
в последний час каждые 15 минут.

━━━━━━━━━━━━━━━━━━━━

⏱ **/timer** — текущий таймер (сообщение обновляется)
⚔️ **/spawn [время]** — босс появился

Примеры:
• `/spawn` — спаун «сейчас»
• `/spawn 17:30` — сегодня/вчера
• `/spawn 02.02.2026 13:59` — точное время

━━━━━━━━━━━━━━━━━━━━

🔔 **/start** / **/stop** — подписка на уведомления в этом чате
⚙️ **/notify [reminder|spawn|events] [on|off]** — настройки уведомлений
📅 **/events** — события гильдии
📊 **/status** — состояние синхронизации и уведомлений

━━━━━━━━━━━━━━━━━━━━

👮 Админы: `/event_add`, `/event_del`, `/clear_alerts`, `/reset`,
`/admin_add`, `/admin_del`, `/admin_list`
"""
    try:
        await update.message.reply_text(help_text, parse_mode="Markdown")
    except Exception as e:
        logger.error(f"Ошибка в cmd_help: {e}", exc_info=True)


async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    subscribers: SubscriberRegistry = context.bot_data["subscribers"]
    if subscribers.add(update.effective_chat.id):
        await update.message.reply_text("🔔 Чат подписан на уведомления о боссе.")
    await cmd_help(update, context)


async def cmd_stop(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    subscribers: SubscriberRegistry = context.bot_data["subscribers"]
    if subscribers.remove(update.effective_chat.id):
        await update.message.reply_text("🔕 Чат отписан от уведомлений.")
    else:
        await update.message.reply_text("Чат не был подписан.")


async def cmd_timer(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    service: TimerService = context.bot_data["service"]
    anchor = service.state.anchor
    text = format_timer_text(anchor, service.remaining(), seconds=False)
    try:
        message = await update.message.reply_text(text, reply_markup=make_spawn_button())
    except TelegramError as e:
        logger.error(f"Ошибка в cmd_timer: {e}", exc_info=True)
        return
    # Живое сообщение: тикер перерисует его при смене минуты
    context.bot_data["live"][update.effective_chat.id] = (message.message_id, text)


async def cmd_spawn(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    sync: RemoteSpawnSync = context.bot_data["sync"]
    args = (update.message.text or "").split(maxsplit=1)
    dt = parse_spawn_datetime(args[1] if len(args) > 1 else "")
    if dt is None:
        await update.message.reply_text("Формат: /spawn [HH:MM] или /spawn DD.MM.YYYY HH:MM")
        return
    spawned_at = to_ms(dt)
    if spawned_at > now_ms():
        await update.message.reply_text("Время спауна не может быть в будущем.")
        return
    await update.message.reply_text(report_spawn_text(sync, spawned_at))


async def callback_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()

    data = query.data

    if data == "spawn_confirm":
        await query.edit_message_reply_markup(reply_markup=make_confirm_buttons())

    elif data == "spawn_do":
        sync: RemoteSpawnSync = context.bot_data["sync"]
        text = report_spawn_text(sync, now_ms())
        await query.edit_message_reply_markup(reply_markup=None)
        await query.message.reply_text(text)

    elif data == "spawn_cancel":
        await query.edit_message_reply_markup(reply_markup=make_spawn_button())


async def cmd_notify(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    service: TimerService = context.bot_data["service"]
    parts = (update.message.text or "").strip().split()

    if len(parts) == 3 and parts[1] in PREFERENCE_KEYS and parts[2].lower() in ("on", "off"):
        enabled = parts[2].lower() == "on"
        service.set_preference(parts[1], enabled)
        await update.message.reply_text(
            f"✅ {PREFERENCE_LABELS[parts[1]]}: {'включены' if enabled else 'выключены'}"
        )
        return
    if len(parts) > 1:
        await update.message.reply_text("Использование: /notify [reminder|spawn|events] [on|off]")
        return

    lines = ["⚙️ **Уведомления:**", ""]
    for name, enabled in service.preferences.as_dict().items():
        lines.append(f"{'✅' if enabled else '❌'} {PREFERENCE_LABELS[name]} (`{name}`)")
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


async def cmd_status(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    service: TimerService = context.bot_data["service"]
    sync: RemoteSpawnSync = context.bot_data["sync"]
    counts = service.pending_counts()
    last_remote = context.bot_data.get("last_remote_spawn")

    text = (
        f"{format_timer_text(service.state.anchor, service.remaining())}\n\n"
        f"📡 Синхронизация: {sync.status.value}\n"
        f"📅 События гильдии: {context.bot_data['event_sync'].status.value}\n"
        f"Последний спаун из ленты: {format_dt(last_remote) if last_remote else '—'}\n\n"
        f"📬 Запланировано уведомлений:\n"
        f"• таймер: {counts[BOSS_TIMER_CHANNEL]}\n"
        f"• спаун: {counts[BOSS_SPAWN_CHANNEL]}\n"
        f"• события: {counts[GUILD_EVENTS_CHANNEL]}\n"
        f"👥 Подписчиков: {len(context.bot_data['subscribers'].all())}"
    )
    await update.message.reply_text(text)


async def cmd_events(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    events: GuildEvents = context.bot_data["events"]
    try:
        upcoming = events.upcoming()
    except RecordStoreError as e:
        logger.error(f"Ошибка в cmd_events: {e}", exc_info=True)
        await update.message.reply_text("❌ Не удалось загрузить события.")
        return
    if not upcoming:
        await update.message.reply_text("Нет предстоящих событий.")
        return
    lines = [f"{format_dt(e['event_date_time'])} | {e['id']} | {e['event_name']}" for e in upcoming]
    await update.message.reply_text("📅 События гильдии:\n" + "\n".join(lines))


async def cmd_event_add(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not is_admin(update.effective_user):
        await update.message.reply_text("⛔ Недостаточно прав")
        return

    args = (update.message.text or "").split(maxsplit=1)
    parsed = parse_event_args(args[1] if len(args) > 1 else "")
    if parsed is None:
        await update.message.reply_text("Использование: /event_add DD.MM.YYYY HH:MM Название")
        return
    dt, name = parsed

    events: GuildEvents = context.bot_data["events"]
    service: TimerService = context.bot_data["service"]
    try:
        event = events.add(name, to_ms(dt))
    except ValueError as e:
        await update.message.reply_text(f"❌ {e}")
        return
    except RecordStoreError as e:
        logger.error(f"Ошибка в cmd_event_add: {e}", exc_info=True)
        await update.message.reply_text("❌ Не удалось сохранить событие.")
        return

    service.refresh_event_alerts()
    await update.message.reply_text(
        f"✅ Событие [{event['id']}] {event['event_name']}: {format_dt(event['event_date_time'])}\n"
        f"Напоминание: {format_dt(event['event_date_time'] - HOUR)}"
    )


async def cmd_event_del(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not is_admin(update.effective_user):
        await update.message.reply_text("⛔ Недостаточно прав")
        return

    parts = (update.message.text or "").strip().split()
    if len(parts) < 2:
        await update.message.reply_text("Использование: /event_del <id>")
        return
    try:
        event_id = int(parts[1])
    except ValueError:
        await update.message.reply_text("ID должен быть числом.")
        return

    events: GuildEvents = context.bot_data["events"]
    service: TimerService = context.bot_data["service"]
    try:
        events.delete(event_id)
    except RecordStoreError as e:
        logger.warning(f"Не удалось удалить событие {event_id}: {e}")
        await update.message.reply_text("Событие не найдено.")
        return

    service.refresh_event_alerts()
    await update.message.reply_text(f"✅ Событие [{event_id}] удалено.")


async def cmd_clear_alerts(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not is_admin(update.effective_user):
        await update.message.reply_text("⛔ Недостаточно прав")
        return
    service: TimerService = context.bot_data["service"]
    removed = service.clear_alerts()
    await update.message.reply_text(f"✅ Снято уведомлений: {removed}")


async def cmd_reset(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not is_admin(update.effective_user):
        await update.message.reply_text("⛔ Недостаточно прав")
        return
    service: TimerService = context.bot_data["service"]
    service.reset()
    await update.message.reply_text("✅ Настройки, таймер и все уведомления сброшены.")


async def cmd_admin_list(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not is_admin(update.effective_user):
        await update.message.reply_text("⛔ Недостаточно прав")
        return

    admins = load_admins()
    if not admins:
        await update.message.reply_text("Список админов пуст.")
        return

    admin_lines = []
    for admin in sorted(admins):
        escaped = admin.replace("_", "\\_").replace("*", "\\*").replace("[", "\\[").replace("`", "\\`")
        admin_lines.append(f"• {escaped}")

    text = "👮 **Список админов:**\n\n" + "\n".join(admin_lines)
    await update.message.reply_text(text, parse_mode="Markdown")


async def cmd_admin_add(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not is_admin(update.effective_user):
        await update.message.reply_text("⛔ Недостаточно прав")
        return

    parts = (update.message.text or "").strip().split()
    if len(parts) < 2:
        await update.message.reply_text("Использование: /admin_add @username")
        return

    new_admin = parts[1]
    admins = load_admins()
    if new_admin in admins:
        await update.message.reply_text(f"{new_admin} уже является админом.")
        return

    admins.add(new_admin)
    save_admins(admins)
    await update.message.reply_text(f"✅ {new_admin} добавлен в админы.")


async def cmd_admin_del(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not is_admin(update.effective_user):
        await update.message.reply_text("⛔ Недостаточно прав")
        return

    parts = (update.message.text or "").strip().split()
    if len(parts) < 2:
        await update.message.reply_text("Использование: /admin_del @username")
        return

    del_admin = parts[1]
    admins = load_admins()
    if del_admin not in admins:
        await update.message.reply_text(f"{del_admin} не найден в админах.")
        return

    admins.remove(del_admin)
    save_admins(admins)
    await update.message.reply_text(f"✅ {del_admin} удалён из админов.")


def make_live_updater(app: Application, service: TimerService):
    """Слушатель тика: перерисовывает живые сообщения /timer, когда меняется текст."""

    async def update_live(rem: RemainingTime | None) -> None:
        live: dict[int, tuple[int, str]] = app.bot_data["live"]
        text = format_timer_text(service.state.anchor, rem, seconds=False)
        for chat_id, (message_id, last_text) in list(live.items()):
            if text == last_text:
                continue
            try:
                await app.bot.edit_message_text(text, chat_id=chat_id, message_id=message_id,
                                                reply_markup=make_spawn_button())
                live[chat_id] = (message_id, text)
            except BadRequest as e:
                if "not modified" in str(e).lower():
                    live[chat_id] = (message_id, text)
                    continue
                logger.warning(f"Живое сообщение в {chat_id} недоступно: {e}")
                live.pop(chat_id, None)
            except TelegramError as e:
                logger.error(f"Не удалось обновить таймер в {chat_id}: {e}")

    return update_live


async def post_init(app: Application) -> None:
    ensure_db_exists()

    kv = SqlKeyValueStore(LocalSession)
    subscribers = SubscriberRegistry(LocalSession)
    records = SqlRecordStore(RemoteSession)

    state = SpawnStateStore(kv)
    state.load()

    notifier = JobQueueNotifier(
        app.job_queue, subscribers,
        channels=(BOSS_TIMER_CHANNEL, BOSS_SPAWN_CHANNEL, GUILD_EVENTS_CHANNEL),
    )
    events = GuildEvents(records)
    service = TimerService(state, AlertScheduler(notifier), NotificationPreferences(kv), events, kv)
    feed = PollingChangeFeed(app.job_queue, records, SPAWN_TABLE, interval=config.FEED_POLL_SECONDS)
    sync = RemoteSpawnSync(state, records, feed, service)
    event_sync = GuildEventSync(
        PollingChangeFeed(app.job_queue, records, EVENTS_TABLE, interval=config.FEED_POLL_SECONDS), service,
    )
    ticker = Ticker(app.job_queue, state)
    ticker.add_listener(make_live_updater(app, service))

    def remember_remote_spawn(spawned_at: int) -> None:
        app.bot_data["last_remote_spawn"] = spawned_at

    sync.on_spawn(remember_remote_spawn)

    app.bot_data.update(
        service=service,
        sync=sync,
        event_sync=event_sync,
        ticker=ticker,
        events=events,
        subscribers=subscribers,
        live={},
    )

    sync.start()
    event_sync.start()
    ticker.refresh()
    logger.info(f"Таймер запущен, последний спаун: {format_dt(state.anchor)}")


async def post_shutdown(app: Application) -> None:
    sync: RemoteSpawnSync | None = app.bot_data.get("sync")
    if sync:
        sync.stop()
    event_sync: GuildEventSync | None = app.bot_data.get("event_sync")
    if event_sync:
        event_sync.stop()
    ticker: Ticker | None = app.bot_data.get("ticker")
    if ticker:
        ticker.stop()


def main() -> None:
    if not config.BOT_TOKEN:
        raise SystemExit("❌ Задайте BOT_TOKEN в файле .env")

    app = (
        Application.builder()
        .token(config.BOT_TOKEN)
        .post_init(post_init)
        .post_shutdown(post_shutdown)
        .build()
    )
    if app.job_queue is None:
        raise SystemExit("❌ Нужен python-telegram-bot[job-queue]")

    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("stop", cmd_stop))
    app.add_handler(CommandHandler("timer", cmd_timer))
    app.add_handler(CommandHandler("spawn", cmd_spawn))
    app.add_handler(CommandHandler("notify", cmd_notify))
    app.add_handler(CommandHandler("status", cmd_status))
    app.add_handler(CommandHandler("events", cmd_events))
    app.add_handler(CommandHandler("event_add", cmd_event_add))
    app.add_handler(CommandHandler("event_del", cmd_event_del))
    app.add_handler(CommandHandler("clear_alerts", cmd_clear_alerts))
    app.add_handler(CommandHandler("reset", cmd_reset))
    app.add_handler(CommandHandler("admin_add", cmd_admin_add))
    app.add_handler(CommandHandler("admin_del", cmd_admin_del))
    app.add_handler(CommandHandler("admin_list", cmd_admin_list))

    app.add_handler(CallbackQueryHandler(callback_handler))

    logger.info("✅ Бот запущен. Токен из .env, админы из admins.txt")

    # Graceful shutdown при Ctrl+C
    def signal_handler(sig, frame):
        logger.info("⚠️ Получен сигнал остановки. Завершаю работу...")
        try:
            app.stop_running()
        except RuntimeError as e:
            logger.warning(f"Остановка: {e}")
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        app.run_polling(allowed_updates=Update.ALL_TYPES, drop_pending_updates=True)
    except KeyboardInterrupt:
        logger.info("⚠️ Остановка бота по Ctrl+C...")
    except Exception as e:
        logger.error(f"❌ Критическая ошибка: {e}", exc_info=True)
        raise
    finally:
        logger.info("👋 Бот остановлен")


if __name__ == "__main__":
    main()
