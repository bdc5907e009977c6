"""
telegram_bot.py — Christmas Baby Collage Telegram Bot

Conversation flow:
  /start
    → PHOTOS      (send 3–10 photos, as pictures or image files)
    → /generate   (async pipeline, progress message edited as portraits finish)
    → DONE        (collage PNG sent as a document)

Commands:
  /start    — start a new collage
  /generate — build the collage from the photos sent so far
  /reset    — clear photos and results, start over
  /cancel   — leave the conversation
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import List, Optional

from telegram import Document, PhotoSize, Update
from telegram.constants import ChatAction, ParseMode
from telegram.ext import (
    Application,
    CommandHandler,
    ContextTypes,
    ConversationHandler,
    MessageHandler,
    filters,
)

from christmas_collage.config import load_settings
from christmas_collage.credentials import API_KEY_ENV, StaticCredentialProvider
from christmas_collage.errors import UploadError
from christmas_collage.models import RawPhoto
from christmas_collage.scenarios import SCENARIO_COUNT
from christmas_collage.session import MAX_PHOTOS, MIN_PHOTOS, CollageSession, build_session, check_upload_count

from .pipeline_runner import CollageResult, CollageRunner

# ── Logging ───────────────────────────────────────────────────────────────────

logger = logging.getLogger(__name__)

# ── Conversation states ───────────────────────────────────────────────────────

PHOTOS = 0

# ── Context keys ──────────────────────────────────────────────────────────────

SESSION_KEY = "session"
PHOTOS_KEY = "photos"
RUNNING_KEY = "running"


# ── Helpers ───────────────────────────────────────────────────────────────────

def escape_md(text: str) -> str:
    """Escape special chars for Telegram MarkdownV2."""
    special = r"\_*[]()~`>#+-=|{}.!"
    return "".join(f"\\{c}" if c in special else c for c in text)


def progress_text(completed: int, total: int = SCENARIO_COUNT) -> str:
    """Progress message body, e.g. '❄️❄️❄️▫️▫️… 30% Magic Sprinkled'."""
    percent = round(completed * 100 / total)
    bar = "❄️" * completed + "▫️" * (total - completed)
    return escape_md(f"⏳ Building a snowman... {percent}% Magic Sprinkled\n{bar}")


def get_session(context: ContextTypes.DEFAULT_TYPE) -> CollageSession:
    if SESSION_KEY not in context.user_data:
        credentials = StaticCredentialProvider(os.environ.get(API_KEY_ENV, "").strip() or None)
        context.user_data[SESSION_KEY] = build_session(load_settings(), credentials)
    return context.user_data[SESSION_KEY]


def get_photos(context: ContextTypes.DEFAULT_TYPE) -> List[RawPhoto]:
    return context.user_data.setdefault(PHOTOS_KEY, [])


def reset_collage(context: ContextTypes.DEFAULT_TYPE) -> None:
    context.user_data[PHOTOS_KEY] = []
    session = context.user_data.get(SESSION_KEY)
    if session is not None:
        session.reset()


async def safe_edit(context: ContextTypes.DEFAULT_TYPE, chat_id: int, msg_id: int, text: str) -> None:
    """Edit a message; failures (e.g. 'message not modified') are only logged."""
    try:
        await context.bot.edit_message_text(
            chat_id=chat_id,
            message_id=msg_id,
            text=text,
            parse_mode=ParseMode.MARKDOWN_V2,
        )
    except Exception as e:
        logger.debug("edit_message_text skipped: %s", e)


async def _download_photo(update: Update, context: ContextTypes.DEFAULT_TYPE, idx: int) -> Optional[RawPhoto]:
    """Download a photo or document-image from the current message."""
    if update.message.photo:
        photo: PhotoSize = update.message.photo[-1]
        file = await context.bot.get_file(photo.file_id)
        data = await file.download_as_bytearray()
        return RawPhoto(name=f"photo_{idx:02d}.jpg", data=bytes(data), media_type="image/jpeg")

    if update.message.document:
        doc: Document = update.message.document
        file = await context.bot.get_file(doc.file_id)
        data = await file.download_as_bytearray()
        name = doc.file_name or f"photo_{idx:02d}.jpg"
        return RawPhoto(name=name, data=bytes(data), media_type=doc.mime_type or "")

    return None


# ── Commands ──────────────────────────────────────────────────────────────────

async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    reset_collage(context)
    await update.message.reply_text(
        escape_md(
            "🎄 Welcome to Christmas Baby Magic!\n\n"
            f"Send me {MIN_PHOTOS} to {MAX_PHOTOS} photos of your little one. "
            "Clear faces and bright smiles work best!\n\n"
            "When you're done, tap /generate."
        ),
        parse_mode=ParseMode.MARKDOWN_V2,
    )
    return PHOTOS


async def cmd_reset(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    if context.user_data.get(RUNNING_KEY):
        await update.message.reply_text(escape_md("⏳ Still painting, please wait for the current collage."),
                                        parse_mode=ParseMode.MARKDOWN_V2)
        return PHOTOS
    reset_collage(context)
    await update.message.reply_text(
        escape_md(f"🔄 Cleared. Send {MIN_PHOTOS} to {MAX_PHOTOS} new photos to start over."),
        parse_mode=ParseMode.MARKDOWN_V2,
    )
    return PHOTOS


async def cmd_cancel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    reset_collage(context)
    await update.message.reply_text(
        escape_md("👋 Cancelled. Type /start to begin again."),
        parse_mode=ParseMode.MARKDOWN_V2,
    )
    return ConversationHandler.END


# ── Photos ────────────────────────────────────────────────────────────────────

async def step_photo(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    photos = get_photos(context)
    if len(photos) >= MAX_PHOTOS:
        await update.message.reply_text(
            escape_md(f"That's {MAX_PHOTOS} photos already, the maximum. Tap /generate."),
            parse_mode=ParseMode.MARKDOWN_V2,
        )
        return PHOTOS

    photo = await _download_photo(update, context, len(photos) + 1)
    if photo is None:
        return PHOTOS
    photos.append(photo)

    if len(photos) < MIN_PHOTOS:
        hint = f"Send at least {MIN_PHOTOS - len(photos)} more."
    else:
        hint = "Send more or tap /generate."
    await update.message.reply_text(
        escape_md(f"📸 {len(photos)}/{MAX_PHOTOS} photos. {hint}"),
        parse_mode=ParseMode.MARKDOWN_V2,
    )
    return PHOTOS


# ── Generate ──────────────────────────────────────────────────────────────────

async def cmd_generate(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    if context.user_data.get(RUNNING_KEY):
        await update.message.reply_text(escape_md("⏳ Already painting your portraits!"),
                                        parse_mode=ParseMode.MARKDOWN_V2)
        return PHOTOS

    photos = list(get_photos(context))
    try:
        check_upload_count(len(photos))
    except UploadError as e:
        await update.message.reply_text(f"⚠️ {escape_md(str(e))}", parse_mode=ParseMode.MARKDOWN_V2)
        return PHOTOS

    session = get_session(context)
    if not session.credentials.has_credential():
        await update.message.reply_text(
            escape_md(f"❌ {API_KEY_ENV} is not set. The collage cannot be generated."),
            parse_mode=ParseMode.MARKDOWN_V2,
        )
        return PHOTOS

    session.reset()
    await update.effective_chat.send_action(ChatAction.UPLOAD_PHOTO)
    progress_msg = await update.message.reply_text(progress_text(0), parse_mode=ParseMode.MARKDOWN_V2)

    context.user_data[RUNNING_KEY] = True
    # Tracked by the application; exceptions go to error_handler.
    context.application.create_task(
        _run_collage_and_respond(
            context=context,
            chat_id=update.effective_chat.id,
            progress_msg_id=progress_msg.message_id,
            runner=CollageRunner(session, output_root=load_settings().output_dir),
            photos=photos,
        ),
        update=update,
    )
    return ConversationHandler.END


async def _run_collage_and_respond(
    context: ContextTypes.DEFAULT_TYPE,
    chat_id: int,
    progress_msg_id: int,
    runner: CollageRunner,
    photos: List[RawPhoto],
) -> None:
    """Run the pipeline, edit the progress message, deliver the collage."""
    loop = asyncio.get_running_loop()

    def on_progress(count: int) -> None:
        """Sync callback from the worker thread → schedule async edit."""
        asyncio.run_coroutine_threadsafe(
            safe_edit(context, chat_id, progress_msg_id, progress_text(count)),
            loop,
        )

    try:
        result = await runner.run(photos, on_progress=on_progress)
    finally:
        context.user_data[RUNNING_KEY] = False
        context.user_data[PHOTOS_KEY] = []

    await _deliver(context, chat_id, progress_msg_id, result)


async def _deliver(
    context: ContextTypes.DEFAULT_TYPE,
    chat_id: int,
    progress_msg_id: int,
    result: CollageResult,
) -> None:
    if not result.success:
        await safe_edit(
            context, chat_id, progress_msg_id,
            escape_md(f"🌨️ Brrr, it's cold! The holiday magic hit a snag:\n{result.error[:500]}\n\n"
                      "Send /start to try again."),
        )
        return

    mins, secs = int(result.elapsed_seconds // 60), int(result.elapsed_seconds % 60)
    await safe_edit(
        context, chat_id, progress_msg_id,
        escape_md(f"✅ Done! {mins}m {secs}s. Wrapping your gift..."),
    )

    if result.skipped_files:
        await context.bot.send_message(
            chat_id=chat_id,
            text=escape_md("⚠️ Skipped unreadable files: " + ", ".join(result.skipped_files)),
            parse_mode=ParseMode.MARKDOWN_V2,
        )

    with open(result.collage_path, "rb") as f:
        await context.bot.send_document(
            chat_id=chat_id,
            document=f,
            filename=result.collage_path.name,
            caption=f"🎁 Your Christmas keepsake ({result.succeeded_count}/{len(result.images)} portraits)",
        )
    await context.bot.send_message(chat_id=chat_id, text="Send /start to make another one 🎄")


# ── Error handler ─────────────────────────────────────────────────────────────

async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    logger.error("Exception while handling update:", exc_info=context.error)
    if isinstance(update, Update) and update.effective_message:
        await update.effective_message.reply_text(
            escape_md("⚠️ Something went wrong. Type /reset to try again."),
            parse_mode=ParseMode.MARKDOWN_V2,
        )


# ── App builder ───────────────────────────────────────────────────────────────

def build_app(token: str) -> Application:
    app = Application.builder().token(token).build()

    conv = ConversationHandler(
        entry_points=[
            CommandHandler("start", cmd_start),
            CommandHandler("new", cmd_start),
            CommandHandler("reset", cmd_reset),
        ],
        states={
            PHOTOS: [
                # Accept compressed photos AND images sent as files
                MessageHandler(filters.PHOTO, step_photo),
                MessageHandler(filters.Document.IMAGE, step_photo),
                CommandHandler("generate", cmd_generate),
            ],
        },
        fallbacks=[
            CommandHandler("cancel", cmd_cancel),
            CommandHandler("reset", cmd_reset),
        ],
        allow_reentry=True,
        conversation_timeout=1800,  # 30 min timeout
    )

    app.add_handler(conv)
    app.add_error_handler(error_handler)
    return app
