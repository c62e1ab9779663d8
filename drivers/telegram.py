# Telegram message source via python-telegram-bot (v20+).
# Long-polls for messages and turns each one into an InboundEvent.
#
# Config keys (under telegram):
#   bot_token       – Telegram bot token from @BotFather (required)
#   notify_chat_id  – chat that receives "File uploaded to ..." confirmations
#   api_base_url    – self-hosted Bot API server (e.g. "http://127.0.0.1:8081");
#                     the public server refuses downloads above 20 MB
#   local_mode      – the self-hosted server shares its filesystem with us
#
# Updates are handled one at a time (the Application default), so a
# saturated relay pool holds back polling until a slot frees up.

import asyncio

from telegram import Message, Update
from telegram.ext import Application, ContextTypes, MessageHandler, filters

import services.logger as log
from drivers import BaseDriver
from services.config_schema import TelegramConfig
from services.db import PeerDB
from services.error import IdentityError
from services.message import InboundEvent, MediaRef

l = log.get_logger()

# Catch all non-command message types that may carry content
_CONTENT_FILTER = (
    filters.TEXT
    | filters.PHOTO
    | filters.VIDEO
    | filters.VIDEO_NOTE
    | filters.VOICE
    | filters.AUDIO
    | filters.Document.ALL
    | filters.ANIMATION
) & ~filters.COMMAND


def media_ref(msg: Message) -> MediaRef | None:
    """Pick the attachment of *msg*, if any. Photos use the largest size."""
    if msg.photo:
        largest = max(msg.photo, key=lambda p: p.width * p.height)
        return MediaRef(largest.file_id, "photo", file_size=largest.file_size or -1)
    if msg.animation:
        a = msg.animation
        return MediaRef(a.file_id, "animation", a.file_name or "", a.file_size or -1, a.mime_type or "")
    if msg.video:
        v = msg.video
        return MediaRef(v.file_id, "video", v.file_name or "", v.file_size or -1, v.mime_type or "")
    if msg.video_note:
        return MediaRef(msg.video_note.file_id, "video_note", file_size=msg.video_note.file_size or -1)
    if msg.voice:
        v = msg.voice
        return MediaRef(v.file_id, "voice", file_size=v.file_size or -1, mime_type=v.mime_type or "")
    if msg.audio:
        a = msg.audio
        return MediaRef(a.file_id, "audio", a.file_name or "", a.file_size or -1, a.mime_type or "")
    if msg.document:
        d = msg.document
        return MediaRef(d.file_id, "document", d.file_name or "", d.file_size or -1, d.mime_type or "")
    return None


class TelegramDriver(BaseDriver[TelegramConfig]):

    def __init__(self, config: TelegramConfig, peers: PeerDB):
        super().__init__(config)
        self.peers = peers
        self._app: Application = self._build_app()

    def _build_app(self) -> Application:
        builder = Application.builder().token(self.config.bot_token)
        if self.config.api_base_url:
            base = self.config.api_base_url.rstrip("/")
            builder = builder.base_url(f"{base}/bot").base_file_url(f"{base}/file/bot")
        if self.config.local_mode:
            builder = builder.local_mode(True)
        app = builder.build()
        app.add_handler(MessageHandler(_CONTENT_FILTER, self._on_message))
        return app

    @property
    def bot(self):
        return self._app.bot

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self):
        # async-with handles initialize() / shutdown() automatically
        async with self._app:
            me = self._app.bot
            name = me.first_name
            if me.username:
                name = f"{name} (@{me.username})"
            l.info(f"Current user: {name}")

            await self._app.start()
            await self._app.updater.start_polling(allowed_updates=[Update.MESSAGE])
            l.info("Listening for updates. Interrupt (Ctrl+C) to stop.")
            try:
                await asyncio.Event().wait()  # keep running until cancelled
            finally:
                await self._app.updater.stop()
                await self._app.stop()

    # ------------------------------------------------------------------
    # Receive
    # ------------------------------------------------------------------

    def to_event(self, msg: Message) -> InboundEvent:
        from_user = msg.from_user
        if from_user is not None:
            sender_id = str(from_user.id)
            self.peers.save_peer(sender_id, from_user.username or "", from_user.full_name or "")
            sender_name = from_user.username or from_user.full_name or sender_id
        else:
            # Channel posts and anonymous admins: nothing to resolve against
            sender_id = str(msg.chat_id)
            sender_name = ""

        return InboundEvent(
            sender_id=sender_id,
            sender_name=sender_name,
            # Media messages use caption instead of text
            text=msg.text or msg.caption or "",
            media=media_ref(msg),
        )

    async def _on_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        msg = update.message
        if not msg or self.handler is None:
            return

        event = self.to_event(msg)
        try:
            await self.handler(event)
        except IdentityError as e:
            l.error(f"Dropped message: {e}")
        except Exception as e:
            l.error(f"Failed to handle message from {event.sender_id}: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Send
    # ------------------------------------------------------------------

    async def send_self(self, text: str):
        chat_id = self.config.notify_chat_id
        if not chat_id:
            raise RuntimeError("telegram.notify_chat_id is not configured")
        await self._app.bot.send_message(chat_id=int(chat_id), text=text)
