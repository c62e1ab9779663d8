import argparse
import asyncio
import signal
import sys
from pathlib import Path

import services.error  # installs global uncaught-exception hook
import services.logger as log
import services.util as u
import services.config_io as config_io
import services.media as media
from services.config import ConfigError, load_settings
from services.config_schema import AppConfig
from services.db import PeerDB
from services.error import RelayBaseError
from services.pool import RelayPool, SlotLimiter
from services.relay import Dispatcher, RelayWorker
from services.storage import URL_EXPIRY, ObjectStore

l = log.get_logger()


def cmd_convert(src: str, dst: str) -> int:
    src_path = Path(src)
    dst_path = Path(dst)

    if not src_path.is_file():
        print(f"Error: source file not found: {src_path}", file=sys.stderr)
        return 1

    try:
        data = config_io.load_config(src_path)
    except Exception as e:
        print(f"Error reading {src_path}: {e}", file=sys.stderr)
        return 1

    try:
        config_io.save_config(data, dst_path)
    except Exception as e:
        print(f"Error writing {dst_path}: {e}", file=sys.stderr)
        return 1

    print(f"Converted {src_path} → {dst_path}")
    return 0


def cmd_store(args: argparse.Namespace) -> int:
    """Operator access to the bucket: url / ls / stat / rm."""
    try:
        cfg = load_settings()
        log.register_sensitive(cfg.sensitive_values())
        store = ObjectStore.from_config(cfg.storage)

        if args.command == "url":
            print(store.get_file_url(args.key, args.expiry))
        elif args.command == "ls":
            for obj in store.list_files(args.prefix):
                print(f"{obj.size:>12}  {obj.key}")
        elif args.command == "stat":
            info = store.get_object_info(args.key)
            print(f"key:           {info.key}")
            print(f"size:          {info.size}")
            print(f"content-type:  {info.content_type}")
            print(f"etag:          {info.etag}")
            print(f"last-modified: {info.last_modified}")
        elif args.command == "rm":
            store.delete_file(args.key)
            print(f"Deleted {args.key}")
    except (ConfigError, RelayBaseError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


async def main(cfg: AppConfig) -> None:
    # python-telegram-bot is only needed by the run command
    from drivers.telegram import TelegramDriver

    log.register_sensitive(cfg.sensitive_values())

    try:
        asyncio.get_running_loop().add_signal_handler(signal.SIGTERM, asyncio.current_task().cancel)
    except NotImplementedError:
        pass  # Windows

    if not cfg.telegram.bot_token:
        raise ConfigError("telegram.bot_token (TG_BOT_TOKEN) is required")

    peers = PeerDB()
    store = await asyncio.to_thread(ObjectStore.from_config, cfg.storage)
    l.info(f"Object store ready, bucket '{store.bucket}'")

    driver = TelegramDriver(cfg.telegram, peers)

    media_dir = Path(cfg.relay.media_dir) if cfg.relay.media_dir else Path(u.get_data_path()) / "media"
    fetcher = media.MediaFetcher(
        driver.bot,
        media_dir,
        timeout=cfg.relay.download_timeout,
        local_mode=cfg.telegram.local_mode,
    )
    fetcher.ensure_media_dir()

    if cfg.relay.send_info_uploaded and not cfg.telegram.notify_chat_id:
        l.warning("send_info_uploaded is on but telegram.notify_chat_id is empty; confirmations disabled")

    pool = RelayPool(SlotLimiter(cfg.relay.worker_pool))
    worker = RelayWorker(
        fetcher,
        store,
        notify=driver.send_self if cfg.telegram.notify_chat_id else None,
        auto_remove_media=cfg.relay.auto_remove_media,
        send_info_uploaded=cfg.relay.send_info_uploaded,
    )
    dispatcher = Dispatcher(peers.resolve, pool, worker, cfg.relay.user_target)
    driver.set_handler(dispatcher.on_event)

    targets = ", ".join(dispatcher.targets) or "everyone"
    l.info(f"Relaying media from: {targets} (worker pool: {pool.capacity})")

    try:
        await driver.start()
    finally:
        if pool.in_flight:
            l.info(f"Abandoning {pool.in_flight} in-flight upload(s)")
        await pool.cancel()
        await media.close_session()
        peers.close()


def cmd_run() -> int:
    try:
        cfg = load_settings()
    except ConfigError as e:
        print(f"Application error: {e}", file=sys.stderr)
        return 1

    l.info("Relay starting…")
    try:
        asyncio.run(main(cfg))
    except (KeyboardInterrupt, asyncio.CancelledError):
        l.info("Application stopped")
        return 0
    except Exception as e:
        l.critical(f"Application error: {e}")
        return 1
    l.info("Application stopped")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="teleminio-relay", description="Relay Telegram media to S3-compatible storage")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Listen for messages and relay media (default)")

    conv = subparsers.add_parser("convert", help="Convert a config file between formats (json/yaml/toml)")
    conv.add_argument("src", help="Source config file (e.g. config.json)")
    conv.add_argument("dst", help="Destination config file (e.g. config.yaml)")

    url = subparsers.add_parser("url", help="Issue a presigned URL for a stored object")
    url.add_argument("key")
    url.add_argument("--expiry", type=int, default=URL_EXPIRY, help="Validity in seconds (default: 7 days)")

    ls = subparsers.add_parser("ls", help="List stored objects")
    ls.add_argument("prefix", nargs="?", default="")

    stat = subparsers.add_parser("stat", help="Show metadata of a stored object")
    stat.add_argument("key")

    rm = subparsers.add_parser("rm", help="Delete a stored object")
    rm.add_argument("key")

    return parser


def cli(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "convert":
        return cmd_convert(args.src, args.dst)
    if args.command in ("url", "ls", "stat", "rm"):
        return cmd_store(args)
    return cmd_run()


if __name__ == "__main__":
    sys.exit(cli())
