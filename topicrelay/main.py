"""Relay entrypoint."""

from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import threading
from typing import Any, Sequence

from topicrelay.chat.contracts import ChatEndpointError
from topicrelay.chat.matrix import MatrixChatEndpoint
from topicrelay.config import RelayConfig, RelayConfigError, load_env, load_relay_config
from topicrelay.dispatcher import Dispatcher
from topicrelay.messages import RelayMessage
from topicrelay.outbox import Outbox
from topicrelay.supervisor import RelaySupervisor

logger = logging.getLogger(__name__)

EXIT_CONFIG_ERROR = 2
EXIT_SEND_FAILED = 1


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    env_error: RelayConfigError | None = None
    try:
        load_env(args.env_file)
    except RelayConfigError as exc:
        env_error = exc
    _configure_logging(args.log_level or os.getenv("TOPICRELAY_LOG_LEVEL", "INFO"))
    if env_error is not None:
        return _report_config_error(env_error)

    try:
        config = load_relay_config()
    except RelayConfigError as exc:
        return _report_config_error(exc)

    if args.command == "check":
        _command_check(config)
        return 0
    if args.command == "send":
        return _command_send(config, args.text)
    return _command_run(config)


def _report_config_error(exc: RelayConfigError) -> int:
    for problem in exc.problems:
        logger.error("Configuration error: %s", problem)
    return EXIT_CONFIG_ERROR


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="topicrelay")
    parser.add_argument("--env-file", default=None, help="Path to a .env file")
    parser.add_argument("--log-level", default=None)
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("run", help="Relay broker topics into the chat room until interrupted")
    sub.add_parser("check", help="Validate configuration and print a summary")
    send_parser = sub.add_parser("send", help="Post a single message to the chat room")
    send_parser.add_argument("text", help="Message text")
    return parser


def _command_run(config: RelayConfig) -> int:
    supervisor = RelaySupervisor(config)
    shutdown = threading.Event()

    def _request_stop(signum: int, _frame: Any) -> None:
        logger.info("Shutdown requested signal=%s", signum)
        shutdown.set()

    signal.signal(signal.SIGTERM, _request_stop)
    supervisor.start()
    try:
        while supervisor.is_running and not shutdown.is_set():
            shutdown.wait(1.0)
    except KeyboardInterrupt:
        logger.info("Shutdown requested (KeyboardInterrupt).")
    finally:
        supervisor.stop()
    return 0


def _command_check(config: RelayConfig) -> None:
    print(f"chat server: {config.chat_base_url}")
    print(f"chat user: {config.chat_user}")
    print(f"chat channel: {config.chat_channel}")
    for queue in config.queues:
        print(
            f"queue {queue.name}: {queue.queue_kind.value} {queue.queue_address} "
            f"@ {queue.broker_host}:{queue.broker_port} tls={queue.broker_tls}"
        )


def _command_send(config: RelayConfig, text: str) -> int:
    endpoint = MatrixChatEndpoint(
        config.chat_base_url,
        timeout_sec=config.timings.chat_request_timeout_sec,
    )
    dispatcher = Dispatcher(config, endpoint=endpoint, outbox=Outbox(), stop_event=threading.Event())
    try:
        session = dispatcher.send_once(RelayMessage.plain(text))
    except ChatEndpointError as exc:
        logger.error("Send failed: %s", exc)
        return EXIT_SEND_FAILED
    logger.info("Sent message room_id=%s", session.room_id)
    return 0


def _configure_logging(level_name: str) -> None:
    logging.basicConfig(
        level=getattr(logging, str(level_name).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s",
    )


if __name__ == "__main__":
    sys.exit(main())
