"""Inbound command handling for the node command topic."""

import logging
import os
import sys
from typing import Callable

logger = logging.getLogger(__name__)

COMMAND_STATUS = "status"
COMMAND_RESTART = "restart"


def restart_process() -> None:
    """Replace the current process with the interpreter's original command line."""
    logger.warning("Перезапуск процесу за командою")
    logging.shutdown()
    # orig_argv keeps "-m microclaw.main"; argv[0] would be the bare main.py path
    os.execv(sys.executable, sys.orig_argv)


class CommandHandler:
    def __init__(
        self,
        command_topic: str,
        publish_status: Callable[[], bool],
        restart: Callable[[], None] = restart_process,
    ):
        self.command_topic = command_topic
        self.publish_status = publish_status
        self.restart = restart

    def handle(self, topic: str, payload: bytes) -> None:
        if topic != self.command_topic:
            logger.debug("Ігнорую повідомлення з теми %s", topic)
            return

        try:
            command = payload.decode("utf-8").strip()
        except UnicodeDecodeError:
            logger.warning("Неочікуваний MQTT payload у темі %s", topic)
            return

        logger.info("Отримано команду '%s'", command)
        if command == COMMAND_STATUS:
            self.publish_status()
        elif command == COMMAND_RESTART:
            self.restart()
        else:
            logger.info("Невідома команда '%s', пропускаю", command)
