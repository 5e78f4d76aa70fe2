"""Main entry point for the mail notification agent."""

import argparse
import logging
import os
import sys

from .config import load_config, load_env
from .exceptions import PersistenceError, StoreLoadError
from .poller import MailboxPoller
from .store import SeenStore
from .supervisor import ConnectionSupervisor
from .telegram_notifier import TelegramNotifier

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)]
    )


def run(args: argparse.Namespace) -> int:
    """
    Start the agent.

    Returns:
        Process exit code.
    """
    try:
        config = load_config(args.env_file)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    logger.info(f"Loading seen-set from {config.db_path}...")
    try:
        store = SeenStore.load(config.db_path)
    except (StoreLoadError, PersistenceError) as e:
        logger.error(f"Cannot initialize seen-set: {e}")
        return 1

    if args.reset_seen:
        logger.info("Clearing all seen UIDs...")
        try:
            store.clear()
        except PersistenceError as e:
            logger.error(f"Cannot clear seen-set: {e}")
            return 1

    notifier = TelegramNotifier(config.telegram)
    poller = MailboxPoller(config.poller, store, notifier)
    supervisor = ConnectionSupervisor(config.email, config.supervisor, poller)

    if args.once:
        supervisor.run(max_cycles=1, listen=False)
        if supervisor.last_sweep is None:
            logger.error("Sweep did not complete")
            return 1
        return 0

    try:
        supervisor.run()
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down.")
    return 0


def main():
    """Main entry point with command-line argument parsing."""
    parser = argparse.ArgumentParser(
        description="Watch an IMAP mailbox and forward new mail to a Telegram chat"
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single sweep of unseen mail and exit instead of listening"
    )
    parser.add_argument(
        "--reset-seen",
        action="store_true",
        help="Clear the seen-set before starting (previously forwarded mail may be sent again)"
    )
    parser.add_argument(
        "--env-file",
        type=str,
        default=None,
        help="Path to a .env file (default: search for .env from the working directory)"
    )

    args = parser.parse_args()
    load_env(args.env_file)
    _configure_logging()
    sys.exit(run(args))


if __name__ == "__main__":
    main()
