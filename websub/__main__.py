"""Command line interface to a WebSub subscriber."""

import argparse
import json
import logging
import sys

from .agent import HubClient, RequestFailed, discover_hubs
from .config import load_config
from .notifier import HubNotifier
from .response import ConfigurationError
from .server import CallbackApplication, serve
from .storage import MemoryStorage, SQLiteStorage

logger = logging.getLogger(__name__)


def get_storage(config):
    if config.database:
        return SQLiteStorage(config.database)
    logger.warning("no database configured, subscriptions kept in memory")
    return MemoryStorage()


def get_client(config):
    return HubClient(timeout=config.subscriber.timeout,
                     user_agent=config.subscriber.user_agent)


def notify(config, mode):
    client = get_client(config)
    notifier = HubNotifier(config.subscriber, get_storage(config), client)
    try:
        if mode == "subscribe":
            result = notifier.subscribe_all()
        else:
            result = notifier.unsubscribe_all()
    finally:
        client.close()
    for hub_url in result.async_hubs:
        print(f"{hub_url}: pending asynchronous verification")
    for error in result.errors:
        reason = error.status_code or error.exception
        print(f"{error.hub_url}: failed ({reason})")
    return 0 if result.all_succeeded else 1


def status(config, subscription_id):
    subscription = get_storage(config).get_subscription(subscription_id)
    if subscription is None:
        print(f"no subscription `{subscription_id}`")
        return 1
    print(json.dumps(subscription.to_dict(), indent=2))
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(prog="websub",
                                     description=__doc__)
    parser.add_argument("-c", "--config",
                        help="JSON config file (default $WEBSUB_CONFIG)")
    parser.add_argument("-v", "--verbose", action="store_true")
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("subscribe", help="subscribe at every hub")
    commands.add_parser("unsubscribe", help="unsubscribe at every hub")
    commands.add_parser("serve", help="answer hub callbacks")
    discover = commands.add_parser("discover", help="list a topic's hubs")
    discover.add_argument("topic_url")
    show = commands.add_parser("status", help="show a stored subscription")
    show.add_argument("subscription_id")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s - %(message)s",
                        datefmt="%Y-%m-%d %H:%M:%S")
    try:
        config = load_config(args.config)
        if args.command in ("subscribe", "unsubscribe"):
            return notify(config, args.command)
        if args.command == "status":
            return status(config, args.subscription_id)
        if args.command == "discover":
            client = get_client(config)
            try:
                self_url, hubs = discover_hubs(args.topic_url, client)
            finally:
                client.close()
            print(f"self: {self_url}")
            for hub_url in hubs:
                print(f"hub: {hub_url}")
            return 0 if hubs else 1
        serve(CallbackApplication(get_storage(config), config),
              config.host, config.port)
    except (ConfigurationError, RequestFailed) as err:
        print(f"error: {err}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
