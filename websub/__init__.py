"""
A WebSub (PubSubHubbub) subscriber.

Ask hubs to push a topic's updates to a callback, then answer the hubs'
verification and content-delivery callbacks:

    config = SubscriberConfig(topic_url="https://example.com/feed",
                              callback_url="https://me.example/cb",
                              hubs=["https://hub.example"],
                              lease_seconds=86400)
    storage = SQLiteStorage("subscriptions.db")
    result = HubNotifier(config, storage).subscribe_all()
    if not result.all_succeeded:
        ...

Serve `CallbackApplication(storage)` at the callback URL to complete
verification.

"""

from .agent import HubClient, RequestFailed, discover_hubs, get_header_link
from .callback import (CallbackRequest, CallbackVerifier, ContentDelivery,
                       ContentDispatcher)
from .config import (CallbackConfig, HubConfig, ServerConfig,
                     SubscriberConfig, load_config)
from .identity import (canonical_url_encode, compute_id,
                       generate_verify_token, hash_token)
from .model import Mode, Protocol, State, Subscription, VerificationMode
from .notifier import HubNotifier, NotificationResult
from .request import SubscriptionRequestBuilder, serialize
from .response import ConfigurationError, Reason, Response
from .server import CallbackApplication, serve
from .storage import MemoryStorage, SQLiteStorage, SubscriptionStorage

__all__ = ["HubClient", "RequestFailed", "discover_hubs", "get_header_link",
           "CallbackRequest", "CallbackVerifier", "ContentDelivery",
           "ContentDispatcher", "CallbackConfig", "HubConfig",
           "ServerConfig", "SubscriberConfig", "load_config",
           "canonical_url_encode", "compute_id", "generate_verify_token",
           "hash_token", "Mode", "Protocol", "State", "Subscription",
           "VerificationMode", "HubNotifier", "NotificationResult",
           "SubscriptionRequestBuilder", "serialize", "ConfigurationError",
           "Reason", "Response", "CallbackApplication", "serve",
           "MemoryStorage", "SQLiteStorage", "SubscriptionStorage"]
