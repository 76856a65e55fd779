"""
Subscription requests.

A request to a hub is a form-encoded body whose keys are serialized in
natural order so the same logical request always yields the same bytes:

    hub.callback=...&hub.lease_seconds=86400&hub.mode=subscribe&
    hub.topic=...&hub.verify=sync&hub.verify=async&hub.verify_token=...

"""

import dataclasses
import re

from .identity import (canonical_url_encode, compute_id,
                       generate_verify_token, is_valid_url)
from .model import Mode
from .response import ConfigurationError

__all__ = ["SubscriptionRequest", "SubscriptionRequestBuilder",
           "natural_key", "serialize", "embed_subscription_id"]

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

_digits = re.compile(r"(\d+)")


def natural_key(key):
    """Return a sort key ordering digit runs by value ("a2" < "a10")."""
    parts = _digits.split(key)
    return [int(part) if index % 2 else part
            for index, part in enumerate(parts)], key


def serialize(parameters):
    """
    return `parameters` as a canonical form-encoded body

    `parameters` is a list of (key, value) pairs; a key may repeat. Keys
    and values are percent-encoded before sorting and repeated keys keep
    their relative order.

    """
    encoded = [(canonical_url_encode(key), canonical_url_encode(value))
               for key, value in parameters]
    encoded.sort(key=lambda pair: natural_key(pair[0]))
    return "&".join(f"{key}={value}" for key, value in encoded)


def embed_subscription_id(callback_url, subscription_id, as_path=False):
    """Return `callback_url` carrying `subscription_id`."""
    if as_path:
        return f"{callback_url.rstrip('/')}/{subscription_id}"
    separator = "&" if "?" in callback_url else "?"
    return f"{callback_url}{separator}xhub.subscription={subscription_id}"


@dataclasses.dataclass
class SubscriptionRequest:
    """An outbound (un)subscribe request for a single hub."""

    hub_url: str
    mode: Mode
    subscription_id: str
    verify_token: str
    parameters: list
    headers: dict
    auth: tuple = None
    protocol: object = None
    secret: str = None

    @property
    def body(self):
        return serialize(self.parameters)

    def get(self, key):
        """Return every value sent for `key`."""
        return [value for name, value in self.parameters if name == key]


class SubscriptionRequestBuilder:
    """
    build the per-hub requests for a `SubscriberConfig`

    A fresh verify token is drawn from `token_factory` for every request.

    """

    def __init__(self, config, token_factory=None):
        self.config = config
        self.token_factory = token_factory or generate_verify_token

    def check(self):
        """Raise `ConfigurationError` unless a request can be built."""
        config = self.config
        if not config.topic_url:
            raise ConfigurationError("a topic URL is required")
        if not is_valid_url(config.topic_url):
            raise ConfigurationError(f"invalid topic URL "
                                     f"`{config.topic_url}`")
        if not config.callback_url:
            raise ConfigurationError("a callback URL is required")
        if not is_valid_url(config.callback_url):
            raise ConfigurationError(f"invalid callback URL "
                                     f"`{config.callback_url}`")
        if not config.hubs:
            raise ConfigurationError("at least one hub URL is required")
        for hub in config.hubs:
            if not is_valid_url(hub.url):
                raise ConfigurationError(f"invalid hub URL `{hub.url}`")

    def build_all(self, mode):
        self.check()
        return [self.build(hub, mode) for hub in self.config.hub_configs()]

    def build(self, hub, mode):
        """Return the `SubscriptionRequest` for `hub` in given `mode`."""
        self.check()
        config = self.config
        mode = Mode(mode)
        if mode is Mode.DENIED:
            raise ConfigurationError("`denied` is not a request mode")
        subscription_id = compute_id(config.topic_url, hub.url)
        token = self.token_factory()
        callback_url = embed_subscription_id(config.callback_url,
                                             subscription_id,
                                             config.use_path_parameter)
        parameters = [("hub.mode", mode.value),
                      ("hub.topic", config.topic_url),
                      ("hub.callback", callback_url)]
        for verify_mode in config.preferred_verification_mode.order:
            parameters.append(("hub.verify", verify_mode.value))
        parameters.append(("hub.verify_token", token))
        if mode is Mode.SUBSCRIBE:
            if config.lease_seconds:
                parameters.append(("hub.lease_seconds",
                                   str(config.lease_seconds)))
            if hub.secret:
                parameters.append(("hub.secret", hub.secret))
        extras = dict(config.parameters)
        extras.update(hub.parameters)
        reserved = {key for key, _ in parameters}
        for key, value in extras.items():
            if key in reserved:
                raise ConfigurationError(f"`{key}` cannot be overridden")
            parameters.append((key, value))
        headers = dict(config.headers)
        headers.update(hub.headers)
        headers["Content-Type"] = FORM_CONTENT_TYPE
        return SubscriptionRequest(hub.url, mode, subscription_id, token,
                                   parameters, headers,
                                   auth=tuple(hub.auth) if hub.auth else None,
                                   protocol=config.protocol_for(hub),
                                   secret=hub.secret
                                   if mode is Mode.SUBSCRIBE else None)
