"""Send (un)subscribe requests to every configured hub."""

import dataclasses
import logging

import requests

from .agent import HubClient
from .identity import hash_token
from .model import Mode, State, Subscription, utcnow
from .request import SubscriptionRequestBuilder
from .response import ConfigurationError

__all__ = ["HubNotifier", "NotificationResult", "HubError"]

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class HubError:

    hub_url: str
    response: object = None
    exception: Exception = None

    @property
    def status_code(self):
        return getattr(self.response, "status_code", None)


@dataclasses.dataclass
class NotificationResult:

    mode: Mode
    errors: list = dataclasses.field(default_factory=list)
    async_hubs: list = dataclasses.field(default_factory=list)
    requests: list = dataclasses.field(default_factory=list)

    @property
    def all_succeeded(self):
        return not self.errors


class HubNotifier:
    """
    notify each hub of a subscribe or unsubscribe

    For every hub the pending record is stored before the request is
    sent so a hub verifying asynchronously, possibly before its response
    arrives, finds it. Hubs are tried once each, in order; one failing
    hub never stops the rest.

    """

    def __init__(self, config, storage, client=None, clock=None,
                 token_factory=None):
        self.config = config
        self.storage = storage
        self.client = client or HubClient(timeout=config.timeout,
                                          user_agent=config.user_agent)
        self.clock = clock or utcnow
        self.builder = SubscriptionRequestBuilder(config, token_factory)

    def subscribe_all(self):
        return self._notify(Mode.SUBSCRIBE)

    def unsubscribe_all(self):
        return self._notify(Mode.UNSUBSCRIBE)

    def _notify(self, mode):
        if self.storage is None:
            raise ConfigurationError("a subscription storage is required")
        result = NotificationResult(mode)
        for request in self.builder.build_all(mode):
            result.requests.append(request)
            self.save_subscription_state(request)
            logger.info("sending %s for %s to %s", mode.value,
                        self.config.topic_url, request.hub_url)
            try:
                response = self.client.post(request.hub_url, request.body,
                                            headers=request.headers,
                                            auth=request.auth)
            except requests.exceptions.RequestException as err:
                logger.warning("hub %s unreachable: %s", request.hub_url, err)
                result.errors.append(HubError(request.hub_url, exception=err))
                continue
            if response.status_code not in (202, 204):
                logger.warning("hub %s refused %s with %s", request.hub_url,
                               mode.value, response.status_code)
                result.errors.append(HubError(request.hub_url, response))
            elif response.status_code == 202:
                logger.info("hub %s will verify asynchronously",
                            request.hub_url)
                result.async_hubs.append(request.hub_url)
        return result

    def save_subscription_state(self, request):
        """Store the pending record for `request` and return it."""
        now = self.clock()
        token_digest = hash_token(request.verify_token)
        existing = self.storage.get_subscription(request.subscription_id)
        if request.mode is Mode.UNSUBSCRIBE:
            if existing is not None:
                record = dataclasses.replace(existing,
                                             verify_token=token_digest,
                                             subscription_state=State.TO_DELETE)
            else:
                record = Subscription(request.subscription_id,
                                      self.config.topic_url, request.hub_url,
                                      now, token_digest,
                                      hub_protocol=request.protocol,
                                      subscription_state=State.TO_DELETE)
            self.storage.set_subscription(record)
            return record
        lease_seconds = self.config.lease_seconds
        expiration_time = None
        if lease_seconds:
            expiration_time = now.add(seconds=lease_seconds)
        record = Subscription(request.subscription_id, self.config.topic_url,
                              request.hub_url,
                              existing.created_time if existing else now,
                              token_digest, hub_protocol=request.protocol,
                              lease_seconds=lease_seconds,
                              secret=request.secret,
                              expiration_time=expiration_time,
                              subscription_state=State.NOT_VERIFIED)
        self.storage.set_subscription(record)
        return record
