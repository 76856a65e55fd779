"""
Handle hub callbacks.

A hub calls back with GET to verify an intent to (un)subscribe, and with
POST to deliver content. Each call resolves to a subscription record:

    response = CallbackVerifier(storage).handle(CallbackRequest("GET", query))
    response.status, response.body  # 200, the echoed hub.challenge

Every failed verification is answered 404 with a `reason` naming why.
Failing to identify a subscription key at all is a caller defect and
raises `ConfigurationError`.

"""

import dataclasses
import hashlib
import hmac
import logging
import urllib.parse

from requests.structures import CaseInsensitiveDict

from .agent import feed_types
from .identity import tokens_match
from .model import Mode, Protocol, State, utcnow
from .response import (CONTENT_UPDATE, VERIFICATION_REQUEST,
                       ConfigurationError, NotFound, Reason, Response,
                       Status)

__all__ = ["CallbackRequest", "CallbackVerifier", "ContentDelivery",
           "ContentDispatcher"]

logger = logging.getLogger(__name__)


def parse_query(query_string):
    """
    return the parameters of `query_string` decoded one byte per character

    Latin-1 keeps every byte, so `encode_challenge` gives back exactly the
    bytes the hub sent, matching how WSGI presents native strings.

    """
    return dict(urllib.parse.parse_qsl(query_string, keep_blank_values=True,
                                       encoding="latin-1"))


def encode_challenge(challenge):
    """Return `challenge` as the bytes to echo back to the hub."""
    if isinstance(challenge, bytes):
        return challenge
    try:
        return bytes(challenge, "latin-1")
    except UnicodeEncodeError:
        return bytes(challenge, "utf-8")


def normalize_query(query):
    """Return `query` with "hub.mode" style keys written "hub_mode"."""
    return {key.replace(".", "_"): value for key, value in query.items()}


@dataclasses.dataclass
class CallbackRequest:
    """
    an inbound hub request, independent of any web framework

    Query values read off the wire are expected as `parse_query` leaves
    them.

    """

    method: str
    query: dict = dataclasses.field(default_factory=dict)
    headers: dict = dataclasses.field(default_factory=dict)
    body: bytes = b""
    path: str = ""

    def __post_init__(self):
        self.method = self.method.upper()
        self.query = normalize_query(self.query)
        self.headers = CaseInsensitiveDict(self.headers)
        if isinstance(self.body, str):
            self.body = bytes(self.body, "utf-8")

    @classmethod
    def from_url(cls, method, url, headers=None, body=b""):
        parts = urllib.parse.urlsplit(url)
        return cls(method, parse_query(parts.query), headers or {}, body,
                   parts.path)


class ContentDelivery:
    """
    content a hub pushed for a subscription

    Nothing here parses the content; consumers pick it up after the hub
    has been answered.

    """

    def __init__(self, subscription, content, headers):
        self.subscription = subscription
        self.content = content
        self.headers = headers

    @property
    def content_type(self):
        return self.headers.get("Content-Type", "")

    @property
    def has_feed_update(self):
        return self.content_type.lower().startswith(feed_types)

    @property
    def feed_update(self):
        """Return the content if it is a feed, otherwise None."""
        if self.has_feed_update:
            return self.content
        return None

    @property
    def needs_authentication(self):
        return self.subscription.secret is not None

    def authenticate_content(self):
        """
        return whether the content was signed with the subscription secret

        Vacuously true when the subscription has no secret.

        """
        if not self.needs_authentication:
            return True
        signature = self.headers.get("X-Hub-Signature")
        if not signature:
            return False
        digest = hmac.new(bytes(self.subscription.secret, "utf-8"),
                          self.content, hashlib.sha1).hexdigest()
        return hmac.compare_digest(bytes(f"sha1={digest}", "utf-8"),
                                   bytes(signature, "utf-8"))


class ContentDispatcher:

    def __init__(self, subscriber_count=1):
        if subscriber_count < 1:
            raise ConfigurationError("subscriber count must be at least 1")
        self.subscriber_count = subscriber_count

    def dispatch(self, subscription, request):
        """Accept content for `subscription`; always a 200."""
        delivery = ContentDelivery(subscription, request.body,
                                   request.headers)
        logger.info("content update for %s (%s, %d bytes)", subscription.id,
                    delivery.content_type or "no type", len(request.body))
        return Response(200,
                        headers={"X-Hub-On-Behalf-Of":
                                 str(self.subscriber_count)},
                        state=CONTENT_UPDATE, delivery=delivery,
                        subscription=subscription)


class CallbackVerifier:
    """
    confirm or reject hub callbacks against stored subscriptions

    The subscription key is `subscription_key` when given, otherwise the
    `xhub.subscription` query parameter.

    """

    def __init__(self, storage, subscription_key=None, subscriber_count=1,
                 clock=None):
        if storage is None:
            raise ConfigurationError("a subscription storage is required")
        self.storage = storage
        self.subscription_key = subscription_key
        self.dispatcher = ContentDispatcher(subscriber_count)
        self.clock = clock or utcnow

    def detect_subscription_key(self, request):
        if self.subscription_key:
            return self.subscription_key
        key = request.query.get("xhub_subscription")
        if key:
            return key
        raise ConfigurationError("subscription key was not set and could "
                                 "not be inferred from the request")

    def handle(self, request):
        """Return the `Response` for hub `request`."""
        key = self.detect_subscription_key(request)
        try:
            subscription = None
            if self.storage.has_subscription(key):
                subscription = self.storage.get_subscription(key)
            if subscription is None:
                raise NotFound("Subscription key not identified",
                               reason=Reason.UNKNOWN_SUBSCRIPTION)
            if request.method == "POST":
                return self.dispatcher.dispatch(subscription, request)
            if request.method == "GET":
                return self.verify(subscription, request)
            raise NotFound(f"{request.method} is not a hub callback",
                           reason=Reason.BAD_REQUEST)
        except Status as status:
            logger.warning("rejected %s callback for %s: %s (%s)",
                           request.method, key, status, status.reason)
            return Response.from_status(status)

    def verify(self, subscription, request):
        params = request.query
        mode = self._check_request(subscription, params)
        if subscription.hub_protocol is not Protocol.V04 and \
                not tokens_match(params.get("hub_verify_token"),
                                 subscription.verify_token):
            raise NotFound("Verification token match failed",
                           reason=Reason.TOKEN_MISMATCH)
        if mode is Mode.UNSUBSCRIBE:
            allowed = (State.TO_DELETE,)
        else:
            allowed = (State.NOT_VERIFIED, State.VERIFIED)
        if subscription.subscription_state not in allowed:
            raise NotFound("Subscription state not aligned with "
                           "confirmation needed",
                           reason=Reason.STATE_MISMATCH)
        detail = self.save_subscription_state(subscription, mode, params)
        logger.info("%s: %s", subscription.id, detail)
        challenge = encode_challenge(params.get("hub_challenge") or "")
        return Response(200, challenge,
                        state=VERIFICATION_REQUEST, detail=detail,
                        subscription=subscription)

    def _check_request(self, subscription, params):
        """Return the requested mode; raise unless the request is valid."""
        protocol = subscription.hub_protocol
        try:
            mode = Mode(params["hub_mode"])
        except (KeyError, ValueError):
            raise NotFound("Hub request not valid", reason=Reason.BAD_REQUEST)
        if mode is Mode.DENIED:
            if protocol is not Protocol.V04:
                raise NotFound("Hub request not valid",
                               reason=Reason.BAD_REQUEST)
            required = ["hub_topic"]
        else:
            required = ["hub_topic", "hub_challenge"]
            if protocol is not Protocol.V04:
                required.append("hub_verify_token")
            if mode is Mode.SUBSCRIBE:
                required.append("hub_lease_seconds")
        for name in required:
            if name not in params:
                raise NotFound(f"required `{name}` not present in request",
                               reason=Reason.BAD_REQUEST)
        if mode is Mode.SUBSCRIBE:
            lease_seconds = params["hub_lease_seconds"]
            if lease_seconds not in (None, ""):
                try:
                    int(lease_seconds)
                except (TypeError, ValueError):
                    raise NotFound("`hub_lease_seconds` must be an integer",
                                   reason=Reason.BAD_REQUEST)
        return mode

    def save_subscription_state(self, subscription, mode, params):
        """Apply the transition for `mode`; return its description."""
        prior_state = subscription.subscription_state
        if mode is Mode.UNSUBSCRIBE:
            if not self.storage.delete_subscription(subscription.id,
                                                    expected_state=prior_state):
                self._lost_race(subscription)
            return "Unsubscription confirmed"
        if mode is Mode.DENIED:
            record = dataclasses.replace(subscription,
                                         subscription_state=State.DENIED)
            detail = "Subscription denied"
        else:
            lease_seconds = params["hub_lease_seconds"]
            if lease_seconds in (None, ""):
                lease_seconds = expiration_time = None
            else:
                lease_seconds = int(lease_seconds)
                if prior_state is State.VERIFIED:
                    start = self.clock()
                else:
                    start = subscription.created_time
                expiration_time = start.add(seconds=lease_seconds)
            record = dataclasses.replace(subscription,
                                         subscription_state=State.VERIFIED,
                                         lease_seconds=lease_seconds,
                                         expiration_time=expiration_time)
            detail = "Subscription confirmed"
        if not self.storage.set_subscription(record,
                                             expected_state=prior_state):
            self._lost_race(subscription)
        return detail

    def _lost_race(self, subscription):
        raise NotFound("Subscription changed during confirmation",
                       reason=Reason.STATE_MISMATCH)
