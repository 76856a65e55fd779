"""Subscription records and the enumerations describing them."""

import dataclasses
import enum

import pendulum

__all__ = ["State", "Protocol", "VerificationMode", "Mode", "Subscription",
           "utcnow"]


def utcnow():
    return pendulum.now("UTC")


class State(str, enum.Enum):

    NOT_VERIFIED = "not_verified"
    VERIFIED = "verified"
    TO_DELETE = "to_delete"
    DENIED = "denied"


class Protocol(str, enum.Enum):

    V03 = "0.3"
    V04 = "0.4"


class VerificationMode(str, enum.Enum):

    SYNC = "sync"
    ASYNC = "async"

    @property
    def order(self):
        """Return both modes, this one first."""
        other = VerificationMode.ASYNC if self is VerificationMode.SYNC \
            else VerificationMode.SYNC
        return [self, other]


class Mode(str, enum.Enum):

    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    DENIED = "denied"


@dataclasses.dataclass
class Subscription:
    """
    a subscription of one topic at one hub

    `verify_token` holds the digest of the last token sent to the hub,
    never the token itself.

    """

    id: str
    topic_url: str
    hub_url: str
    created_time: pendulum.DateTime
    verify_token: str
    hub_protocol: Protocol = Protocol.V04
    lease_seconds: int = None
    secret: str = None
    expiration_time: pendulum.DateTime = None
    subscription_state: State = State.NOT_VERIFIED

    def has_expired(self, now=None):
        """Return whether the lease ran out before `now`."""
        if self.expiration_time is None:
            return False
        return self.expiration_time <= (now or utcnow())

    def to_dict(self):
        data = dataclasses.asdict(self)
        data["hub_protocol"] = self.hub_protocol.value
        data["subscription_state"] = self.subscription_state.value
        for key in ("created_time", "expiration_time"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data

    @classmethod
    def from_dict(cls, data):
        data = dict(data)
        data["hub_protocol"] = Protocol(data.get("hub_protocol") or "0.4")
        data["subscription_state"] = State(data["subscription_state"])
        for key in ("created_time", "expiration_time"):
            if data.get(key) is not None and isinstance(data[key], str):
                data[key] = pendulum.parse(data[key])
        return cls(**data)
