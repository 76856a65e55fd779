"""HTTP statuses, callback responses and the configuration error."""

import dataclasses

__all__ = ["Status", "NotFound", "Reason", "Response", "ConfigurationError"]


class ConfigurationError(Exception):

    """Raised for caller misuse; never turned into an HTTP status."""


class Status(Exception):

    """An HTTP status raised to end the handling of a callback."""

    code = None
    reason = None

    def __init__(self, body="", reason=None, detail=None):
        super().__init__(body)
        self.body = body
        if reason:
            self.reason = reason
        self.detail = detail

    def __str__(self):
        return f"{self.code} {self.message}"

    @property
    def message(self):
        return type(self).__doc__


class NotFound(Status):
    """Not Found"""

    code = 404


class Reason:

    UNKNOWN_SUBSCRIPTION = "UnknownSubscription"
    BAD_REQUEST = "BadRequest"
    TOKEN_MISMATCH = "TokenMismatch"
    STATE_MISMATCH = "StateMismatch"

    details = {UNKNOWN_SUBSCRIPTION: "Subscription not identified",
               BAD_REQUEST: "Request missing mandatory parameters",
               TOKEN_MISMATCH: "Verify token mismatch",
               STATE_MISMATCH: "Subscription state mismatch"}


# status report states
INVALID_HUB_REQUEST = "InvalidHubRequest"
VERIFICATION_REQUEST = "VerificationRequest"
CONTENT_UPDATE = "ContentUpdate"


@dataclasses.dataclass
class Response:
    """
    the outcome of handling one hub callback

    `reason` is set only for 404s. `state` and `detail` report what
    happened in the terms a hub operator would recognize.

    """

    status: int
    body: bytes = b""
    headers: dict = dataclasses.field(default_factory=dict)
    reason: str = None
    state: str = None
    detail: str = ""
    delivery: object = None
    subscription: object = None

    @property
    def status_line(self):
        messages = {200: "OK", 404: "Not Found"}
        return f"{self.status} {messages.get(self.status, 'Unknown')}"

    def status_report(self):
        return {"state": self.state, "details": self.detail}

    @classmethod
    def from_status(cls, status):
        body = status.body
        if isinstance(body, str):
            body = bytes(body, "utf-8")
        return cls(status.code, body, reason=status.reason,
                   state=INVALID_HUB_REQUEST if status.code >= 400
                   else VERIFICATION_REQUEST,
                   detail=status.detail or Reason.details.get(status.reason,
                                                               ""))
