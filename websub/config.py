"""
Typed configuration.

Configuration is a JSON document, located by path or by the file named in
the `WEBSUB_CONFIG` environment variable:

    {"subscriber": {"topic_url": "https://example.com/feed",
                    "callback_url": "https://me.example/callback",
                    "hubs": ["https://hub.example",
                             {"url": "https://other.example",
                              "protocol": "0.3", "secret": "s3cret"}],
                    "lease_seconds": 86400},
     "callback": {"subscriber_count": 1},
     "database": "subscriptions.db", "port": 8080}

"""

import json
import logging
import os
import pathlib
from typing import Dict, List, Optional, Tuple, Union

import pydantic
from pydantic import BaseModel, ConfigDict, Field, PositiveInt

from .model import Protocol, VerificationMode
from .response import ConfigurationError

__all__ = ["HubConfig", "SubscriberConfig", "CallbackConfig",
           "ServerConfig", "load_config"]

logger = logging.getLogger(__name__)


class _Config(BaseModel):

    model_config = ConfigDict(extra="forbid")


class HubConfig(_Config):

    url: str
    protocol: Optional[Protocol] = None
    secret: Optional[str] = None
    headers: Dict[str, str] = {}
    parameters: Dict[str, str] = {}
    auth: Optional[Tuple[str, str]] = None


class SubscriberConfig(_Config):

    topic_url: Optional[str] = None
    callback_url: Optional[str] = None
    hubs: List[Union[str, HubConfig]] = []
    lease_seconds: Optional[PositiveInt] = None
    preferred_verification_mode: VerificationMode = VerificationMode.SYNC
    use_path_parameter: bool = False
    default_protocol: Protocol = Protocol.V04
    parameters: Dict[str, str] = {}
    headers: Dict[str, str] = {}
    timeout: float = Field(10, gt=0)
    user_agent: str = "websub"

    @pydantic.field_validator("hubs")
    @classmethod
    def _coerce_hubs(cls, hubs):
        return [HubConfig(url=hub) if isinstance(hub, str) else hub
                for hub in hubs]

    def hub_configs(self):
        """Return hub configs in order with duplicate URLs dropped."""
        seen = set()
        hubs = []
        for hub in self.hubs:
            if hub.url in seen:
                continue
            seen.add(hub.url)
            hubs.append(hub)
        return hubs

    def protocol_for(self, hub):
        return hub.protocol or self.default_protocol


class CallbackConfig(_Config):

    subscription_key: Optional[str] = None
    subscriber_count: PositiveInt = 1


class ServerConfig(_Config):

    host: str = "127.0.0.1"
    port: int = Field(8080, ge=0, le=65535)
    database: Optional[str] = None
    subscriber: SubscriberConfig = Field(default_factory=SubscriberConfig)
    callback: CallbackConfig = Field(default_factory=CallbackConfig)


def load_config(path=None):
    """
    return the `ServerConfig` read from JSON at `path`

    Falls back to the file named by `WEBSUB_CONFIG`; with neither, the
    defaults are returned.

    """
    if path is None:
        path = os.getenv("WEBSUB_CONFIG")
    if path is None:
        return ServerConfig()
    path = pathlib.Path(path)
    logger.debug("loading configuration from %s", path)
    try:
        with path.open() as fp:
            data = json.load(fp)
    except OSError as err:
        raise ConfigurationError(f"cannot read config `{path}`: {err}")
    except json.decoder.JSONDecodeError as err:
        raise ConfigurationError(f"config `{path}` is not JSON: {err}")
    try:
        return ServerConfig.model_validate(data)
    except pydantic.ValidationError as err:
        raise ConfigurationError(str(err))
