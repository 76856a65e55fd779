import io
import json

import gevent
import pendulum
import pytest
import requests
from requests.structures import CaseInsensitiveDict

from websub.__main__ import main
from websub.agent import RequestFailed, discover_hubs, get_header_link
from websub.config import HubConfig, ServerConfig, load_config
from websub.identity import hash_token
from websub.model import Protocol, State, Subscription, VerificationMode
from websub.response import ConfigurationError
from websub.server import CallbackApplication
from websub.storage import MemoryStorage

created = pendulum.datetime(2020, 1, 1, tz="UTC")


def storage_with(state=State.NOT_VERIFIED):
    storage = MemoryStorage()
    storage.set_subscription(Subscription("key", "http://example.com/topic",
                                          "http://hub.example.com", created,
                                          hash_token("cba"),
                                          hub_protocol=Protocol.V03,
                                          subscription_state=state))
    return storage


def call(app, method="GET", path="/callback", query="", body=b"",
         content_type=None, **headers):
    environ = {"REQUEST_METHOD": method, "PATH_INFO": path,
               "QUERY_STRING": query, "wsgi.input": io.BytesIO(body),
               "CONTENT_LENGTH": str(len(body))}
    if content_type:
        environ["CONTENT_TYPE"] = content_type
    for name, value in headers.items():
        environ[f"HTTP_{name.upper()}"] = value
    started = {}

    def start_response(status, headers):
        started["status"] = status
        started["headers"] = dict(headers)

    body = b"".join(app(environ, start_response))
    return started["status"], started["headers"], body


verify_query = ("hub.mode=subscribe&hub.topic=http%3A%2F%2Fexample.com"
                "%2Ftopic&hub.challenge=abc&hub.verify_token=cba"
                "&hub.lease_seconds=60")


def test_verification_by_query_key():
    storage = storage_with()
    app = CallbackApplication(storage)
    status, _, body = call(app, query=f"xhub.subscription=key&{verify_query}")
    assert status == "200 OK"
    assert body == b"abc"
    assert storage.get_subscription("key").subscription_state is \
        State.VERIFIED


def test_verification_by_path_key():
    storage = storage_with()
    config = ServerConfig(subscriber={"use_path_parameter": True})
    app = CallbackApplication(storage, config)
    status, _, body = call(app, path="/callback/key", query=verify_query)
    assert status == "200 OK"
    assert body == b"abc"


def test_rejection_is_404():
    app = CallbackApplication(storage_with())
    status, _, _ = call(app, query="xhub.subscription=key&hub.mode=nope")
    assert status == "404 Not Found"


def test_missing_key_is_500():
    app = CallbackApplication(storage_with())
    status, _, _ = call(app, query=verify_query)
    assert status.startswith("500")


def test_content_delivery_hook():
    deliveries = []
    config = ServerConfig(callback={"subscriber_count": 2})
    app = CallbackApplication(storage_with(State.VERIFIED), config,
                              on_delivery=lambda delivery, subscription:
                              deliveries.append(delivery))
    status, headers, _ = call(app, "POST", query="xhub.subscription=key",
                              body=b"<rss/>",
                              content_type="application/rss+xml",
                              x_hub_signature="sha1=x")
    assert status == "200 OK"
    assert headers["X-Hub-On-Behalf-Of"] == "2"
    assert deliveries == []
    gevent.sleep(0)
    assert deliveries[0].content == b"<rss/>"
    assert deliveries[0].has_feed_update
    assert deliveries[0].headers["X-Hub-Signature"] == "sha1=x"


def test_failing_consumer_still_answers_200(caplog):
    def consume(delivery, subscription):
        raise ValueError("consumer broke")

    app = CallbackApplication(storage_with(State.VERIFIED),
                              on_delivery=consume)
    status, headers, _ = call(app, "POST", query="xhub.subscription=key",
                              body=b"<rss/>",
                              content_type="application/rss+xml")
    assert status == "200 OK"
    assert headers["X-Hub-On-Behalf-Of"] == "1"
    gevent.sleep(0)
    assert "content consumer failed for key" in caplog.text


def test_challenge_echoed_byte_for_byte():
    storage = storage_with()
    app = CallbackApplication(storage)
    query = f"xhub.subscription=key&{verify_query}".replace(
        "hub.challenge=abc", "hub.challenge=%FFab%C3%A9")
    status, _, body = call(app, query=query)
    assert status == "200 OK"
    assert body == b"\xffab\xc3\xa9"


def test_load_config(tmp_path, monkeypatch):
    path = tmp_path / "websub.json"
    path.write_text(json.dumps({
        "subscriber": {"topic_url": "http://example.com/topic",
                       "callback_url": "http://me.example.com/cb",
                       "hubs": ["http://a.example.com",
                                {"url": "http://b.example.com",
                                 "protocol": "0.3", "secret": "s"}],
                       "preferred_verification_mode": "async"},
        "callback": {"subscriber_count": 5}, "port": 9000}))
    monkeypatch.setenv("WEBSUB_CONFIG", str(path))
    config = load_config()
    assert config.port == 9000
    assert config.callback.subscriber_count == 5
    subscriber = config.subscriber
    assert subscriber.preferred_verification_mode is VerificationMode.ASYNC
    assert subscriber.hubs[0] == HubConfig(url="http://a.example.com")
    assert subscriber.protocol_for(subscriber.hubs[0]) is Protocol.V04
    assert subscriber.protocol_for(subscriber.hubs[1]) is Protocol.V03


def test_invalid_config(tmp_path):
    for document in ('{"subscriber": {"lease_seconds": 0}}',
                     '{"subscriber": {"unknown": 1}}',
                     '{"callback": {"subscriber_count": 0}}',
                     "not json"):
        path = tmp_path / "websub.json"
        path.write_text(document)
        with pytest.raises(ConfigurationError):
            load_config(path)
    with pytest.raises(ConfigurationError):
        load_config(tmp_path / "missing.json")


class Page:

    def __init__(self, content, content_type, link=None):
        self.content = content
        self.headers = CaseInsensitiveDict({"Content-Type": content_type})
        if link:
            self.headers["Link"] = link


class Client:

    def __init__(self, page):
        self.page = page
        self.closed = False

    def get(self, url):
        if isinstance(self.page, Exception):
            raise self.page
        return self.page

    def close(self):
        self.closed = True


def test_header_links():
    headers = {"Link": '<https://hub.example>; rel="hub", '
                       '<https://example.com/feed>; rel="self"'}
    assert get_header_link(headers, "hub") == ["https://hub.example"]
    assert get_header_link(headers, "self") == ["https://example.com/feed"]
    assert get_header_link({}, "hub") == []


def test_discover_from_headers():
    page = Page(b"", "text/html",
                '<https://hub.example>; rel="hub", '
                '<https://example.com/feed>; rel="self"')
    assert discover_hubs("http://example.com/feed", Client(page)) == \
        ("https://example.com/feed", ["https://hub.example"])


def test_discover_from_feed():
    feed = (b'<?xml version="1.0"?><feed xmlns="http://www.w3.org/2005/Atom">'
            b'<link rel="hub" href="https://hub.example"/>'
            b'<link rel="self" href="https://example.com/atom"/></feed>')
    page = Page(feed, "application/atom+xml")
    assert discover_hubs("http://example.com/feed", Client(page)) == \
        ("https://example.com/atom", ["https://hub.example"])


def test_discover_from_html():
    html = (b"<html><head><link rel=hub href=https://hub.example>"
            b"</head><body></body></html>")
    page = Page(html, "text/html")
    assert discover_hubs("http://example.com/", Client(page)) == \
        ("http://example.com/", ["https://hub.example"])


def test_discover_failure():
    with pytest.raises(RequestFailed):
        discover_hubs("http://example.com/",
                      Client(requests.exceptions.ConnectionError()))


def test_cli_status(tmp_path, capsys):
    path = tmp_path / "websub.json"
    path.write_text(json.dumps({"database": str(tmp_path / "subs.db")}))
    assert main(["-c", str(path), "status", "key"]) == 1
    assert "no subscription" in capsys.readouterr().out


def test_cli_bad_config(tmp_path):
    path = tmp_path / "websub.json"
    path.write_text("{}")
    assert main(["-c", str(path), "subscribe"]) == 2


def test_cli_closes_client(tmp_path, monkeypatch, capsys):
    path = tmp_path / "websub.json"
    path.write_text("{}")
    clients = []

    def get_client(config):
        clients.append(Client(Page(b"", "text/html",
                                   '<https://hub.example>; rel="hub"')))
        return clients[-1]

    monkeypatch.setattr("websub.__main__.get_client", get_client)
    assert main(["-c", str(path), "discover", "http://example.com/"]) == 0
    assert "hub: https://hub.example" in capsys.readouterr().out
    assert main(["-c", str(path), "subscribe"]) == 2
    assert [client.closed for client in clients] == [True, True]
