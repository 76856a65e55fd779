"""Serve the callback endpoint over WSGI."""

import logging

import gevent
import gevent.pywsgi

from .callback import CallbackRequest, CallbackVerifier, parse_query
from .config import ServerConfig
from .response import ConfigurationError

__all__ = ["CallbackApplication", "serve"]

logger = logging.getLogger(__name__)


class CallbackApplication:
    """
    a WSGI callable answering hub callbacks

    With `use_path_parameter` set the subscription key is the last
    segment of the request path. `on_delivery` is called with each
    content delivery in its own greenlet, after the hub has its 200.

    """

    def __init__(self, storage, config=None, on_delivery=None, clock=None):
        self.storage = storage
        self.config = config or ServerConfig()
        self.on_delivery = on_delivery
        self.clock = clock

    def get_verifier(self, request):
        key = self.config.callback.subscription_key
        if not key and self.config.subscriber.use_path_parameter:
            key = request.path.rstrip("/").rpartition("/")[2] or None
        count = self.config.callback.subscriber_count
        return CallbackVerifier(self.storage, subscription_key=key,
                                subscriber_count=count, clock=self.clock)

    def __call__(self, environ, start_response):
        """
        WSGI callable

        """
        request = self.get_request(environ)
        try:
            response = self.get_verifier(request).handle(request)
        except ConfigurationError as err:
            logger.error("cannot handle %s %s: %s", request.method,
                         request.path, err)
            start_response("500 Internal Server Error",
                           [("Content-Type", "text/plain")])
            return [b"subscription key not identified"]
        headers = [("Content-Type", "text/plain")]
        headers.extend(response.headers.items())
        start_response(response.status_line, headers)
        if response.delivery is not None and self.on_delivery:
            gevent.spawn(self.deliver, response.delivery,
                         response.subscription)
        return [response.body]

    def deliver(self, delivery, subscription):
        try:
            self.on_delivery(delivery, subscription)
        except Exception:
            logger.exception("content consumer failed for %s",
                             subscription.id)

    def get_request(self, environ):
        query = parse_query(environ.get("QUERY_STRING", ""))
        headers = {}
        for name, value in environ.items():
            if name.startswith("HTTP_"):
                headers[name[5:].replace("_", "-")] = value
        if environ.get("CONTENT_TYPE"):
            headers["Content-Type"] = environ["CONTENT_TYPE"]
        try:
            length = int(environ.get("CONTENT_LENGTH") or 0)
        except ValueError:
            length = 0
        body = environ["wsgi.input"].read(length) if length else b""
        return CallbackRequest(environ.get("REQUEST_METHOD", "GET"), query,
                               headers, body, environ.get("PATH_INFO", ""))


def serve(app, host="127.0.0.1", port=8080):
    """Serve `app` with gevent until interrupted."""
    server = gevent.pywsgi.WSGIServer((host, port), app)
    logger.info("listening for hub callbacks on %s:%s", host, port)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        server.stop()
