"""Talk to hubs and discover them from topics."""

import logging
import re

import lxml.etree
import lxml.html
import requests

__all__ = ["HubClient", "RequestFailed", "get_header_link", "discover_hubs"]

logger = logging.getLogger(__name__)

feed_types = ("application/atom+xml", "application/rss+xml",
              "application/xml", "text/xml", "application/rdf+xml")


class RequestFailed(Exception):

    """"""


class HubClient:
    """
    a thin `requests` session with a user agent and a bounded timeout

    Every outbound call is a single attempt; retrying is left to callers.

    """

    def __init__(self, timeout=10, user_agent="websub", session=None):
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers["User-Agent"] = user_agent

    def post(self, url, data, headers=None, auth=None):
        return self.session.post(url, data=data, headers=headers, auth=auth,
                                 timeout=self.timeout)

    def get(self, url, **kwargs):
        kwargs.setdefault("timeout", self.timeout)
        return self.session.get(url, **kwargs)

    def close(self):
        self.session.close()


def get_header_link(headers, search_rel: str):
    """
    return URLs from `Link` headers whose rel includes `search_rel`

        >>> get_header_link({"Link": '<https://hub.example>; rel="hub"'},
        ...                 "hub")
        ['https://hub.example']

    """
    try:
        header = headers["Link"]
    except KeyError:
        return []
    links = []
    for link in header.split(","):
        resource, _, params = link.partition(";")
        match = re.search(r"""rel=['"]?([^'";]+)['"]?""", params)
        if match and search_rel in match.groups()[0].split():
            links.append(resource.strip(" <>"))
    return links


def discover_hubs(topic_url, client=None):
    """
    return the self URL and hub URLs advertised by `topic_url`

    `Link` headers win; otherwise `link` elements in the feed or HTML
    document are used.

    """
    client = client or HubClient()
    try:
        response = client.get(topic_url)
    except requests.exceptions.RequestException as err:
        raise RequestFailed(f"could not fetch `{topic_url}`: {err}")
    hubs = get_header_link(response.headers, "hub")
    selves = get_header_link(response.headers, "self")
    if not hubs:
        document_hubs, document_selves = _get_document_links(response)
        hubs = document_hubs
        selves = selves or document_selves
    self_url = selves[0] if selves else topic_url
    logger.info("discovered %d hub(s) for %s", len(hubs), self_url)
    return self_url, hubs


def _get_document_links(response):
    content_type = response.headers.get("Content-Type", "").lower()
    try:
        if content_type.startswith(feed_types):
            doc = lxml.etree.fromstring(response.content)
        else:
            doc = lxml.html.fromstring(response.content)
    except (lxml.etree.LxmlError, ValueError):
        return [], []
    hubs = []
    selves = []
    for link in doc.xpath("//*[local-name()='link']"):
        rels = (link.get("rel") or "").split()
        href = link.get("href")
        if not href:
            continue
        if "hub" in rels:
            hubs.append(href)
        if "self" in rels:
            selves.append(href)
    return hubs, selves
