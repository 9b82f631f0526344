"""Reporting of metrics to a statsd server."""

from __future__ import annotations

import logging
import socket
import threading
from datetime import timedelta
from typing import Any, Callable, Mapping, Union

logger = logging.getLogger(__name__)

Sink = Callable[[bytes], Any]
MetricValue = Union[int, float, timedelta]

_KINDS = {
    "counter": "c",
    "gauge": "g",
    "timer": "ms",
    "histogram": "h",
}


def _format_value(value: MetricValue) -> str:
    if isinstance(value, bool):
        raise TypeError("a metric value must be a number or a duration, not a bool")
    if isinstance(value, timedelta):
        return str(value // timedelta(milliseconds=1))
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return repr(value)
    raise TypeError(f"a metric value must be a number or a duration, got {value!r}")


class MetricsClient:
    """Formats metrics as statsd lines and hands them to a sink.

    The client's own tags are added to every metric, after the metric's tags.
    """

    def __init__(self, prefix: str, sink: Sink, tags: Mapping[str, str] | None = None) -> None:
        self.prefix = prefix
        self.tags = dict(sorted((tags or {}).items()))
        self._sink = sink

    def __repr__(self) -> str:
        return f"MetricsClient(prefix={self.prefix!r}, tags={self.tags!r})"

    def format_metric(
        self,
        name: str,
        value: MetricValue,
        kind: str,
        tags: Mapping[str, str] | None = None,
    ) -> str:
        """Render one metric as a statsd line."""
        try:
            code = _KINDS[kind]
        except KeyError:
            raise ValueError(
                f"unknown metric kind {kind!r}, expected one of " + ", ".join(_KINDS)
            ) from None
        prefix = self.prefix.rstrip(".")
        key = f"{prefix}.{name}" if prefix else name
        line = f"{key}:{_format_value(value)}|{code}"
        all_tags = [*(tags or {}).items(), *self.tags.items()]
        if all_tags:
            line += "|#" + ",".join(f"{tag}:{tag_value}" for tag, tag_value in all_tags)
        return line

    def send(
        self,
        name: str,
        value: MetricValue,
        kind: str,
        tags: Mapping[str, str] | None = None,
    ) -> None:
        """Send one metric; failures to deliver it are logged and dropped."""
        line = self.format_metric(name, value, kind, tags)
        try:
            self._sink(line.encode("utf-8"))
        except OSError as exc:
            logger.debug("failed to send metric %s: %s", name, exc)


_client_lock = threading.Lock()
_client: MetricsClient | None = None


def set_client(client: MetricsClient | None) -> None:
    """Install the client used by the module-level metric functions; None disables them."""
    global _client
    with _client_lock:
        _client = client


def get_client() -> MetricsClient | None:
    """Return the installed client, if any."""
    with _client_lock:
        return _client


def _split_host(host: str | tuple[str, int]) -> tuple[str, int]:
    if isinstance(host, tuple):
        return host
    name, sep, port = host.rpartition(":")
    if not sep or not name:
        raise ValueError(f"statsd address must have the form host:port, got {host!r}")
    return name.strip("[]"), int(port)


def configure_statsd(
    prefix: str,
    host: str | tuple[str, int],
    tags: Mapping[str, str] | None = None,
) -> MetricsClient:
    """Report metrics over UDP to the statsd server at ``host`` and return the client."""
    name, port = _split_host(host)
    addresses = socket.getaddrinfo(name, port, type=socket.SOCK_DGRAM)
    if not addresses:
        raise OSError(f"could not resolve statsd address {host!r}")
    family, _type, _proto, _canon, address = addresses[0]
    logger.info("Reporting metrics to statsd at %s", address)
    sock = socket.socket(family, socket.SOCK_DGRAM)
    sock.bind(("::", 0) if family == socket.AF_INET6 else ("0.0.0.0", 0))
    sock.setblocking(False)

    def sink(data: bytes) -> None:
        sock.sendto(data, address)

    client = MetricsClient(prefix, sink, tags)
    set_client(client)
    return client


def _emit(kind: str, name: str, value: MetricValue, tags: Mapping[str, str]) -> None:
    client = get_client()
    if client is not None:
        client.send(name, value, kind, tags)


def counter(name: str, value: MetricValue, **kwargs: str) -> None:
    """Add ``value`` to a counter; keyword arguments become tags."""
    _emit("counter", name, value, kwargs)


def gauge(name: str, value: MetricValue, **kwargs: str) -> None:
    """Set a gauge; keyword arguments become tags."""
    _emit("gauge", name, value, kwargs)


def timer(name: str, value: MetricValue, **kwargs: str) -> None:
    """Record a duration, or a raw number such as a size; keyword arguments become tags."""
    _emit("timer", name, value, kwargs)


def histogram(name: str, value: MetricValue, **kwargs: str) -> None:
    """Record a histogram value; keyword arguments become tags."""
    _emit("histogram", name, value, kwargs)