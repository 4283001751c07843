"""Notification sender posting JSON to an HTTP webhook."""

from __future__ import annotations

import json
import ssl
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit

import requests
from requests.adapters import HTTPAdapter

from .notification import Config, Sender, register_sender

SENDER_NAME = "webhook"
TIMEOUT = 5.0

_CONFIG_KEYS = {
    "endpoint": "endpoint",
    "servername": "server_name",
    "certfile": "cert_file",
    "keyfile": "key_file",
    "cafile": "ca_file",
    "proxy": "proxy",
}


@dataclass(frozen=True)
class WebhookConfig:
    """Settings of a webhook sender."""

    endpoint: str = ""
    server_name: str = ""
    cert_file: str = ""
    key_file: str = ""
    ca_file: str = ""
    proxy: str = ""


def _scalar_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    raise ValueError("invalid configuration")


def _parse_config(value: Any) -> WebhookConfig:
    if value is None:
        return WebhookConfig()
    if not isinstance(value, Mapping):
        raise ValueError("invalid configuration")
    settings = {
        attr: _scalar_text(value[key])
        for key, attr in _CONFIG_KEYS.items()
        if value.get(key) is not None
    }
    return WebhookConfig(**settings)


def _check_request_uri(text: str) -> None:
    """Raise ValueError unless ``text`` is an absolute URI or an absolute path."""
    if any(ord(c) < 0x20 or ord(c) == 0x7F for c in text):
        raise ValueError("invalid control character in URL")
    parts = urlsplit(text)
    _ = parts.port
    if not parts.scheme and not text.startswith("/"):
        raise ValueError("invalid URI for request")


def tls_settings(config: WebhookConfig) -> ssl.SSLContext | None:
    """Build a client TLS context for certificate authentication.

    Returns None unless both a certificate and a key file are given. Without
    a CA file the system trust store is used. Raises OSError when a file
    cannot be read or the key pair cannot be loaded.
    """
    if not config.cert_file or not config.key_file:
        return None

    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.load_cert_chain(config.cert_file, config.key_file)

    if config.ca_file:
        with open(config.ca_file, "rb") as file:
            ca_data = file.read().decode("latin-1")
        try:
            context.load_verify_locations(cadata=ca_data)
        except (ssl.SSLError, ValueError):
            pass
    else:
        context.load_default_certs()
    return context


class _TLSAdapter(HTTPAdapter):
    """Transport adapter using a fixed TLS context and optional server name."""

    def __init__(self, context: ssl.SSLContext, server_name: str) -> None:
        self._context = context
        self._server_name = server_name
        super().__init__()

    def _tls_kwargs(self, kwargs: dict[str, Any]) -> dict[str, Any]:
        kwargs["ssl_context"] = self._context
        if self._server_name:
            kwargs["server_hostname"] = self._server_name
        return kwargs

    def init_poolmanager(self, connections, maxsize, block=False, **pool_kwargs):
        super().init_poolmanager(connections, maxsize, block, **self._tls_kwargs(pool_kwargs))

    def proxy_manager_for(self, proxy, **proxy_kwargs):
        return super().proxy_manager_for(proxy, **self._tls_kwargs(proxy_kwargs))


class WebhookSender(Sender):
    """Posts ``{"Notification": {"Name": ...}}`` to a configured endpoint."""

    def __init__(self) -> None:
        self.endpoint = ""
        self._session: requests.Session | None = None

    def configure(self, config: Config | None) -> bool:
        if config is None or "http" not in config.params:
            return False
        settings = _parse_config(config.params["http"])

        if not settings.endpoint:
            return False
        try:
            _check_request_uri(settings.endpoint)
        except ValueError as err:
            raise ValueError(f"could not parse endpoint URL: {err}") from err

        session = requests.Session()
        try:
            context = tls_settings(settings)
        except (OSError, ValueError) as err:
            raise ValueError(f"could not initialize client cert auth: {err}") from err
        if context is not None:
            session.mount("https://", _TLSAdapter(context, settings.server_name))
            if settings.ca_file:
                session.verify = settings.ca_file

        if settings.proxy:
            try:
                _check_request_uri(settings.proxy)
            except ValueError as err:
                raise ValueError(f"could not parse proxy URL: {err}") from err
            session.proxies = {"http": settings.proxy, "https": settings.proxy}

        self.endpoint = settings.endpoint
        self._session = session
        return True

    def send(self, notification_name: str) -> None:
        if self._session is None or not self.endpoint:
            raise RuntimeError("webhook sender is not configured")
        body = json.dumps(
            {"Notification": {"Name": notification_name}}, separators=(",", ":")
        )
        response = self._session.post(
            self.endpoint,
            data=body.encode("utf-8"),
            headers={"Content-Type": "application/json"},
            timeout=TIMEOUT,
        )
        with response:
            if response.status_code not in (200, 201):
                raise requests.HTTPError(
                    f"got status {response.status_code}, expected 200/201",
                    response=response,
                )


register_sender(SENDER_NAME, WebhookSender())