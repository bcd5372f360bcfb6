"""Factories for constructing components from configuration."""

from __future__ import annotations

from .browser.base import BrowserConnector
from .browser.discovery import CdpEndpointDiscovery, EndpointDiscovery
from .browser.playwright_session import PlaywrightConnector
from .config import HandlerConfig
from .handler import WebUiChatHandler


def build_discovery(config: HandlerConfig) -> EndpointDiscovery:
    return CdpEndpointDiscovery(config.discovery_hosts, timeout=config.discovery_timeout)


def build_connector(config: HandlerConfig) -> BrowserConnector:
    return PlaywrightConnector()


def build_handler(config: HandlerConfig) -> WebUiChatHandler:
    return WebUiChatHandler(
        config,
        connector=build_connector(config),
        discovery=build_discovery(config),
    )
