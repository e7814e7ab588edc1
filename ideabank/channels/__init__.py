"""Publishing channels: configuration registry and client factory."""

import logging
from dataclasses import fields, replace
from pathlib import Path
from typing import Optional

import yaml

from ideabank.channels.base import (
    LONG_FORM,
    SHORT_FORM,
    ChannelClient,
    ChannelConfig,
    PublishReceipt,
)
from ideabank.channels.vault import VaultChannelClient
from ideabank.channels.webhook import WebhookChannelClient
from ideabank.config import settings

logger = logging.getLogger(__name__)

DEFAULT_CHANNELS: dict[str, ChannelConfig] = {
    "twitter": ChannelConfig("twitter", window_minutes=360, daily_cap=3, char_limit=280),
    "bluesky": ChannelConfig("bluesky", window_minutes=360, daily_cap=3, char_limit=300),
    "threads": ChannelConfig("threads", window_minutes=360, daily_cap=3, char_limit=500),
    "reddit": ChannelConfig("reddit", window_minutes=1440, daily_cap=1, char_limit=40000),
    "substack": ChannelConfig(
        "substack", window_minutes=1440, daily_cap=1, capability=LONG_FORM
    ),
    "book-section": ChannelConfig(
        "book-section", window_minutes=0, capability=LONG_FORM
    ),
}

_CONFIG_FIELDS = {f.name for f in fields(ChannelConfig)}


def load_channel_configs(path: Optional[str] = None) -> dict[str, ChannelConfig]:
    """Built-in channels, overridden/extended by a YAML file.

    File format::

        channels:
          twitter:
            client: webhook
            webhook_url: https://relay.example/twitter
            daily_cap: 2
          medium:
            window_minutes: 1440
            capability: long-form drafting
    """
    channels = {name: replace(config) for name, config in DEFAULT_CHANNELS.items()}
    path = path if path is not None else settings.CHANNELS_FILE
    if not path:
        return channels

    file_path = Path(path)
    if not file_path.exists():
        logger.warning(f"Channels file not found: {file_path}, using defaults")
        return channels

    with open(file_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    for name, overrides in (data.get("channels") or {}).items():
        overrides = overrides or {}
        unknown = set(overrides) - _CONFIG_FIELDS
        if unknown:
            raise ValueError(f"Channel '{name}': unknown settings {sorted(unknown)}")
        base = channels.get(name) or ChannelConfig(name)
        channels[name] = replace(base, **{k: v for k, v in overrides.items() if k != "name"})

    logger.info(f"Loaded {len(channels)} channels from {file_path}")
    return channels


def build_client(config: ChannelConfig) -> ChannelClient:
    """Create the client a channel is configured for."""
    if config.client == "webhook":
        return WebhookChannelClient(config)
    if config.client == "vault":
        return VaultChannelClient(config)
    raise ValueError(f"Channel '{config.name}': unknown client type '{config.client}'")


__all__ = [
    "DEFAULT_CHANNELS",
    "LONG_FORM",
    "SHORT_FORM",
    "ChannelClient",
    "ChannelConfig",
    "PublishReceipt",
    "VaultChannelClient",
    "WebhookChannelClient",
    "build_client",
    "load_channel_configs",
]
