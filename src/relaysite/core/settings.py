"""
Operator settings for a relaysite deployment.

[SiteSettings][relaysite.core.settings.SiteSettings] is the single Pydantic
model every component is configured from. It is loaded from YAML via
[from_yaml()][relaysite.core.settings.SiteSettings.from_yaml], with two
values falling back to environment variables when absent from the file:

- ``controller_pubkey`` <- ``MASTER_PUBKEY``
- ``preferred_relay``   <- ``DEFAULT_RELAY``

Private keys are never part of the settings; see
[load_optional_keys()][relaysite.utils.keys.load_optional_keys].

Examples:
    ```yaml
    controller_pubkey: 3bf0c63fcb93463407af97a5e5ee64fa883d107ef9e558472c4eb9aaaefa459d
    preferred_relay: wss://relay.example.com
    site_url: https://meetup.example.com
    relays:
      query_timeout: 5
      aggregate_timeout: 10
    scheduler:
      api_url: https://relay.example.com/api
    ```
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Self
from urllib.parse import urlsplit

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from relaysite.models import (
    DEFAULT_FALLBACK_RELAYS,
    STORAGE_KEY,
    ConfigSnapshot,
    NavigationItem,
    RelayEntry,
    RelayMetadata,
    SiteConfig,
)

from .exceptions import ConfigurationError
from .metrics import MetricsConfig
from .yaml import load_yaml


ENV_MASTER_PUBKEY = "MASTER_PUBKEY"
ENV_DEFAULT_RELAY = "DEFAULT_RELAY"
LOCAL_RELAY = "ws://localhost:3334"

DEFAULT_HERO_BACKGROUND = (
    "https://images.unsplash.com/photo-1517248135467-4c7edcad34c4?w=1920&h=1080&fit=crop"
)

DEFAULT_NAVIGATION: tuple[tuple[str, str, str], ...] = (
    ("2", "Events", "/events"),
    ("3", "Blog", "/blog"),
    ("6", "Feed", "/feed"),
    ("4", "About", "/about"),
    ("5", "Contact", "/contact"),
)


# ---------------------------------------------------------------------------
# Nested groups
# ---------------------------------------------------------------------------


class StorageConfig(BaseModel):
    """Where the local configuration snapshot is persisted."""

    path: Path = Field(default=Path(".relaysite"), description="Directory for JSON blobs")
    key: str = Field(default=STORAGE_KEY, min_length=1, description="Storage key")


class RelaysConfig(BaseModel):
    """Relay targets and per-endpoint timeouts (seconds)."""

    fallback: list[str] = Field(
        default_factory=lambda: list(DEFAULT_FALLBACK_RELAYS),
        description="Relays every publish targets in addition to the default relay",
    )
    query_timeout: float = Field(default=5.0, gt=0, le=120, description="Single-relay query")
    publish_timeout: float = Field(default=5.0, gt=0, le=120, description="Per-target publish")
    aggregate_timeout: float = Field(
        default=10.0, gt=0, le=300, description="Per-endpoint multi-relay query"
    )


class SchedulerConfig(BaseModel):
    """Scheduled-publishing HTTP API."""

    api_url: str | None = Field(
        default=None,
        description="Base URL; derived from the preferred relay when unset",
    )
    timeout: float = Field(default=30.0, gt=0, le=300, description="Request timeout")
    max_response_size: int = Field(
        default=1_048_576, ge=1024, description="Maximum JSON response body in bytes"
    )


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class SiteSettings(BaseModel):
    """Deployment-wide settings.

    Attributes:
        controller_pubkey: Hex public key whose kind 30078 event is the
            authoritative site configuration.
        preferred_relay: Operator-preferred default relay. When set it wins
            over any remote or cached ``default_relay``.
        site_url: Public origin of the site. An ``https`` origin marks a
            secure context, which enables the ``client`` tag on publish.
        storage: [StorageConfig][relaysite.core.settings.StorageConfig].
        relays: [RelaysConfig][relaysite.core.settings.RelaysConfig].
        scheduler: [SchedulerConfig][relaysite.core.settings.SchedulerConfig].
        metrics: Prometheus endpoint used by ``relaysite watch``.
        defaults: Optional overlay on the built-in default configuration.
    """

    controller_pubkey: str = Field(default="", description="Hex pubkey of the site controller")
    preferred_relay: str | None = Field(default=None, description="Operator default relay")
    site_url: str | None = Field(default=None, description="Public site origin")
    storage: StorageConfig = Field(default_factory=StorageConfig)
    relays: RelaysConfig = Field(default_factory=RelaysConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    defaults: ConfigSnapshot | None = None

    @model_validator(mode="before")
    @classmethod
    def _env_fallbacks(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            if not data.get("controller_pubkey"):
                data["controller_pubkey"] = os.getenv(ENV_MASTER_PUBKEY, "")
            if not data.get("preferred_relay"):
                data["preferred_relay"] = os.getenv(ENV_DEFAULT_RELAY) or None
        return data

    @field_validator("controller_pubkey")
    @classmethod
    def _normalize_pubkey(cls, value: str) -> str:
        value = value.strip().lower()
        if value and (len(value) != 64 or any(c not in "0123456789abcdef" for c in value)):
            raise ValueError("controller_pubkey must be 64 hex characters")
        return value

    @field_validator("preferred_relay")
    @classmethod
    def _websocket_relay(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        if not value:
            return None
        if not value.startswith(("ws://", "wss://")):
            raise ValueError(f"preferred_relay must use ws:// or wss://, got {value!r}")
        return value

    # -- Derived values -----------------------------------------------------

    @property
    def is_secure_context(self) -> bool:
        return bool(self.site_url) and urlsplit(self.site_url or "").scheme == "https"

    @property
    def site_host(self) -> str | None:
        """Hostname of ``site_url`` (value of the ``client`` tag)."""
        if not self.site_url:
            return None
        return urlsplit(self.site_url).hostname

    @property
    def default_relay_url(self) -> str:
        """The preferred relay, else one derived from ``site_url``, else localhost."""
        if self.preferred_relay:
            return self.preferred_relay
        if self.site_url:
            parts = urlsplit(self.site_url)
            if parts.netloc:
                scheme = "wss" if parts.scheme == "https" else "ws"
                return f"{scheme}://{parts.netloc}"
        return LOCAL_RELAY

    def default_snapshot(self) -> ConfigSnapshot:
        """Build the lowest-priority configuration layer.

        The built-in defaults (light theme, the default relay as the only
        read/write relay, stock hero copy and navigation) overlaid
        field by field with ``defaults`` from the settings file.
        """
        relay = self.default_relay_url
        site = SiteConfig(
            title="My Meetup Site",
            logo="",
            favicon="",
            og_image="",
            hero_title="Welcome to Our Community",
            hero_subtitle="Join us for amazing meetups and events",
            hero_background=DEFAULT_HERO_BACKGROUND,
            show_events=True,
            show_blog=True,
            feed_npubs=[],
            feed_read_from_publish_relays=False,
            max_events=6,
            max_blog_posts=3,
            default_relay=relay,
            publish_relays=list(dict.fromkeys([relay, *self.relays.fallback])),
        )
        snapshot = ConfigSnapshot(
            theme="light",
            relay_metadata=RelayMetadata(relays=[RelayEntry(url=relay)], updated_at=0),
            site_config=site,
            navigation=[
                NavigationItem(id=i, label=label, path=path, is_submenu_parent=False)
                for i, label, path in DEFAULT_NAVIGATION
            ],
        )

        overlay = self.defaults
        if overlay is None:
            return snapshot
        changes: dict[str, Any] = {
            name: value
            for name in ("theme", "relay_metadata", "navigation")
            if (value := getattr(overlay, name)) is not None
        }
        if overlay.site_config is not None:
            changes["site_config"] = site.merged_with(overlay.site_config)
        return snapshot.replace(**changes)

    # -- Factories ----------------------------------------------------------

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Validate a settings mapping.

        Raises:
            ConfigurationError: If validation fails.
        """
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"invalid settings: {e}") from e

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> Self:
        """Load settings from a YAML file via [load_yaml()][relaysite.core.yaml.load_yaml]."""
        return cls.from_dict(load_yaml(config_path))
