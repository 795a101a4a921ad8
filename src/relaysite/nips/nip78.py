"""
NIP-78 application data: the controller's site configuration (kind 30078).

The controller identity publishes one addressable event with
``d = "nostr-meetup-site-config"``. Every site setting travels as its own
tag whose value is a string:

- plain strings (``title``, ``logo``, ``default_relay``, ...) as-is,
- booleans as ``"true"`` / ``"false"`` (anything but ``"true"`` is false),
- integers in base 10,
- lists and mappings (``publish_relays``, ``admin_roles``, ``feed_npubs``,
  ``section_order``, ``blossom_relays``) as JSON.

The logical version is the ``updated_at`` tag, falling back to the event's
``created_at``. Navigation travels in the content as
``{"navigation": [...]}`` (a bare array is accepted).

Decoding is field-scoped: a tag that fails to parse is reported in
[SiteConfigUpdate.errors][relaysite.nips.nip78.SiteConfigUpdate] and the
remaining fields still decode.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, NamedTuple

from pydantic import TypeAdapter, ValidationError

from relaysite.models import (
    SITE_CONFIG_IDENTIFIER,
    EventDraft,
    EventKind,
    NavigationItem,
    SignedEvent,
    SiteConfig,
)


# =============================================================================
# Tag schema
# =============================================================================

_STRING_TAGS = (
    "title",
    "logo",
    "favicon",
    "og_image",
    "hero_title",
    "hero_subtitle",
    "hero_background",
    "default_relay",
    "tweakcn_theme_url",
    "nip19_gateway",
)
_BOOL_TAGS = (
    "show_events",
    "show_blog",
    "feed_read_from_publish_relays",
    "read_only_admin_access",
)
_INT_TAGS = ("max_events", "max_blog_posts")
_JSON_TAGS = (
    "publish_relays",
    "admin_roles",
    "feed_npubs",
    "section_order",
    "blossom_relays",
)

# Order in which the controller event lists its tags
TAG_ORDER: tuple[str, ...] = (
    "title",
    "logo",
    "favicon",
    "og_image",
    "hero_title",
    "hero_subtitle",
    "hero_background",
    "show_events",
    "show_blog",
    "max_events",
    "max_blog_posts",
    "default_relay",
    "publish_relays",
    "admin_roles",
    "feed_npubs",
    "feed_read_from_publish_relays",
    "tweakcn_theme_url",
    "nip19_gateway",
    "section_order",
    "read_only_admin_access",
    "blossom_relays",
)

_NAVIGATION = TypeAdapter(list[NavigationItem])


# =============================================================================
# Types
# =============================================================================


class DecodeFailure(NamedTuple):
    """One tag that could not be decoded."""

    field: str
    reason: str


@dataclass(frozen=True, slots=True)
class SiteConfigUpdate:
    """Decoded controller configuration.

    Attributes:
        fields: Successfully decoded site settings keyed by attribute name.
            Only tags present on the event appear here.
        navigation: Decoded navigation, or ``None`` when the content carried
            none or failed to parse (local navigation is then kept).
        updated_at: Logical version of the event.
        errors: Tags that were present but failed to decode.
    """

    fields: dict[str, Any]
    navigation: list[NavigationItem] | None
    updated_at: int
    errors: tuple[DecodeFailure, ...] = field(default=())

    def site_config(self) -> SiteConfig:
        """The decoded fields as a partial [SiteConfig][relaysite.models.config.SiteConfig]."""
        return SiteConfig.model_validate({**self.fields, "updated_at": self.updated_at})


# =============================================================================
# Decoding
# =============================================================================


def _decode_value(name: str, raw: str) -> Any:
    if name in _BOOL_TAGS:
        return raw == "true"
    if name in _INT_TAGS:
        return int(raw.strip())
    if name in _JSON_TAGS:
        return json.loads(raw)
    return raw


def _decode_navigation(content: str) -> list[NavigationItem] | None:
    if not content:
        return None
    parsed = json.loads(content)
    if isinstance(parsed, dict):
        parsed = parsed.get("navigation")
    if not isinstance(parsed, list):
        return None
    return _NAVIGATION.validate_python(parsed)


def decode_site_config(event: SignedEvent) -> SiteConfigUpdate:
    """Decode the controller's configuration event.

    Unknown tags are ignored. Each known tag is decoded and then checked
    against the [SiteConfig][relaysite.models.config.SiteConfig] field type
    individually, so a malformed ``admin_roles`` does not prevent ``title``
    from applying.

    Raises:
        ValueError: If *event* is not a kind 30078 event addressed by
            the site configuration identifier.
    """
    if event.kind != EventKind.APP_DATA or event.identifier != SITE_CONFIG_IDENTIFIER:
        raise ValueError(
            f"not a site configuration event: kind={event.kind} d={event.identifier!r}"
        )

    fields: dict[str, Any] = {}
    errors: list[DecodeFailure] = []

    for name in TAG_ORDER:
        raw = event.tag_value(name)
        if raw is None:
            continue
        try:
            value = _decode_value(name, raw)
            SiteConfig.model_validate({name: value})
        except (ValueError, ValidationError) as e:
            errors.append(DecodeFailure(name, str(e).splitlines()[0]))
            continue
        fields[name] = value

    updated_at = event.created_at
    raw_updated_at = event.tag_value("updated_at")
    if raw_updated_at is not None:
        try:
            updated_at = int(raw_updated_at.strip())
        except ValueError:
            errors.append(DecodeFailure("updated_at", f"not an integer: {raw_updated_at!r}"))

    navigation: list[NavigationItem] | None = None
    try:
        navigation = _decode_navigation(event.content)
    except (ValueError, ValidationError) as e:
        errors.append(DecodeFailure("navigation", str(e).splitlines()[0]))

    return SiteConfigUpdate(
        fields=fields, navigation=navigation, updated_at=updated_at, errors=tuple(errors)
    )


# =============================================================================
# Encoding
# =============================================================================


def _encode_value(name: str, value: Any) -> str:
    if name in _BOOL_TAGS:
        return "true" if value else "false"
    if name in _INT_TAGS:
        return str(value)
    if name in _JSON_TAGS:
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def encode_site_config(
    site: SiteConfig,
    navigation: list[NavigationItem] | None,
    updated_at: int,
) -> EventDraft:
    """Build the kind 30078 draft the controller publishes.

    ``updated_at`` is written both as the tag and as the draft's
    ``created_at`` so the two versions agree.
    """
    values = site.fields()
    tags: list[tuple[str, ...]] = [("d", SITE_CONFIG_IDENTIFIER)]
    tags.extend(
        (name, _encode_value(name, values[name])) for name in TAG_ORDER if name in values
    )
    tags.append(("updated_at", str(updated_at)))

    content = json.dumps(
        {"navigation": [item.to_json_dict() for item in navigation or []]},
        separators=(",", ":"),
    )
    return EventDraft(
        kind=EventKind.APP_DATA,
        content=content,
        tags=tuple(tags),
        created_at=updated_at,
    )
