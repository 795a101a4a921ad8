"""
Configuration snapshot schema.

Pydantic models describing the application configuration that the
[ConfigStore][relaysite.services.store.ConfigStore] persists and the
[ConfigReconciler][relaysite.services.reconciler.ConfigReconciler] merges.

Every top-level field of [ConfigSnapshot][relaysite.models.config.ConfigSnapshot]
is optional so the same model validates a partial local cache and a fully
resolved configuration. Unknown keys are ignored, while leaf values are
strictly typed: a string where a boolean is expected fails validation
instead of being coerced.

Python attribute names are snake_case; the persisted and wire JSON uses the
legacy camelCase names (``relayMetadata``, ``siteConfig``, ``updatedAt``,
navigation ``name``/``href``/``isSubmenu``) so blobs written by earlier
clients keep loading.

Note:
    Sub-records carrying ``updated_at`` (``relay_metadata`` and
    ``site_config``) are versioned independently. Merges compare those
    logical timestamps, never arrival time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    StrictStr,
    field_validator,
)
from pydantic.alias_generators import to_camel


Theme = Literal["dark", "light", "system"]
AdminRole = Literal["primary", "secondary"]


class _Schema(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    def to_json_dict(self) -> dict[str, Any]:
        """Dump with wire/storage aliases, dropping unset (``None``) values."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Relay list
# ---------------------------------------------------------------------------


class RelayEntry(_Schema):
    """One relay of the current user's NIP-65 relay list."""

    url: StrictStr
    read: StrictBool = Field(
        default=True,
        validation_alias=AliasChoices("read", "canRead"),
        serialization_alias="read",
    )
    write: StrictBool = Field(
        default=True,
        validation_alias=AliasChoices("write", "canWrite"),
        serialization_alias="write",
    )

    @field_validator("url")
    @classmethod
    def _websocket_url(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith(("ws://", "wss://")):
            raise ValueError(f"relay url must use ws:// or wss://, got {value!r}")
        return value


class RelayMetadata(_Schema):
    """Read/write relay preferences of the current identity.

    Attributes:
        relays: Ordered relay entries.
        updated_at: ``created_at`` of the relay-list event this was taken
            from (0 for built-in defaults).
    """

    relays: list[RelayEntry]
    updated_at: StrictInt = Field(
        validation_alias=AliasChoices("updatedAt", "updated_at"),
        serialization_alias="updatedAt",
    )

    @property
    def read_urls(self) -> list[str]:
        return [r.url for r in self.relays if r.read]

    @property
    def write_urls(self) -> list[str]:
        return [r.url for r in self.relays if r.write]


# ---------------------------------------------------------------------------
# Site configuration
# ---------------------------------------------------------------------------


class SiteConfig(_Schema):
    """Site-wide settings authored by the controller identity.

    All fields are optional; a missing field means "not set at this layer"
    and lets a lower-priority layer (defaults) show through.
    """

    title: StrictStr | None = None
    logo: StrictStr | None = None
    favicon: StrictStr | None = None
    og_image: StrictStr | None = None
    hero_title: StrictStr | None = None
    hero_subtitle: StrictStr | None = None
    hero_background: StrictStr | None = None
    show_events: StrictBool | None = None
    show_blog: StrictBool | None = None
    max_events: StrictInt | None = None
    max_blog_posts: StrictInt | None = None
    default_relay: StrictStr | None = None
    publish_relays: list[StrictStr] | None = None
    admin_roles: dict[StrictStr, AdminRole] | None = None
    tweakcn_theme_url: StrictStr | None = None
    section_order: list[StrictStr] | None = None
    feed_npubs: list[StrictStr] | None = None
    feed_read_from_publish_relays: StrictBool | None = None
    read_only_admin_access: StrictBool | None = None
    blossom_relays: list[StrictStr] | None = None
    nip19_gateway: StrictStr | None = None
    updated_at: StrictInt | None = None

    def fields(self) -> dict[str, Any]:
        """Return the set (non-``None``) fields keyed by attribute name."""
        return self.model_dump(exclude_none=True)

    def merged_with(self, other: SiteConfig | dict[str, Any]) -> SiteConfig:
        """Merge key by key; set fields of *other* win over this instance."""
        update = other.fields() if isinstance(other, SiteConfig) else dict(other)
        return SiteConfig.model_validate({**self.fields(), **update})


# ---------------------------------------------------------------------------
# Navigation
# ---------------------------------------------------------------------------


class NavigationItem(_Schema):
    """One navigation entry.

    ``parent_id`` should reference the ``id`` of another entry. Dangling
    references are tolerated and rendered as top-level entries by
    [navigation_tree()][relaysite.models.config.navigation_tree].
    """

    id: StrictStr
    label: StrictStr = Field(
        validation_alias=AliasChoices("name", "label"),
        serialization_alias="name",
    )
    path: StrictStr = Field(
        validation_alias=AliasChoices("href", "path"),
        serialization_alias="href",
    )
    is_submenu_parent: StrictBool = Field(
        validation_alias=AliasChoices("isSubmenu", "isSubmenuParent"),
        serialization_alias="isSubmenu",
    )
    is_label_only: StrictBool | None = None
    parent_id: StrictStr | None = None


@dataclass(slots=True)
class NavigationNode:
    """Resolved navigation entry with its children."""

    item: NavigationItem
    children: list[NavigationItem] = field(default_factory=list)


def navigation_tree(items: list[NavigationItem]) -> list[NavigationNode]:
    """Group navigation entries under their parents.

    Entries whose ``parent_id`` is missing, refers to themselves or refers to
    an id not present in *items* are returned as top-level nodes. Order of
    *items* is preserved at both levels.
    """
    ids = {item.id for item in items}
    nodes: list[NavigationNode] = []
    by_id: dict[str, NavigationNode] = {}
    children: list[NavigationItem] = []

    for item in items:
        if item.parent_id and item.parent_id in ids and item.parent_id != item.id:
            children.append(item)
            continue
        node = NavigationNode(item)
        nodes.append(node)
        by_id.setdefault(item.id, node)

    for child in children:
        parent = by_id.get(child.parent_id or "")
        if parent is None:
            # parent is itself a child: flatten to top level
            nodes.append(NavigationNode(child))
        else:
            parent.children.append(child)
    return nodes


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


class ConfigSnapshot(_Schema):
    """Partial or fully resolved application configuration.

    Attributes:
        theme: UI theme preference.
        relay_metadata: Current user's relay preferences (NIP-65).
        site_config: Controller-authored site settings.
        navigation: Ordered navigation entries.

    Examples:
        ```python
        snapshot = ConfigSnapshot.model_validate(json.loads(blob))
        snapshot.site_config.title
        snapshot.to_json_dict()   # camelCase, None values dropped
        ```
    """

    theme: Theme | None = None
    relay_metadata: RelayMetadata | None = Field(
        default=None,
        validation_alias=AliasChoices("relayMetadata", "relayList", "relay_metadata"),
        serialization_alias="relayMetadata",
    )
    site_config: SiteConfig | None = None
    navigation: list[NavigationItem] | None = None

    def replace(self, **changes: Any) -> ConfigSnapshot:
        """Return a copy with the given top-level fields replaced."""
        return self.model_copy(update=changes)


EMPTY_SNAPSHOT = ConfigSnapshot()
