"""
Unit tests for models.event module.

Tests:
- compute_event_id digest properties
- SignedEvent construction validation, tag freezing and signature checks
- Tag accessors, address and replacement key
- NIP-01 dict conversion
- EventDraft validation and helpers
- Last-writer-wins comparator (is_newer, newest_event)
"""

import pytest

from relaysite.models import (
    EventDraft,
    EventKind,
    SignedEvent,
    compute_event_id,
    is_newer,
    newest_event,
)
from tests.conftest import CONTROLLER, FAKE_SIG, USER, make_event, sign_draft


# ============================================================================
# compute_event_id
# ============================================================================


class TestComputeEventId:
    """Tests for the NIP-01 id digest."""

    def test_returns_64_lowercase_hex(self) -> None:
        event_id = compute_event_id(USER, 1, 1, [], "hello")
        assert len(event_id) == 64
        assert event_id == event_id.lower()
        int(event_id, 16)

    def test_deterministic(self) -> None:
        a = compute_event_id(USER, 1, 1, [["t", "x"]], "hello")
        b = compute_event_id(USER, 1, 1, (("t", "x"),), "hello")
        assert a == b

    def test_changes_with_any_field(self) -> None:
        base = compute_event_id(USER, 1, 1, [], "hello")
        assert compute_event_id(USER, 2, 1, [], "hello") != base
        assert compute_event_id(USER, 1, 2, [], "hello") != base
        assert compute_event_id(USER, 1, 1, [["t", "x"]], "hello") != base
        assert compute_event_id(USER, 1, 1, [], "hello!") != base
        assert compute_event_id(CONTROLLER, 1, 1, [], "hello") != base


# ============================================================================
# SignedEvent
# ============================================================================


class TestSignedEventValidation:
    """Tests for eager validation in SignedEvent.__post_init__."""

    def test_valid_event(self) -> None:
        event = make_event(content="hi")
        assert event.verify_id()

    def test_tags_frozen_to_tuples(self) -> None:
        event = make_event(tags=[["t", "nostr"], ["p", USER]])
        assert event.tags == (("t", "nostr"), ("p", USER))

    @pytest.mark.parametrize(
        ("field", "value"),
        [
            ("id", "abc"),
            ("id", "A" * 64),
            ("pubkey", "z" * 64),
            ("sig", "f" * 64),
        ],
    )
    def test_rejects_bad_hex(self, field: str, value: str) -> None:
        data = make_event().to_dict()
        data[field] = value
        with pytest.raises(ValueError, match=field):
            SignedEvent.from_dict(data)

    def test_rejects_negative_created_at(self) -> None:
        data = make_event().to_dict()
        data["created_at"] = -1
        with pytest.raises(ValueError, match="non-negative"):
            SignedEvent.from_dict(data)

    def test_rejects_bool_kind(self) -> None:
        data = make_event().to_dict()
        data["kind"] = True
        with pytest.raises(TypeError, match="kind"):
            SignedEvent.from_dict(data)

    def test_rejects_kind_out_of_range(self) -> None:
        data = make_event().to_dict()
        data["kind"] = 70_000
        with pytest.raises(ValueError, match="kind"):
            SignedEvent.from_dict(data)

    def test_rejects_empty_tag(self) -> None:
        data = make_event().to_dict()
        data["tags"] = [[]]
        with pytest.raises(ValueError, match="non-empty"):
            SignedEvent.from_dict(data)

    def test_rejects_non_string_tag_value(self) -> None:
        data = make_event().to_dict()
        data["tags"] = [["t", 1]]
        with pytest.raises(TypeError, match="str"):
            SignedEvent.from_dict(data)

    def test_from_dict_missing_field(self) -> None:
        data = make_event().to_dict()
        del data["sig"]
        with pytest.raises(KeyError):
            SignedEvent.from_dict(data)

    def test_verify_id_detects_tampering(self) -> None:
        data = make_event(content="original").to_dict()
        data["content"] = "tampered"
        assert not SignedEvent.from_dict(data).verify_id()

    def test_verify_signature_real_key(self) -> None:
        event = sign_draft(EventDraft(kind=1, content="signed", created_at=1_700_000_000))
        assert event.verify_signature()

    def test_verify_signature_rejects_other_signature(self) -> None:
        first = sign_draft(EventDraft(kind=1, content="one", created_at=1_700_000_000))
        second = sign_draft(EventDraft(kind=1, content="two", created_at=1_700_000_000))
        data = first.to_dict()
        data["sig"] = second.sig
        assert not SignedEvent.from_dict(data).verify_signature()

    def test_verify_signature_fake_sig(self) -> None:
        assert not make_event().verify_signature()

    def test_sig_hidden_from_repr(self) -> None:
        assert FAKE_SIG not in repr(make_event())


class TestSignedEventTags:
    """Tests for tag accessors and coordinates."""

    def test_tag_value_first_match(self) -> None:
        event = make_event(tags=[["t", "a"], ["t", "b"]])
        assert event.tag_value("t") == "a"
        assert event.tag_value("missing") is None

    def test_tag_value_skips_single_element_tags(self) -> None:
        event = make_event(tags=[["t"], ["t", "b"]])
        assert event.tag_value("t") == "b"

    def test_tag_values(self) -> None:
        event = make_event(tags=[["r", "wss://a"], ["p", USER], ["r", "wss://b"]])
        assert event.tag_values("r") == ["wss://a", "wss://b"]

    def test_identifier_defaults_to_empty(self) -> None:
        assert make_event().identifier == ""
        assert make_event(tags=[["d", "x"]]).identifier == "x"

    def test_address_for_addressable_kind(self) -> None:
        event = make_event(kind=EventKind.FORM, pubkey=CONTROLLER, tags=[["d", "signup"]])
        assert event.address == f"30168:{CONTROLLER}:signup"

    def test_address_none_for_regular_kind(self) -> None:
        assert make_event(kind=1).address is None

    def test_replacement_key(self) -> None:
        relay_list = make_event(kind=EventKind.RELAY_LIST)
        app_data = make_event(kind=EventKind.APP_DATA, tags=[["d", "cfg"]])
        assert relay_list.replacement_key == (USER, 10002, "")
        assert app_data.replacement_key == (USER, 30078, "cfg")
        assert make_event(kind=1).replacement_key is None


class TestSignedEventConversion:
    """Tests for NIP-01 JSON conversion."""

    def test_to_dict_shape(self) -> None:
        event = make_event(kind=7, tags=[["e", "x"]], content="+")
        data = event.to_dict()
        assert data["kind"] == 7
        assert data["tags"] == [["e", "x"]]
        assert set(data) == {"id", "pubkey", "created_at", "kind", "tags", "content", "sig"}

    def test_from_dict_restores_equal_event(self) -> None:
        event = make_event(tags=[["t", "x"]], content="body")
        assert SignedEvent.from_dict(event.to_dict()) == event

    def test_to_json_compact(self) -> None:
        assert ", " not in make_event(tags=[["t", "x"]]).to_json()


# ============================================================================
# EventDraft
# ============================================================================


class TestEventDraft:
    """Tests for EventDraft."""

    def test_defaults(self) -> None:
        draft = EventDraft(kind=1)
        assert draft.content == ""
        assert draft.tags == ()
        assert draft.created_at is None

    def test_enum_kind_coerced_to_int(self) -> None:
        draft = EventDraft(kind=EventKind.APP_DATA)
        assert type(draft.kind) is int
        assert draft.kind == 30078

    def test_tags_frozen(self) -> None:
        draft = EventDraft(kind=1, tags=[["t", "x"]])
        assert draft.tags == (("t", "x"),)

    def test_rejects_non_string_content(self) -> None:
        with pytest.raises(TypeError, match="content"):
            EventDraft(kind=1, content=None)  # type: ignore[arg-type]

    def test_rejects_negative_created_at(self) -> None:
        with pytest.raises(ValueError, match="created_at"):
            EventDraft(kind=1, created_at=-5)

    def test_has_tag(self) -> None:
        draft = EventDraft(kind=1, tags=[["client", "x"]])
        assert draft.has_tag("client")
        assert not draft.has_tag("t")

    def test_with_tag_returns_copy(self) -> None:
        draft = EventDraft(kind=1, content="c", created_at=5)
        tagged = draft.with_tag("client", "meetup.example.com")
        assert tagged.tags == (("client", "meetup.example.com"),)
        assert tagged.content == "c"
        assert tagged.created_at == 5
        assert draft.tags == ()


# ============================================================================
# Last-writer-wins
# ============================================================================


class TestIsNewer:
    """Tests for the strict-greater comparator."""

    def test_greater_wins(self) -> None:
        assert is_newer(150, 100)

    def test_older_loses(self) -> None:
        assert not is_newer(50, 100)

    def test_equal_never_replaces(self) -> None:
        assert not is_newer(100, 100)

    def test_missing_local_always_superseded(self) -> None:
        assert is_newer(0, None)


class TestNewestEvent:
    """Tests for newest_event selection."""

    def test_empty(self) -> None:
        assert newest_event([]) is None

    def test_highest_created_at(self) -> None:
        old = make_event(created_at=50)
        new = make_event(created_at=150)
        mid = make_event(created_at=100)
        assert newest_event([old, new, mid]) == new

    def test_tie_broken_by_id_descending(self) -> None:
        a = make_event(created_at=100, content="a")
        b = make_event(created_at=100, content="b")
        expected = max(a, b, key=lambda e: e.id)
        assert newest_event([a, b]) == expected
        assert newest_event([b, a]) == expected

    def test_accepts_generator(self) -> None:
        events = [make_event(created_at=t) for t in (1, 3, 2)]
        winner = newest_event(e for e in events)
        assert winner is not None
        assert winner.created_at == 3
