"""Unit tests for webhook payload normalization."""

from __future__ import annotations

import typing as typ

import pytest

from autodeploy.errors import NormalizationError, NormalizationErrorKind
from autodeploy.events import (
    PullRequestEvent,
    PushEvent,
    event_to_dict,
    normalize,
)
from tests.helpers.event_builders import PullRequestPayloadSpec, PushPayloadSpec


class TestNormalizeValidPayloads:
    """Supported payloads become frozen event variants."""

    def test_push_payload(self) -> None:
        """A push payload yields a PushEvent with every field populated."""
        event = normalize(PushPayloadSpec(branch="main").build())

        assert isinstance(event, PushEvent), "expected a PushEvent"
        assert event.branch == "main"
        assert event.repo.slug == "octo/reef"
        assert event.repo.name == "reef"
        assert event.commit.id == "abc123def456"
        assert event.sender.username == "marina"

    def test_pull_request_payload(self) -> None:
        """A pull request payload yields a PullRequestEvent."""
        event = normalize(PullRequestPayloadSpec(number=42).build())

        assert isinstance(event, PullRequestEvent), "expected a PullRequestEvent"
        assert event.number == 42
        assert (event.base, event.head) == ("main", "feature/tides")

    def test_type_taken_from_hint_when_payload_omits_it(self) -> None:
        """The out-of-band hint fills in a missing ``type`` key."""
        payload = PushPayloadSpec().build()
        del payload["type"]

        event = normalize(payload, "push")

        assert event.type == "push", "hint should supply the event type"

    def test_unknown_keys_are_ignored(self) -> None:
        """Extra upstream fields do not break normalization."""
        payload = PushPayloadSpec().build()
        payload["installation"] = {"id": 9}
        payload["repo"]["private"] = True

        assert normalize(payload).repo.id == 101

    def test_events_are_immutable(self) -> None:
        """Events cannot be modified once built."""
        event = normalize(PushPayloadSpec().build())

        with pytest.raises(AttributeError):
            event.branch = "other"  # type: ignore[misc]

    def test_event_to_dict_uses_wire_names(self) -> None:
        """Rendering restores the ``repo`` key for the repository name."""
        payload = PushPayloadSpec().build()

        rendered = event_to_dict(normalize(payload))

        assert rendered == payload, "round trip should reproduce the payload"


class TestNormalizeRejections:
    """Unsupported and malformed payloads raise NormalizationError."""

    @pytest.mark.parametrize("event_type", ["issue_comment", "release", "tag"])
    def test_unsupported_event_type(self, event_type: str) -> None:
        """Event types outside push and pull_request are unsupported."""
        payload = {**PushPayloadSpec().build(), "type": event_type}

        with pytest.raises(NormalizationError) as excinfo:
            normalize(payload)

        assert excinfo.value.kind is NormalizationErrorKind.UNSUPPORTED_EVENT
        assert excinfo.value.field is None

    @pytest.mark.parametrize(
        ("mutate", "field"),
        [
            pytest.param(lambda p: p.pop("branch"), "branch", id="missing-branch"),
            pytest.param(lambda p: p.pop("sender"), "sender", id="missing-sender"),
            pytest.param(
                lambda p: p["repo"].pop("owner"), "repo.owner", id="missing-owner"
            ),
            pytest.param(
                lambda p: p["repo"].update(id="101"), "repo.id", id="string-repo-id"
            ),
            pytest.param(
                lambda p: p["commit"].update(id=""), "commit.id", id="empty-commit"
            ),
        ],
    )
    def test_malformed_fields_are_reported(
        self,
        mutate: typ.Callable[[dict[str, typ.Any]], object],
        field: str,
    ) -> None:
        """Missing or ill-typed fields are reported with their dotted path."""
        payload = PushPayloadSpec().build()
        mutate(payload)

        with pytest.raises(NormalizationError) as excinfo:
            normalize(payload)

        assert excinfo.value.kind is NormalizationErrorKind.MALFORMED_PAYLOAD
        assert excinfo.value.field == field, (
            f"expected field {field!r}, got {excinfo.value.field!r}"
        )

    def test_pull_request_number_must_be_integer(self) -> None:
        """A string PR number is malformed rather than coerced."""
        payload = PullRequestPayloadSpec().build()
        payload["number"] = "42"

        with pytest.raises(NormalizationError) as excinfo:
            normalize(payload)

        assert excinfo.value.field == "number"

    @pytest.mark.parametrize("payload", [None, [], "push", 3])
    def test_non_object_payload(self, payload: object) -> None:
        """Only JSON objects can be normalized."""
        with pytest.raises(NormalizationError) as excinfo:
            normalize(payload)

        assert excinfo.value.field == "$"

    def test_missing_type_without_hint(self) -> None:
        """A payload with no type and no hint is malformed at ``type``."""
        payload = PushPayloadSpec().build()
        del payload["type"]

        with pytest.raises(NormalizationError) as excinfo:
            normalize(payload)

        assert excinfo.value.kind is NormalizationErrorKind.MALFORMED_PAYLOAD
        assert excinfo.value.field == "type"

    def test_hint_must_agree_with_payload(self) -> None:
        """A hint contradicting the declared type is rejected."""
        with pytest.raises(NormalizationError) as excinfo:
            normalize(PushPayloadSpec().build(), "pull_request")

        assert excinfo.value.field == "type"
