"""Subscription requests, their filters, and matching against events."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Iterable

_U64_LIMIT = 2**64


class SubscriptionError(ValueError):
    """Raised when a subscription request or filter cannot be parsed."""


@dataclass
class Event:
    """A signed event as seen by subscription matching."""

    id: str
    pubkey: str
    created_at: int = 0
    kind: int = 0
    tags: list[list[str]] = field(default_factory=list)
    content: str = ""
    sig: str = ""
    delegated_by: str | None = None

    def tag_values_by_name(self, name: str) -> list[str]:
        """Return the first value of every tag called ``name``, in order."""
        return [tag[1] for tag in self.tags if len(tag) > 1 and tag[0] == name]

    def generic_tag_val_intersect(self, tagname: str, check: Iterable[str]) -> bool:
        """Whether any tag called ``tagname`` has a value found in ``check``."""
        wanted = check if isinstance(check, (set, frozenset)) else set(check)
        return any(value in wanted for value in self.tag_values_by_name(tagname))


def _as_u64(value: Any) -> int | None:
    if isinstance(value, int) and not isinstance(value, bool) and 0 <= value < _U64_LIMIT:
        return value
    return None


def _as_u64_list(value: Any) -> list[int] | None:
    if not isinstance(value, list):
        return None
    items = [_as_u64(v) for v in value]
    if any(v is None for v in items):
        return None
    return items  # type: ignore[return-value]


def _as_str_list(value: Any) -> list[str] | None:
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return list(value)
    return None


def _prefix_list(value: Any) -> list[str] | None:
    prefixes = _as_str_list(value)
    if prefixes is not None and "" in prefixes:
        raise SubscriptionError("prefix matches must not be empty strings")
    return prefixes


def _tag_search_char(key: str) -> str | None:
    """Return the tag letter of a ``#x`` filter key, if it names one char."""
    name = key[1:]
    return name if len(name) == 1 else None


def _prefix_match(prefixes: Iterable[str], target: str) -> bool:
    return any(target.startswith(prefix) for prefix in prefixes)


@dataclass
class ReqFilter:
    """One filter of a subscription request; ``None`` fields are ignored."""

    ids: list[str] | None = None
    kinds: list[int] | None = None
    since: int | None = None
    until: int | None = None
    authors: list[str] | None = None
    limit: int | None = None
    tags: dict[str, frozenset[str]] | None = None
    force_no_match: bool = False

    @classmethod
    def from_value(cls, value: Any) -> "ReqFilter":
        """Build a filter from a decoded JSON object."""
        if not isinstance(value, dict):
            raise SubscriptionError("reqfilter is not an object")
        rf = cls()
        tags: dict[str, frozenset[str]] | None = None
        for key, val in value.items():
            if key == "ids":
                rf.ids = _prefix_list(val)
            elif key == "kinds":
                rf.kinds = _as_u64_list(val)
            elif key == "since":
                rf.since = _as_u64(val)
            elif key == "until":
                rf.until = _as_u64(val)
            elif key == "limit":
                rf.limit = _as_u64(val)
            elif key == "authors":
                rf.authors = _prefix_list(val)
            elif key.startswith("#") and len(key) > 1 and isinstance(val, list):
                letter = _tag_search_char(key)
                if letter is None:
                    # multi-character tag searches cannot be represented
                    rf.force_no_match = True
                    continue
                if tags is None:
                    tags = {}
                values = _as_str_list(val)
                if values is not None:
                    tags[letter] = frozenset(values)
        rf.tags = tags
        return rf

    def to_json(self) -> dict[str, Any]:
        """Return the filter as a JSON-ready mapping."""
        out: dict[str, Any] = {}
        if self.ids is not None:
            out["ids"] = list(self.ids)
        if self.kinds is not None:
            out["kinds"] = list(self.kinds)
        if self.until is not None:
            out["until"] = self.until
        if self.since is not None:
            out["since"] = self.since
        if self.limit is not None:
            out["limit"] = self.limit
        if self.authors is not None:
            out["authors"] = list(self.authors)
        if self.tags is not None:
            for letter, values in self.tags.items():
                out[f"#{letter}"] = sorted(values)
        return out

    def _ids_match(self, event: Event) -> bool:
        return self.ids is None or _prefix_match(self.ids, event.id)

    def _authors_match(self, event: Event) -> bool:
        return self.authors is None or _prefix_match(self.authors, event.pubkey)

    def _delegated_authors_match(self, event: Event) -> bool:
        if event.delegated_by is None:
            return False
        return self.authors is None or _prefix_match(self.authors, event.delegated_by)

    def _tag_match(self, event: Event) -> bool:
        if not self.tags:
            return True
        return all(
            event.generic_tag_val_intersect(letter, values)
            for letter, values in self.tags.items()
        )

    def _kind_match(self, kind: int) -> bool:
        return self.kinds is None or kind in self.kinds

    def interested_in_event(self, event: Event) -> bool:
        """Whether every populated field of this filter matches ``event``."""
        return (
            self._ids_match(event)
            and (self.since is None or event.created_at >= self.since)
            and (self.until is None or event.created_at <= self.until)
            and self._kind_match(event.kind)
            and (self._authors_match(event) or self._delegated_authors_match(event))
            and self._tag_match(event)
            and not self.force_no_match
        )


@dataclass
class Subscription:
    """A subscription identifier and its request filters."""

    id: str
    filters: list[ReqFilter] = field(default_factory=list)

    @classmethod
    def parse(cls, raw: str) -> "Subscription":
        """Parse a ``["REQ", <id>, <filter>...]`` message from JSON text."""
        try:
            value = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise SubscriptionError(f"invalid JSON: {exc}") from exc
        return cls.from_value(value)

    @classmethod
    def from_value(cls, value: Any) -> "Subscription":
        """Build a subscription from a decoded JSON array."""
        if not isinstance(value, list):
            raise SubscriptionError("not array")
        if len(value) < 3:
            raise SubscriptionError("not enough fields")
        command, sub_id, *raw_filters = value
        if not isinstance(command, str):
            raise SubscriptionError("first element of request was not a string")
        if command != "REQ":
            raise SubscriptionError("missing REQ command")
        if not isinstance(sub_id, str):
            raise SubscriptionError("missing subscription id")
        filters: list[ReqFilter] = []
        for raw_filter in raw_filters:
            try:
                parsed = ReqFilter.from_value(raw_filter)
            except SubscriptionError as exc:
                raise SubscriptionError("could not parse filter") from exc
            # drop consecutive duplicates only
            if not filters or filters[-1] != parsed:
                filters.append(parsed)
        return cls(id=sub_id, filters=filters)

    def needs_historical_events(self) -> bool:
        """Whether any filter asks for stored events (limit other than 0)."""
        return any(f.limit != 0 for f in self.filters)

    def interested_in_event(self, event: Event) -> bool:
        """Whether any filter matches ``event``."""
        return any(f.interested_in_event(event) for f in self.filters)

    def is_scraper(self) -> bool:
        """Whether some filter is too broad to be anything but a scrape."""
        for f in self.filters:
            precision = 0
            if f.ids is not None:
                precision += 2
            if f.authors is not None:
                precision += 1
            if f.kinds is not None:
                precision += 1
            if f.tags is not None:
                precision += 1
            if precision < 2:
                return True
        return False