"""
ttcn-orchestrator — test baskets

File: src/ttcn_orchestrator/selection/basket.py

Purpose
- Select test identifiers by name and tag patterns.

Matching rules
- Name patterns are regular expressions searched in the qualified identifier;
  at least one must match when any are given.
- Tag patterns have the form ``key`` or ``key: value``; both halves are
  regular expressions searched in the tag key (``@stable``) and value. Every
  tag pattern must be satisfied by at least one tag.
- Exclusion patterns reject an identifier when any of them matches.
- Named sub-baskets (selected with ``NTT_LIST_BASKETS`` or
  ``baskets.selected``) widen the selection: the identifier must pass the
  basket's own filters and at least one sub-basket.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from ttcn_orchestrator.errors import ConfigError

Tag = tuple[str, str]

_BASKET_KEYS = frozenset({"name", "tags", "exclude_name", "exclude_tags"})


class BasketError(ConfigError):
    """Raised for invalid basket patterns or unknown basket names."""


@dataclass(frozen=True, slots=True)
class _TagPattern:
    key: re.Pattern[str]
    value: re.Pattern[str] | None

    def satisfied_by(self, tags: Iterable[Tag]) -> bool:
        for key, value in tags:
            if not self.key.search(key):
                continue
            if self.value is None or self.value.search(value):
                return True
        return False


class Basket:
    """Predicate over ``(identifier, tags)`` built from name and tag patterns."""

    __slots__ = (
        "_exclude_names",
        "_exclude_tags",
        "_names",
        "_tags",
        "name",
        "sub_baskets",
    )

    def __init__(
        self,
        name: str = "default",
        *,
        names: Sequence[str] = (),
        tags: Sequence[str] = (),
        exclude_names: Sequence[str] = (),
        exclude_tags: Sequence[str] = (),
        sub_baskets: Sequence[Basket] = (),
    ) -> None:
        self.name = name
        self._names = tuple(_compile(pattern, name) for pattern in names)
        self._tags = tuple(_compile_tag(pattern, name) for pattern in tags)
        self._exclude_names = tuple(_compile(pattern, name) for pattern in exclude_names)
        self._exclude_tags = tuple(_compile_tag(pattern, name) for pattern in exclude_tags)
        self.sub_baskets = tuple(sub_baskets)

    @property
    def is_empty(self) -> bool:
        return not (
            self._names or self._tags or self._exclude_names or self._exclude_tags
        ) and all(sub.is_empty for sub in self.sub_baskets)

    def match(self, identifier: str, tags: Iterable[Tag] = ()) -> bool:
        tag_list = tuple(tags)
        if not self._match_own(identifier, tag_list):
            return False
        if not self.sub_baskets:
            return True
        return any(sub.match(identifier, tag_list) for sub in self.sub_baskets)

    def _match_own(self, identifier: str, tags: tuple[Tag, ...]) -> bool:
        if self._names and not any(pattern.search(identifier) for pattern in self._names):
            return False
        if any(pattern.search(identifier) for pattern in self._exclude_names):
            return False
        if not all(pattern.satisfied_by(tags) for pattern in self._tags):
            return False
        return not any(pattern.satisfied_by(tags) for pattern in self._exclude_tags)

    def __repr__(self) -> str:
        return f"Basket(name={self.name!r}, sub_baskets={len(self.sub_baskets)})"


def build_basket(
    *,
    names: Sequence[str] = (),
    tags: Sequence[str] = (),
    exclude_names: Sequence[str] = (),
    exclude_tags: Sequence[str] = (),
    definitions: Mapping[str, object] | None = None,
    selected: str | Sequence[str] = "",
) -> Basket:
    """Build the effective basket from CLI filters and named definitions."""

    selected_names = _split_selected(selected)
    available = dict(definitions or {})
    subs: list[Basket] = []
    for basket_name in selected_names:
        raw = available.get(basket_name)
        if raw is None:
            raise BasketError(f"unknown basket {basket_name!r}")
        if not isinstance(raw, Mapping):
            raise BasketError(f"basket {basket_name!r} must be a table")
        subs.append(_basket_from_mapping(basket_name, raw))

    return Basket(
        "default",
        names=names,
        tags=tags,
        exclude_names=exclude_names,
        exclude_tags=exclude_tags,
        sub_baskets=subs,
    )


def _basket_from_mapping(name: str, raw: Mapping[str, object]) -> Basket:
    unknown = sorted(set(raw) - _BASKET_KEYS)
    if unknown:
        raise BasketError(f"basket {name!r} has unknown keys: {', '.join(unknown)}")
    return Basket(
        name,
        names=_string_list(raw.get("name"), name, "name"),
        tags=_string_list(raw.get("tags"), name, "tags"),
        exclude_names=_string_list(raw.get("exclude_name"), name, "exclude_name"),
        exclude_tags=_string_list(raw.get("exclude_tags"), name, "exclude_tags"),
    )


def _split_selected(selected: str | Sequence[str]) -> list[str]:
    items = selected.split(",") if isinstance(selected, str) else list(selected)
    return [item.strip() for item in items if item.strip()]


def _string_list(value: object, basket: str, key: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, Sequence) and all(isinstance(item, str) for item in value):
        return tuple(value)
    raise BasketError(f"basket {basket!r}: {key} must be a string or list of strings")


def _compile(pattern: str, basket: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise BasketError(f"basket {basket!r}: invalid pattern {pattern!r}: {exc}") from exc


def _compile_tag(pattern: str, basket: str) -> _TagPattern:
    key, sep, value = pattern.partition(":")
    key = key.strip()
    value = value.strip()
    if not key:
        raise BasketError(f"basket {basket!r}: tag pattern {pattern!r} has no key")
    return _TagPattern(
        key=_compile(key, basket),
        value=_compile(value, basket) if sep and value else None,
    )


__all__ = ["Basket", "BasketError", "build_basket"]
