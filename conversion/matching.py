"""
Pattern Matching
================

Default implementation of the pattern-matcher collaborator.

CONTRACT:
- `matches(value) -> bool` is pure: no side effects, no mutation
- It is invoked repeatedly and speculatively during resolution
- Mapping patterns match structurally; every key must match the
  corresponding field of the value (attribute, mapping entry, or
  `lookup(key)` for environments)

Rule packs may supply any object with a `matches` method instead.
"""

from __future__ import annotations
from typing import Any, Callable, Iterable, Mapping, Protocol, Tuple


class Matcher(Protocol):
    def matches(self, value: Any) -> bool: ...


class _Missing:
    """Marker for a field the value does not have."""

    def __repr__(self) -> str:
        return "<missing>"


MISSING_FIELD = _Missing()


def _field(value: Any, key: Any) -> Any:
    if isinstance(value, Mapping):
        return value.get(key, MISSING_FIELD)
    lookup = getattr(value, "lookup", None)
    if callable(lookup):
        return lookup(key)
    if isinstance(key, str):
        return getattr(value, key, MISSING_FIELD)
    return MISSING_FIELD


class Always:
    """Matches everything. Default environment precondition."""

    def matches(self, value: Any) -> bool:
        return True

    def __repr__(self) -> str:
        return "Always()"


class Equals:
    def __init__(self, expected: Any):
        self.expected = expected

    def matches(self, value: Any) -> bool:
        return value is not MISSING_FIELD and value == self.expected

    def __repr__(self) -> str:
        return f"Equals({self.expected!r})"


class Predicate:
    def __init__(self, function: Callable[[Any], bool]):
        self.function = function

    def matches(self, value: Any) -> bool:
        return value is not MISSING_FIELD and bool(self.function(value))

    def __repr__(self) -> str:
        return f"Predicate({getattr(self.function, '__name__', self.function)!r})"


class Shape:
    """Structural sub-pattern: each key's matcher applies to that field."""

    def __init__(self, fields: Mapping[Any, Matcher]):
        self.fields = dict(fields)

    def matches(self, value: Any) -> bool:
        if value is MISSING_FIELD or value is None:
            return False
        for key, matcher in self.fields.items():
            if not matcher.matches(_field(value, key)):
                return False
        return True

    def __repr__(self) -> str:
        return f"Shape({self.fields!r})"


class AnyOf:
    def __init__(self, matchers: Iterable[Matcher]):
        self.matchers: Tuple[Matcher, ...] = tuple(matchers)

    def matches(self, value: Any) -> bool:
        return any(m.matches(value) for m in self.matchers)


class AllOf:
    def __init__(self, matchers: Iterable[Matcher]):
        self.matchers: Tuple[Matcher, ...] = tuple(matchers)

    def matches(self, value: Any) -> bool:
        return all(m.matches(value) for m in self.matchers)


ALWAYS = Always()


def match(pattern: Any) -> Matcher:
    """
    Compile a pattern into a matcher.

    - objects with a `matches` method are used as-is
    - None means "always"
    - mappings become structural shapes (recursively)
    - callables become predicates
    - anything else matches by equality
    """
    if pattern is None:
        return ALWAYS
    return _compile(pattern)


def _compile(pattern: Any) -> Matcher:
    # inside a shape, None is compared like any other value
    if hasattr(pattern, "matches") and callable(pattern.matches):
        return pattern
    if isinstance(pattern, Mapping):
        return Shape({key: _compile(sub) for key, sub in pattern.items()})
    if callable(pattern):
        return Predicate(pattern)
    return Equals(pattern)


def any_of(*patterns: Any) -> AnyOf:
    return AnyOf(_compile(p) for p in patterns)


def all_of(*patterns: Any) -> AllOf:
    return AllOf(_compile(p) for p in patterns)
