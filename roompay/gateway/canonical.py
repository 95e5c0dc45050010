"""Canonical parameter encoding shared by request signing and callback checks.

The gateway signs `key=value` pairs joined with `&`, ordered by the
percent-encoded form of each key. Values are percent-encoded as URI components
with `%20` rewritten to `+`. The resulting string is both the signed message
and, verbatim, the query string sent to the gateway.
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from urllib.parse import quote, unquote

from roompay.gateway.errors import ValidationError


def encode_component(text: str) -> str:
    """URI-component encoding: only letters, digits and `-_.~` stay literal."""

    return quote(text, safe="", encoding="utf-8")


def encode_value(text: str) -> str:
    return encode_component(text).replace("%20", "+")


def _is_blank(value) -> bool:
    return value is None or value == ""


@dataclass(frozen=True)
class CanonicalParams:
    """Ordered `(original_key, encoded_value)` pairs; the order is final."""

    pairs: tuple[tuple[str, str], ...]

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(self.pairs)

    def __len__(self) -> int:
        return len(self.pairs)

    def to_query(self) -> str:
        """The canonical string: `k=v` pairs joined by `&`."""

        return "&".join(f"{key}={value}" for key, value in self.pairs)


def canonicalize(params: Mapping[str, object]) -> CanonicalParams:
    """Drop blank values, sort by encoded key and encode every value."""

    encoded_keys: set[str] = set()
    for key, value in params.items():
        if _is_blank(value):
            continue
        if not key:
            raise ValidationError("parameter names must be non-empty")
        encoded_keys.add(encode_component(key))

    pairs = []
    for encoded_key in sorted(encoded_keys):
        original_key = unquote(encoded_key)
        pairs.append((original_key, encode_value(str(params[original_key]))))
    return CanonicalParams(pairs=tuple(pairs))
