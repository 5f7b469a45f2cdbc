"""URI parsing shared by the registry and the handlers."""

import re
from typing import NamedTuple

from domains.source_registry.errors import InvalidUri

SCHEME_PATTERN = re.compile(r"^([a-z][a-z0-9+\-.]*)://(.*)$", re.IGNORECASE | re.DOTALL)


class ParsedUri(NamedTuple):
    """A URI split into its lower-cased scheme and the remainder."""
    scheme: str
    address: str


def parse_uri(uri: str) -> ParsedUri:
    """
    Split ``uri`` into scheme and address.

    Args:
        uri: Source URI, e.g. ``file:///tmp/a.txt``

    Returns:
        ParsedUri with the scheme normalized to lower case

    Raises:
        InvalidUri: if the value is empty or has no ``scheme://`` prefix
    """
    if not isinstance(uri, str) or not uri:
        raise InvalidUri(uri if isinstance(uri, str) else repr(uri), "empty URI")

    match = SCHEME_PATTERN.match(uri)
    if not match:
        raise InvalidUri(uri, "missing scheme")

    return ParsedUri(scheme=match.group(1).lower(), address=match.group(2))
