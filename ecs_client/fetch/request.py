"""Request identifier merging and request construction."""

import json
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path

from pydantic import ValidationError

from ecs_client.errors import InvalidArgumentError
from ecs_client.models import (
    RequestIdentifier,
    RequestIdentifiers,
    identifiers_from_mapping,
)


def merge_request_identifiers(
    defaults: Iterable[RequestIdentifier],
    overrides: Iterable[RequestIdentifier] | None,
) -> RequestIdentifiers:
    """Merge per-call identifiers over a client's defaults.

    A per-call identifier replaces the values of a default with the same
    name in place; defaults without a match pass through unchanged and new
    names are appended in the order given. When a name repeats within the
    per-call set, the last occurrence wins.

    Args:
        defaults: Identifiers configured on the client.
        overrides: Identifiers supplied for this call only.

    Returns:
        The merged identifiers.
    """
    merged: dict[str, RequestIdentifier] = {ident.name: ident for ident in defaults}
    for ident in overrides or ():
        merged[ident.name] = ident
    return tuple(merged.values())


def load_identifier_groups(path: Path | str) -> RequestIdentifiers:
    """Load default identifier groups from a JSON file.

    The file holds an object mapping identifier names to a string or a
    list of strings, e.g. ``{"Ring": ["Ring0"], "Region": "eu"}``.

    Args:
        path: Path to the groups file.

    Returns:
        Identifiers in file order.

    Raises:
        OSError: If the file cannot be read.
        ValueError: If the file is not an object of strings or string lists.
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        msg = "Groups file must contain a JSON object"
        raise ValueError(msg)

    mapping: dict[str, list[str]] = {}
    for name, value in data.items():
        values = [value] if isinstance(value, str) else value
        if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
            msg = f"Group '{name}' must be a string or a list of strings"
            raise ValueError(msg)
        mapping[name] = values

    return identifiers_from_mapping(mapping)


def coerce_identifiers(
    value: Iterable[RequestIdentifier] | Mapping[str, str | Sequence[str]] | None,
) -> RequestIdentifiers:
    """Normalize caller-supplied identifiers.

    Accepts identifier objects or a mapping of names to a value or a list
    of values.

    Raises:
        InvalidArgumentError: If a name is empty or a value is not a string.
    """
    if value is None:
        return ()

    try:
        if isinstance(value, Mapping):
            return tuple(
                RequestIdentifier(
                    name=name,
                    values=(values,) if isinstance(values, str) else tuple(values),
                )
                for name, values in value.items()
            )
        identifiers = tuple(value)
    except (ValidationError, TypeError) as e:
        msg = f"Invalid request identifiers: {e}"
        raise InvalidArgumentError(msg) from e

    for ident in identifiers:
        if not isinstance(ident, RequestIdentifier):
            msg = f"Expected RequestIdentifier, got {type(ident).__name__}"
            raise InvalidArgumentError(msg)
    return identifiers
