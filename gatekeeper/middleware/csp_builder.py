"""Pure-function CSP (Content-Security-Policy) utilities."""

from __future__ import annotations

from collections.abc import Mapping, Sequence


def parse_csp(csp_string: str) -> dict[str, list[str]]:
    """Parse a CSP string into {directive: [sources]}.

    Example:
        >>> parse_csp("default-src 'self'; script-src 'self' https:")
        {'default-src': ["'self'"], 'script-src': ["'self'", 'https:']}
    """
    result: dict[str, list[str]] = {}
    if not csp_string or not csp_string.strip():
        return result
    for part in csp_string.split(";"):
        tokens = part.split()
        if not tokens:
            continue
        result[tokens[0].lower()] = tokens[1:]
    return result


def merge_csp(
    base: Mapping[str, Sequence[str]],
    extra: Mapping[str, Sequence[str]],
) -> dict[str, list[str]]:
    """Append ``extra`` sources to ``base``, keeping order and dropping duplicates.

    A directive whose base sources are exactly ``'none'`` stays ``'none'``:
    adding a source would silently widen it.
    """
    merged: dict[str, list[str]] = {directive: list(values) for directive, values in base.items()}
    for directive, values in extra.items():
        current = merged.setdefault(directive, [])
        if current == ["'none'"]:
            continue
        for value in values:
            if value not in current:
                current.append(value)
    return merged


def build_csp(directives: Mapping[str, Sequence[str]]) -> str:
    """Render {directive: [sources]} as a CSP header value.

    Example:
        >>> build_csp({"default-src": ["'self'"], "object-src": ["'none'"]})
        "default-src 'self'; object-src 'none'"
    """
    parts = []
    for directive, values in directives.items():
        if values:
            parts.append(f"{directive} {' '.join(values)}")
        else:
            parts.append(directive)
    return "; ".join(parts)
