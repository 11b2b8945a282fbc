"""Connection-URL detection in sanitized tunnel output."""

import re

DEFAULT_SCHEME = "exp"


def build_url_pattern(scheme: str = DEFAULT_SCHEME) -> re.Pattern:
    """Compile the ``scheme://host[:port][/path]`` pattern for a scheme."""
    return re.compile(
        rf"{re.escape(scheme)}://[a-zA-Z0-9.-]+(?::\d+)?(?:/[^\s]*)?"
    )


URL_PATTERN = build_url_pattern()


def try_extract(line: str, pattern: re.Pattern = URL_PATTERN) -> str | None:
    """Return the first connection URL found in ``line``, if any.

    >>> try_extract("tunnel ready at exp://abcd-1234-anonymous-8081.exp.direct now")
    'exp://abcd-1234-anonymous-8081.exp.direct'
    >>> try_extract("see exp:/broken") is None
    True
    """
    match = pattern.search(line)
    if match:
        return match.group(0)
    return None
