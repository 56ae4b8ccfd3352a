"""Bug reference extraction from free text.

A reference is the word "bug" (any case) followed by a single space or
hyphen and a number of ASCII digits, on word boundaries: "Bug 123",
"bug-456". Only the first reference in a text is used; titles or messages
naming several bugs are attributed to the first one.
"""

import re
from typing import Optional

BUG_REFERENCE_PATTERN = re.compile(r"\bbug[ -]([0-9]+)\b", re.IGNORECASE)


def extract_bug_id(text: Optional[str]) -> Optional[int]:
    """Return the first bug id referenced in text.

    Args:
        text: A pull request title or commit message.

    Returns:
        The referenced bug id, or None if the text has no reference.
        "bug 0" is not a reference since bug ids are positive.
    """
    if not text:
        return None

    match = BUG_REFERENCE_PATTERN.search(text)
    if match is None:
        return None

    bug_id = int(match.group(1))
    return bug_id if bug_id > 0 else None
