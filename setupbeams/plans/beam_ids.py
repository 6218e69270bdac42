import re
from collections.abc import Iterable

# One direction letter followed by the shared numeric suffix, e.g. A7, C12
SETUP_BEAM_ID_PATTERN = re.compile(r"[A-Z]([0-9]+)")


def beam_id_number(beam_id: str) -> int | None:
    """The numeric suffix of a setup-style beam ID, or None if the ID does not follow the convention."""
    match = SETUP_BEAM_ID_PATTERN.fullmatch(beam_id)
    if match is None:
        return None
    return int(match.group(1))


def next_beam_number(beam_ids: Iterable[str]) -> int:
    """Return one more than the largest setup beam number among ``beam_ids``.

    IDs that don't match :data:`SETUP_BEAM_ID_PATTERN` are ignored; if none match,
    1 is returned. The result does not depend on the order of ``beam_ids``.
    """
    numbers = (beam_id_number(beam_id) for beam_id in beam_ids)
    return max((n for n in numbers if n is not None), default=0) + 1
