from enum import StrEnum
from typing import Self

from setupbeams.utils import wrap360


class PatientOrientation(StrEnum):
    HEAD_FIRST_SUPINE = "HFS"
    HEAD_FIRST_PRONE = "HFP"
    FEET_FIRST_SUPINE = "FFS"
    FEET_FIRST_PRONE = "FFP"
    UNKNOWN = "UK"

    @classmethod
    def from_dicom(cls, patient_position: str | None) -> Self:
        """Map a DICOM PatientPosition onto an orientation. Decubitus and sitting
        positions, as well as a missing position, are UNKNOWN."""
        try:
            return cls((patient_position or "").strip().upper())
        except ValueError:
            return cls.UNKNOWN


class Direction(StrEnum):
    ANTERIOR = "anterior"
    POSTERIOR = "posterior"
    LEFT = "left"
    RIGHT = "right"
    UNKNOWN = "unknown"


_HFS = PatientOrientation.HEAD_FIRST_SUPINE
_HFP = PatientOrientation.HEAD_FIRST_PRONE
_FFS = PatientOrientation.FEET_FIRST_SUPINE
_FFP = PatientOrientation.FEET_FIRST_PRONE

# Patient side the beam enters from, keyed by (gantry angle, orientation).
# Gantry 180 has never been mapped and resolves to UNKNOWN; the kV beam at 180 is
# therefore named "unknown kV setup" with ID prefix "U".
BEAM_DIRECTIONS: dict[tuple[float, PatientOrientation], Direction] = {
    (0.0, _HFS): Direction.ANTERIOR,
    (0.0, _FFS): Direction.ANTERIOR,
    (0.0, _HFP): Direction.POSTERIOR,
    (0.0, _FFP): Direction.POSTERIOR,
    (270.0, _HFS): Direction.RIGHT,
    (270.0, _FFP): Direction.RIGHT,
    (270.0, _FFS): Direction.LEFT,
    (270.0, _HFP): Direction.LEFT,
    (90.0, _HFS): Direction.LEFT,
    (90.0, _FFP): Direction.LEFT,
    (90.0, _FFS): Direction.RIGHT,
    (90.0, _HFP): Direction.RIGHT,
}


def resolve_direction(
    gantry_angle: float, orientation: PatientOrientation | str
) -> Direction:
    """Return the patient direction a beam at ``gantry_angle`` points from.

    Pairs that are not in :data:`BEAM_DIRECTIONS` resolve to ``Direction.UNKNOWN``;
    this never raises.
    """
    orientation = PatientOrientation.from_dicom(orientation)
    return BEAM_DIRECTIONS.get(
        (float(wrap360(gantry_angle)), orientation), Direction.UNKNOWN
    )
