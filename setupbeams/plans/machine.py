import logging
import re
from dataclasses import dataclass, replace
from typing import Self

logger = logging.getLogger(__name__)

# e.g. 6X, 10X-FFF, 6X-SRS, 12E
ENERGY_MODE_PATTERN = re.compile(r"^([0-9]+[A-Z]+)-?([A-Z]+)?", re.IGNORECASE)

DELIVERY_MODE_STATIC = "STATIC"


@dataclass(frozen=True)
class MachineParameters:
    """
    Machine parameters shared by every setup beam added in one run.

    Parameters
    ----------
    treatment_unit : str
        The ID of the treatment unit (TreatmentMachineName).
    energy : str
        The energy mode without the fluence suffix, e.g. ``6X``.
    dose_rate : float, optional
        The dose rate in MU/min, if the reference beam has one.
    technique : str
        The delivery technique. Setup beams are always static.
    fluence : str, optional
        The primary fluence mode ID (e.g. ``FFF``). ``None`` means the
        machine default for the energy.
    """

    treatment_unit: str
    energy: str
    dose_rate: float | None
    technique: str = DELIVERY_MODE_STATIC
    fluence: str | None = None

    def replace(self, **overrides) -> Self:
        return replace(self, **overrides)

    @classmethod
    def from_energy_mode(
        cls, energy_mode: str, treatment_unit: str, dose_rate: float | None
    ) -> Self:
        """Derive the machine parameters from the energy mode of an existing beam.

        The energy mode is split into the energy and the fluence mode, e.g.
        ``10X-FFF`` becomes energy ``10X`` with fluence ``FFF``. If the energy mode
        cannot be parsed it is used as the energy verbatim with the default fluence.
        """
        energy, fluence = energy_mode, None
        match = ENERGY_MODE_PATTERN.match(energy_mode)
        if match:
            energy = match.group(1)
            fluence = match.group(2) or None
        else:
            logger.debug(
                "Energy mode %r not recognized; using it verbatim", energy_mode
            )
        return cls(
            treatment_unit=treatment_unit,
            energy=energy,
            dose_rate=dose_rate,
            technique=DELIVERY_MODE_STATIC,
            fluence=fluence,
        )
