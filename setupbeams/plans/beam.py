import logging
import re
from typing import TYPE_CHECKING

from pydicom import Sequence as DicomSequence, Dataset

from setupbeams.images.drr import DRRParameters, compute_drr
from setupbeams.plans.machine import MachineParameters
from setupbeams.utils import array_to_dicom

if TYPE_CHECKING:
    from setupbeams.plans.plan import Plan

logger = logging.getLogger(__name__)

# the numeric part and the particle letter of an energy, e.g. 6X or 18E
NOMINAL_ENERGY_PATTERN = re.compile(r"([0-9]+(?:\.[0-9]+)?)([A-Z]+)", re.IGNORECASE)

RADIATION_TYPES = {"X": "PHOTON", "E": "ELECTRON"}

DRR_SID = 1000.0


class SetupBeam:
    """A setup beam that was added to a plan. The ID and name are writable; everything else is fixed at creation."""

    MAX_ID_LENGTH = 16

    def __init__(self, plan: "Plan", dataset: Dataset, gantry_angle: float | None):
        """
        Parameters
        ----------
        plan : Plan
            The plan that owns the beam.
        dataset : Dataset
            The BeamSequence item of the beam.
        gantry_angle : float, optional
            The gantry angle of a kV beam; None for a CBCT beam.
        """
        self.plan = plan
        self.dataset = dataset
        self.gantry_angle = gantry_angle

    @property
    def beam_id(self) -> str:
        return self.dataset.BeamName

    @beam_id.setter
    def beam_id(self, value: str) -> None:
        if len(value) > self.MAX_ID_LENGTH:
            raise ValueError("Beam ID must be less than or equal to 16 characters")
        self.dataset.BeamName = value

    @property
    def name(self) -> str:
        return self.dataset.get("BeamDescription", "")

    @name.setter
    def name(self, value: str) -> None:
        self.dataset.BeamDescription = value

    @property
    def beam_number(self) -> int:
        return self.dataset.BeamNumber

    @property
    def is_cbct(self) -> bool:
        return self.gantry_angle is None

    @property
    def drr(self) -> Dataset | None:
        """The RT Image attached to the beam, if any."""
        return self.plan.drrs.get(self.beam_number)

    def create_or_replace_drr(self, parameters: DRRParameters) -> Dataset | None:
        """Render a DRR of the plan's CT for this beam and attach it to the plan.

        If the plan has no CT volume, no DRR is created and None is returned.
        """
        if self.plan.image is None:
            logger.warning(
                "Plan %s has no CT image; no DRR created for beam %s",
                self.plan.plan_id,
                self.beam_id,
            )
            return None
        cp0 = self.dataset.ControlPointSequence[0]
        image = compute_drr(
            self.plan.image,
            isocenter=tuple(float(v) for v in cp0.IsocenterPosition),
            gantry_angle=float(cp0.GantryAngle),
            orientation=self.plan.orientation,
            parameters=parameters,
        )
        drr = array_to_dicom(
            image,
            pixel_size=parameters.pixel_size,
            sid=DRR_SID,
            gantry=float(cp0.GantryAngle),
            coll=float(cp0.BeamLimitingDeviceAngle),
            couch=float(cp0.PatientSupportAngle),
            plan=self.plan.ds,
            beam_number=self.beam_number,
            label=self.beam_id,
        )
        self.plan.drrs[self.beam_number] = drr
        return drr

    @staticmethod
    def create_dataset(
        machine_parameters: MachineParameters,
        jaws: tuple[float, float, float, float],
        coll_angle: float,
        gantry_angle: float | None,
        couch_angle: float,
        isocenter: tuple[float, float, float],
    ) -> Dataset:
        """Return a BeamSequence item for a static setup beam without ID or name.

        Parameters
        ----------
        machine_parameters : MachineParameters
            The treatment unit, energy, dose rate and fluence of the beam.
        jaws : tuple[float, float, float, float]
            The jaw positions (x1, y1, x2, y2) in mm.
        coll_angle : float
            The collimator angle.
        gantry_angle : float, optional
            The gantry angle. A CBCT beam has no gantry angle and is stored at 0.
        couch_angle : float
            The couch angle.
        isocenter : tuple[float, float, float]
            The isocenter position in patient coordinates (mm).
        """
        x1, y1, x2, y2 = jaws
        beam = Dataset()
        beam.PrimaryDosimeterUnit = "MU"
        beam.SourceAxisDistance = 1000.0
        beam.TreatmentMachineName = machine_parameters.treatment_unit

        # Primary Fluence Mode Sequence
        primary_fluence_mode = Dataset()
        if machine_parameters.fluence is None:
            primary_fluence_mode.FluenceMode = "STANDARD"
        else:
            primary_fluence_mode.FluenceMode = "NON_STANDARD"
            primary_fluence_mode.FluenceModeID = machine_parameters.fluence.upper()
        beam.PrimaryFluenceModeSequence = DicomSequence((primary_fluence_mode,))

        # Beam Limiting Device Sequence
        jaw_x = Dataset()
        jaw_x.RTBeamLimitingDeviceType = "ASYMX"
        jaw_x.NumberOfLeafJawPairs = 1
        jaw_y = Dataset()
        jaw_y.RTBeamLimitingDeviceType = "ASYMY"
        jaw_y.NumberOfLeafJawPairs = 1
        beam.BeamLimitingDeviceSequence = DicomSequence((jaw_x, jaw_y))

        energy = NOMINAL_ENERGY_PATTERN.fullmatch(machine_parameters.energy)
        particle = energy.group(2).upper() if energy else "X"

        beam.BeamName = ""
        beam.BeamType = machine_parameters.technique
        beam.RadiationType = RADIATION_TYPES.get(particle, "PHOTON")
        beam.TreatmentDeliveryType = "SETUP"
        beam.NumberOfWedges = 0
        beam.NumberOfCompensators = 0
        beam.NumberOfBoli = 0
        beam.NumberOfBlocks = 0
        beam.FinalCumulativeMetersetWeight = 1.0
        beam.NumberOfControlPoints = 2

        cp0 = Dataset()
        cp0.ControlPointIndex = 0
        if energy:
            cp0.NominalBeamEnergy = float(energy.group(1))
        if machine_parameters.dose_rate is not None:
            cp0.DoseRateSet = machine_parameters.dose_rate
        jaw_x_position = Dataset()
        jaw_x_position.RTBeamLimitingDeviceType = "ASYMX"
        jaw_x_position.LeafJawPositions = [x1, x2]
        jaw_y_position = Dataset()
        jaw_y_position.RTBeamLimitingDeviceType = "ASYMY"
        jaw_y_position.LeafJawPositions = [y1, y2]
        cp0.BeamLimitingDevicePositionSequence = DicomSequence(
            (jaw_x_position, jaw_y_position)
        )
        cp0.GantryAngle = 0.0 if gantry_angle is None else gantry_angle
        cp0.GantryRotationDirection = "NONE"
        cp0.BeamLimitingDeviceAngle = coll_angle
        cp0.BeamLimitingDeviceRotationDirection = "NONE"
        cp0.PatientSupportAngle = couch_angle
        cp0.PatientSupportRotationDirection = "NONE"
        cp0.TableTopEccentricAngle = 0.0
        cp0.TableTopEccentricRotationDirection = "NONE"
        cp0.IsocenterPosition = list(isocenter)
        cp0.CumulativeMetersetWeight = 0.0

        cp1 = Dataset()
        cp1.ControlPointIndex = 1
        cp1.CumulativeMetersetWeight = 1.0
        beam.ControlPointSequence = DicomSequence((cp0, cp1))
        return beam
