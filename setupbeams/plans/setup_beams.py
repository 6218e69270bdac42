import logging
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field

from setupbeams.images.drr import DRRParameters
from setupbeams.plans.beam import SetupBeam
from setupbeams.plans.direction import PatientOrientation, resolve_direction
from setupbeams.plans.machine import MachineParameters
from setupbeams.plans.plan import Plan

logger = logging.getLogger(__name__)

# 10 x 10 cm field: (x1, y1, x2, y2) in mm
FIELD_APERTURE = (-50.0, -50.0, 50.0, 50.0)


class SetupBeams(BaseModel):
    """Add one CBCT setup beam and four orthogonal kV setup beams to a plan.

    The beams are added in the order CBCT, 0, 270, 90, 180. They share the
    numeric part of their ID, e.g. C7, A7, R7, L7, U7.
    """

    model_config = ConfigDict(frozen=True)

    KV_GANTRY_ANGLES: ClassVar[tuple[float, ...]] = (0.0, 270.0, 90.0, 180.0)
    CBCT_PREFIX: ClassVar[str] = "C"

    jaws: tuple[float, float, float, float] = Field(
        default=FIELD_APERTURE,
        title="Field Aperture",
        description="The jaw positions (x1, y1, x2, y2) of every setup beam.",
        json_schema_extra={"units": "mm"},
    )
    coll_angle: float = Field(
        default=0,
        title="Collimator Angle",
        description="The collimator angle of every setup beam.",
        json_schema_extra={"units": "degrees"},
    )
    couch_angle: float = Field(
        default=0,
        title="Couch Angle",
        description="The couch angle of every setup beam.",
        json_schema_extra={"units": "degrees"},
    )
    cbct_name: str = Field(
        default="CBCT setup", title="CBCT Name", description="The name of the CBCT beam."
    )
    kv_name_suffix: str = Field(
        default=" kV setup",
        title="kV Name Suffix",
        description="Appended to the beam direction to name the kV beams.",
    )

    def compute(
        self,
        plan: Plan,
        orientation: PatientOrientation,
        machine_parameters: MachineParameters,
        drr_parameters: DRRParameters,
        beam_number: int,
        isocenter: tuple[float, float, float],
    ) -> list[SetupBeam]:
        """Add the five setup beams to ``plan``, which must be in a modification session.

        Parameters
        ----------
        plan : Plan
            The plan to add the beams to.
        orientation : PatientOrientation
            The treatment orientation of the plan. Must be resolvable.
        machine_parameters : MachineParameters
            The machine parameters of every beam.
        drr_parameters : DRRParameters
            The DRR setting of the kV beams.
        beam_number : int
            The numeric part of the beam IDs.
        isocenter : tuple[float, float, float]
            The isocenter of every beam.
        """
        cbct = plan.add_setup_beam(
            machine_parameters,
            self.jaws,
            self.coll_angle,
            None,
            self.couch_angle,
            isocenter,
        )
        cbct.beam_id = f"{self.CBCT_PREFIX}{beam_number}"
        cbct.name = self.cbct_name
        beams = [cbct]
        logger.info("Added %s (%s)", cbct.beam_id, cbct.name)

        for gantry_angle in self.KV_GANTRY_ANGLES:
            beam = plan.add_setup_beam(
                machine_parameters,
                self.jaws,
                self.coll_angle,
                gantry_angle,
                self.couch_angle,
                isocenter,
            )
            direction = resolve_direction(gantry_angle, orientation)
            beam.beam_id = f"{direction.value[0].upper()}{beam_number}"
            beam.name = f"{direction.value}{self.kv_name_suffix}"
            beam.create_or_replace_drr(drr_parameters)
            beams.append(beam)
            logger.info("Added %s (%s) at gantry %g", beam.beam_id, beam.name, gantry_angle)
        return beams
