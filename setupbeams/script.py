"""Add 4 kV setup beams and 1 CBCT setup beam to the selected plan."""

import logging
import re
from dataclasses import dataclass

from setupbeams.images.drr import select_drr_setting
from setupbeams.plans.beam_ids import next_beam_number
from setupbeams.plans.direction import PatientOrientation
from setupbeams.plans.plan import Patient, Plan
from setupbeams.plans.setup_beams import SetupBeams

logger = logging.getLogger(__name__)

MIN_PLANNING_SYSTEM_VERSION = 16
VERSION_PATTERN = re.compile(r"^(\d+)\.")


class PreconditionError(ValueError):
    """The patient or plan is not in a state where setup beams can be added. Nothing was modified."""


@dataclass
class ScriptContext:
    """
    What the script runs against.

    Parameters
    ----------
    patient : Patient, optional
        The open patient, with every course and plan.
    plan : Plan, optional
        The selected plan. Setup beams are added to it.
    version : str, optional
        The version of the planning system. Defaults to the version recorded in the plan.
    """

    patient: Patient | None
    plan: Plan | None
    version: str | None = None


def check_version(version: str | None) -> None:
    """Raise if ``version`` is a version string below the minimum supported major version.
    Strings that don't start with ``<major>.`` are not checked."""
    if version is None:
        return
    match = VERSION_PATTERN.match(version)
    if match and int(match.group(1)) < MIN_PLANNING_SYSTEM_VERSION:
        raise PreconditionError(
            f"Planning system ver.{version}, script cannot run on version below {MIN_PLANNING_SYSTEM_VERSION}."
        )


def execute(context: ScriptContext, procedure: SetupBeams | None = None) -> str:
    """Add the setup beams to the selected plan and return a confirmation message.

    All preconditions are checked before the plan is modified; if one fails a
    :class:`PreconditionError` is raised and the plan is untouched.
    """
    plan = context.plan
    version = context.version
    if version is None and plan is not None:
        version = plan.planning_system_version
    check_version(version)

    patient = context.patient
    if patient is None:
        raise PreconditionError("Please open a patient before using this script.")
    if plan is None:
        raise PreconditionError("Please select a plan before using this script.")
    if not plan.is_unapproved:
        raise PreconditionError("Please unapprove plan before using this script.")

    reference_beam = next(iter(plan.beams), None)
    if reference_beam is None or reference_beam.isocenter is None:
        raise PreconditionError(
            "Please add a beam with valid isocenter in current plan before using this script."
        )

    orientation = plan.orientation
    if orientation == PatientOrientation.UNKNOWN:
        raise PreconditionError(
            "Cannot determine beam orientation relative to patient orientation, no setup beam created."
        )

    drr_setting = select_drr_setting(plan.plan_id)
    beam_ids = list(patient.beam_ids())
    if patient.find_plan(plan.uid) is not plan:
        beam_ids.extend(plan.beam_ids())
    beam_number = next_beam_number(beam_ids)
    machine_parameters = reference_beam.machine_parameters()
    logger.info(
        "Plan %s: orientation %s, %s DRR, beam number %d, %s",
        plan.plan_id,
        orientation,
        drr_setting.name.lower(),
        beam_number,
        machine_parameters,
    )

    procedure = procedure or SetupBeams()
    with plan.begin_modifications():
        procedure.compute(
            plan,
            orientation=orientation,
            machine_parameters=machine_parameters,
            drr_parameters=drr_setting.value,
            beam_number=beam_number,
            isocenter=reference_beam.isocenter,
        )

    message = f"Set of setup beam has been created in plan {plan.plan_id}."
    logger.info(message)
    return message
