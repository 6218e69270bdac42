import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Self

import pydicom
from plotly import graph_objects as go
from pydicom.dataset import Dataset
from pydicom.sequence import Sequence as DicomSequence

from setupbeams.images.ct import CTVolume
from setupbeams.images.drr import plot_drr
from setupbeams.plans.beam import SetupBeam
from setupbeams.plans.direction import PatientOrientation
from setupbeams.plans.machine import MachineParameters

logger = logging.getLogger(__name__)

APPROVAL_UNAPPROVED = "UNAPPROVED"
DEFAULT_COURSE_ID = "1"


class PlanBeam:
    """Read-only view of a beam of a plan (treatment or setup)."""

    def __init__(self, dataset: Dataset):
        self.dataset = dataset

    @property
    def beam_id(self) -> str:
        return str(self.dataset.get("BeamName", ""))

    @property
    def name(self) -> str:
        return str(self.dataset.get("BeamDescription", ""))

    @property
    def beam_number(self) -> int:
        return self.dataset.BeamNumber

    @property
    def treatment_unit(self) -> str:
        return str(self.dataset.get("TreatmentMachineName", ""))

    @property
    def is_setup(self) -> bool:
        return self.dataset.get("TreatmentDeliveryType") == "SETUP"

    @property
    def _cp0(self) -> Dataset | None:
        cps = self.dataset.get("ControlPointSequence")
        return cps[0] if cps else None

    @property
    def dose_rate(self) -> float | None:
        rate = self._cp0.get("DoseRateSet") if self._cp0 else None
        return None if rate is None else float(rate)

    @property
    def isocenter(self) -> tuple[float, float, float] | None:
        iso = self._cp0.get("IsocenterPosition") if self._cp0 else None
        if not iso:
            return None
        return tuple(float(v) for v in iso)

    @property
    def energy_mode(self) -> str:
        """The energy as the planning system displays it, e.g. ``6X`` or ``10X-FFF``."""
        energy = self._cp0.get("NominalBeamEnergy") if self._cp0 else None
        if energy is None:
            return ""
        particle = "E" if self.dataset.get("RadiationType") == "ELECTRON" else "X"
        mode = f"{float(energy):g}{particle}"
        pfms = self.dataset.get("PrimaryFluenceModeSequence")
        if pfms and pfms[0].get("FluenceMode") == "NON_STANDARD":
            fluence_id = pfms[0].get("FluenceModeID")
            if fluence_id:
                mode += f"-{fluence_id}"
        return mode

    def machine_parameters(self) -> MachineParameters:
        """The machine parameters setup beams inherit from this beam."""
        return MachineParameters.from_energy_mode(
            self.energy_mode, self.treatment_unit, self.dose_rate
        )


class Plan:
    """An external beam plan backed by an RT Plan dataset."""

    def __init__(self, ds: Dataset, image: CTVolume | None = None):
        """
        Parameters
        ----------
        ds : Dataset
            The RT Plan dataset. It is modified in place when setup beams are added.
        image : CTVolume, optional
            The planning CT. Needed to render DRRs.
        """
        if ds.get("Modality") != "RTPLAN":
            raise ValueError("File is not an RTPLAN file")
        self.ds = ds
        self.image = image
        # RT Images keyed by the beam number they were rendered for
        self.drrs: dict[int, Dataset] = {}
        self._modifying = False

    @classmethod
    def from_rt_plan_file(
        cls, rt_plan_file: str | Path, image: CTVolume | None = None
    ) -> Self:
        return cls(pydicom.dcmread(rt_plan_file), image=image)

    @property
    def plan_id(self) -> str:
        return str(self.ds.get("RTPlanLabel", ""))

    @property
    def name(self) -> str:
        return str(self.ds.get("RTPlanName", ""))

    @property
    def uid(self) -> str:
        return str(self.ds.get("SOPInstanceUID", ""))

    @property
    def course_id(self) -> str:
        return str(self.ds.get("StudyID", "") or DEFAULT_COURSE_ID)

    @property
    def approval_status(self) -> str:
        return str(self.ds.get("ApprovalStatus", APPROVAL_UNAPPROVED))

    @property
    def is_unapproved(self) -> bool:
        return self.approval_status == APPROVAL_UNAPPROVED

    @property
    def orientation(self) -> PatientOrientation:
        setups = self.ds.get("PatientSetupSequence")
        position = setups[0].get("PatientPosition") if setups else None
        return PatientOrientation.from_dicom(position)

    @property
    def planning_system_version(self) -> str | None:
        """The software version of the Varian planning system that wrote the plan, if it did."""
        if not str(self.ds.get("Manufacturer", "")).upper().startswith("VARIAN"):
            return None
        versions = self.ds.get("SoftwareVersions")
        if not versions:
            return None
        if isinstance(versions, str):
            return versions
        return str(versions[0])

    @property
    def beams(self) -> list[PlanBeam]:
        return [PlanBeam(b) for b in self.ds.get("BeamSequence", [])]

    def beam_ids(self) -> list[str]:
        return [b.beam_id for b in self.beams]

    @contextmanager
    def begin_modifications(self) -> Iterator[Self]:
        """Open a modification session. Beams can only be added inside a session.

        If an exception escapes the session, the beams and DRRs are restored to
        their state at the start of the session and the exception is re-raised.
        """
        if self._modifying:
            raise RuntimeError("A modification session is already open")
        had_beams = "BeamSequence" in self.ds
        beams = list(self.ds.get("BeamSequence", []))
        drrs = dict(self.drrs)
        self._modifying = True
        try:
            yield self
        except Exception:
            logger.error("Modification of plan %s failed; rolling back", self.plan_id)
            if had_beams:
                self.ds.BeamSequence = DicomSequence(beams)
            elif "BeamSequence" in self.ds:
                del self.ds.BeamSequence
            self.drrs = drrs
            raise
        finally:
            self._modifying = False

    def add_setup_beam(
        self,
        machine_parameters: MachineParameters,
        jaws: tuple[float, float, float, float],
        coll_angle: float,
        gantry_angle: float | None,
        couch_angle: float,
        isocenter: tuple[float, float, float],
    ) -> SetupBeam:
        """Add a setup beam to the plan and return it. The caller sets the ID and name.

        See Also
        --------
        :meth:`SetupBeam.create_dataset`
        """
        if not self._modifying:
            raise RuntimeError(
                "Setup beams can only be added inside begin_modifications()"
            )
        dataset = SetupBeam.create_dataset(
            machine_parameters, jaws, coll_angle, gantry_angle, couch_angle, isocenter
        )
        if "BeamSequence" not in self.ds:
            self.ds.BeamSequence = DicomSequence()
        dataset.BeamNumber = max((b.beam_number for b in self.beams), default=0) + 1
        setups = self.ds.get("PatientSetupSequence")
        if setups:
            dataset.ReferencedPatientSetupNumber = setups[0].PatientSetupNumber
        tolerance_tables = self.ds.get("ToleranceTableSequence")
        if tolerance_tables:
            dataset.ReferencedToleranceTableNumber = tolerance_tables[
                0
            ].ToleranceTableNumber
        self.ds.BeamSequence.append(dataset)
        return SetupBeam(self, dataset, gantry_angle)

    def to_file(self, filename: str | Path) -> None:
        """Write the RT Plan dataset to file"""
        self.ds.save_as(filename, enforce_file_format=True)

    def plot_drrs(self, show: bool = True) -> list[go.Figure]:
        """Plot the DRRs attached to the plan, in beam number order."""
        figs = []
        for number in sorted(self.drrs):
            drr = self.drrs[number]
            fig = plot_drr(
                drr.pixel_array,
                pixel_size=float(drr.ImagePlanePixelSpacing[0]),
                title=f"DRR - {drr.RTImageLabel}",
                show=show,
            )
            figs.append(fig)
        return figs


class Course:
    def __init__(self, course_id: str, plans: Iterable[Plan] = ()):
        self.course_id = course_id
        self.plans = list(plans)


class Patient:
    """A patient and every plan of every course."""

    def __init__(self, patient_id: str, name: str = "", courses: Iterable[Course] = ()):
        self.patient_id = patient_id
        self.name = name
        self.courses = list(courses)

    @classmethod
    def from_plans(cls, plans: Iterable[Plan]) -> Self:
        """Group plans of one patient into courses (by StudyID)."""
        plans = list(plans)
        if not plans:
            raise ValueError("At least one RTPLAN is needed to build a patient")
        patient_ids = {str(p.ds.get("PatientID", "")) for p in plans}
        if len(patient_ids) > 1:
            raise ValueError(f"Plans belong to more than one patient: {sorted(patient_ids)}")
        patient = cls(
            patient_id=patient_ids.pop(), name=str(plans[0].ds.get("PatientName", ""))
        )
        for plan in plans:
            patient.add_plan(plan)
        return patient

    @classmethod
    def from_directory(
        cls, directory: str | Path, patient_id: str | None = None
    ) -> Self:
        """Build the patient from the RTPLAN files in ``directory``.

        See Also
        --------
        load_plans
        """
        return cls.from_plans(cls.load_plans(directory, patient_id))

    @staticmethod
    def load_plans(directory: str | Path, patient_id: str | None = None) -> list[Plan]:
        """Load every RTPLAN file in ``directory`` (recursively). If ``patient_id`` is given,
        plans of other patients are skipped."""
        plans = []
        for path in sorted(Path(directory).rglob("*")):
            if not path.is_file():
                continue
            ds = pydicom.dcmread(path, force=True)
            if ds.get("Modality") != "RTPLAN":
                continue
            if patient_id is not None and str(ds.get("PatientID", "")) != patient_id:
                continue
            plans.append(Plan(ds))
        logger.info("Found %d plans in %s", len(plans), directory)
        return plans

    def add_plan(self, plan: Plan) -> None:
        course = next(
            (c for c in self.courses if c.course_id == plan.course_id), None
        )
        if course is None:
            course = Course(plan.course_id)
            self.courses.append(course)
        course.plans.append(plan)

    @property
    def plans(self) -> list[Plan]:
        return [plan for course in self.courses for plan in course.plans]

    def find_plan(self, uid: str) -> Plan | None:
        return next((p for p in self.plans if p.uid == uid), None)

    def beam_ids(self) -> Iterator[str]:
        """Every beam ID of every plan of every course of the patient."""
        for course in self.courses:
            for plan in course.plans:
                yield from plan.beam_ids()
