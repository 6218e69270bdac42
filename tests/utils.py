from collections.abc import Sequence

import numpy as np
from pydicom import FileMetaDataset
from pydicom.dataset import Dataset
from pydicom.sequence import Sequence as DicomSequence
from pydicom.uid import (
    CTImageStorage,
    ExplicitVRLittleEndian,
    RTPlanStorage,
    generate_uid,
)

from setupbeams.images.ct import CTVolume

ISOCENTER = (10.0, -20.0, 30.0)


def _file_meta(sop_class_uid, sop_instance_uid) -> FileMetaDataset:
    file_meta = FileMetaDataset()
    file_meta.TransferSyntaxUID = ExplicitVRLittleEndian
    file_meta.MediaStorageSOPClassUID = sop_class_uid
    file_meta.MediaStorageSOPInstanceUID = sop_instance_uid
    return file_meta


def create_beam_dataset(**kwargs) -> Dataset:
    """A minimal treatment BeamSequence item"""
    beam = Dataset()
    beam.BeamNumber = kwargs.get("beam_number", 1)
    beam.BeamName = kwargs.get("beam_name", "1 ANT")
    beam.BeamDescription = kwargs.get("beam_description", "")
    beam.TreatmentMachineName = kwargs.get("machine", "TrueBeamSN1234")
    beam.RadiationType = kwargs.get("radiation_type", "PHOTON")
    beam.TreatmentDeliveryType = kwargs.get("delivery_type", "TREATMENT")
    beam.BeamType = "STATIC"
    fluence_mode = Dataset()
    fluence_mode_id = kwargs.get("fluence_mode_id")
    if fluence_mode_id:
        fluence_mode.FluenceMode = "NON_STANDARD"
        fluence_mode.FluenceModeID = fluence_mode_id
    else:
        fluence_mode.FluenceMode = "STANDARD"
    beam.PrimaryFluenceModeSequence = DicomSequence((fluence_mode,))

    cp0 = Dataset()
    cp0.ControlPointIndex = 0
    energy = kwargs.get("energy", 6)
    if energy is not None:
        cp0.NominalBeamEnergy = energy
    dose_rate = kwargs.get("dose_rate", 600)
    if dose_rate is not None:
        cp0.DoseRateSet = dose_rate
    cp0.GantryAngle = kwargs.get("gantry_angle", 0.0)
    isocenter = kwargs.get("isocenter", ISOCENTER)
    if isocenter is not None:
        cp0.IsocenterPosition = list(isocenter)
    cp0.CumulativeMetersetWeight = 0.0
    cp1 = Dataset()
    cp1.ControlPointIndex = 1
    cp1.CumulativeMetersetWeight = 1.0
    beam.ControlPointSequence = DicomSequence((cp0, cp1))
    beam.NumberOfControlPoints = 2
    return beam


def create_rt_plan(beams: Sequence[Dataset] | None = None, **kwargs) -> Dataset:
    """A minimal RT Plan dataset. By default it has one 6X treatment beam, HFS, unapproved."""
    ds = Dataset()
    ds.SOPClassUID = RTPlanStorage
    ds.SOPInstanceUID = generate_uid()
    ds.StudyInstanceUID = generate_uid()
    ds.SeriesInstanceUID = generate_uid()
    ds.Modality = "RTPLAN"
    ds.Manufacturer = kwargs.get("manufacturer", "Varian Medical Systems")
    ds.SoftwareVersions = kwargs.get("software_versions", "16.1.0")
    ds.PatientName = kwargs.get("patient_name", "Test^Patient")
    ds.PatientID = kwargs.get("patient_id", "123456")
    ds.StudyID = kwargs.get("study_id", "C1")
    ds.RTPlanLabel = kwargs.get("plan_label", "Lung1")
    ds.RTPlanName = kwargs.get("plan_name", "Lung1")
    approval_status = kwargs.get("approval_status", "UNAPPROVED")
    if approval_status is not None:
        ds.ApprovalStatus = approval_status

    patient_setup = Dataset()
    patient_setup.PatientPosition = kwargs.get("patient_position", "HFS")
    patient_setup.PatientSetupNumber = 1
    ds.PatientSetupSequence = DicomSequence((patient_setup,))

    tolerance_table = Dataset()
    tolerance_table.ToleranceTableNumber = 1
    ds.ToleranceTableSequence = DicomSequence((tolerance_table,))

    if beams is None:
        beams = [create_beam_dataset()]
    ds.BeamSequence = DicomSequence(beams)
    ds.file_meta = _file_meta(ds.SOPClassUID, ds.SOPInstanceUID)
    return ds


def create_ct_volume(
    shape: tuple[int, int, int] = (21, 41, 41),
    spacing: tuple[float, float, float] = (2.0, 2.0, 2.0),
    isocenter: tuple[float, float, float] = ISOCENTER,
    background: float = -1000.0,
) -> CTVolume:
    """An air-filled CT volume whose central voxel sits on the isocenter."""
    hu = np.full(shape, background, dtype=np.float32)
    origin = tuple(
        isocenter[i] - spacing[2 - i] * (shape[2 - i] - 1) / 2 for i in range(3)
    )
    return CTVolume(hu=hu, spacing=spacing, origin=origin)


def create_ct_slices(
    shape: tuple[int, int, int] = (3, 4, 5),
    spacing: tuple[float, float, float] = (2.5, 1.0, 1.5),
    origin: tuple[float, float, float] = (-3.0, -2.0, 0.0),
    hu: int = 40,
) -> list[Dataset]:
    """Axial CT slices with a constant HU value; the slices are returned in reverse z order."""
    slices = []
    study_uid = generate_uid()
    for idx in range(shape[0]):
        ds = Dataset()
        ds.SOPClassUID = CTImageStorage
        ds.SOPInstanceUID = generate_uid()
        ds.StudyInstanceUID = study_uid
        ds.Modality = "CT"
        ds.ImagePositionPatient = [origin[0], origin[1], origin[2] + idx * spacing[0]]
        ds.ImageOrientationPatient = [1, 0, 0, 0, 1, 0]
        ds.PixelSpacing = [spacing[1], spacing[2]]
        ds.SliceThickness = spacing[0]
        ds.RescaleSlope = 1
        ds.RescaleIntercept = -1024
        ds.Rows = shape[1]
        ds.Columns = shape[2]
        ds.SamplesPerPixel = 1
        ds.PhotometricInterpretation = "MONOCHROME2"
        ds.BitsAllocated = 16
        ds.BitsStored = 16
        ds.HighBit = 15
        ds.PixelRepresentation = 0
        ds.PixelData = np.full(shape[1:], hu + 1024, dtype=np.uint16).tobytes()
        ds.file_meta = _file_meta(ds.SOPClassUID, ds.SOPInstanceUID)
        slices.append(ds)
    return slices[::-1]
