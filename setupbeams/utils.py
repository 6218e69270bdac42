from datetime import datetime

import numpy as np
from numpy import ndarray
from pydicom import FileMetaDataset, Dataset
from pydicom.sequence import Sequence as DicomSequence
from pydicom.uid import generate_uid, RTImageStorage, ExplicitVRLittleEndian


def wrap360(value: float | ndarray) -> float | ndarray:
    """Wrap the input values to the interval [0, 360)"""
    return value % 360


def _rt_image_position(array: ndarray, pixel_size: float) -> list[float]:
    """Calculate the RT Image Position of the array."""
    rows, cols = array.shape

    # Origin is at center, so upper-left pixel is offset by half width and height
    x_position = -(cols * pixel_size / 2) + (pixel_size / 2)
    y_position = (rows * pixel_size / 2) - (pixel_size / 2)
    return [x_position, y_position]


def array_to_dicom(
    array: ndarray,
    pixel_size: float,
    sid: float,
    gantry: float,
    coll: float,
    couch: float,
    plan: Dataset,
    beam_number: int,
    label: str,
    extra_tags: dict | None = None,
) -> Dataset:
    """Converts a DRR array into an RT Image dataset that references its plan and beam.

    .. note::

        The array is rescaled into the full uint16 range before it is stored.

    Parameters
    ----------
    array
        The numpy array to be converted. Must be 2 dimensions.
    pixel_size
        The pixel size in mm at the isocenter plane.
    sid
        The Source-to-Image distance in mm.
    gantry
        The gantry value of the beam.
    coll
        The collimator value of the beam.
    couch
        The couch value of the beam.
    plan
        The RT Plan dataset the beam belongs to. Patient and study tags are copied from it.
    beam_number
        The number of the beam within the plan.
    label
        The RT Image label, usually the beam ID.
    extra_tags
        Additional tags to set on the dataset. These override any defaults.
    """
    peak = array.max() if array.size else 0
    if peak > 0:
        array = array / peak * np.iinfo(np.uint16).max
    array = np.round(array).astype(np.uint16)

    now = datetime.now()
    file_meta = FileMetaDataset()
    ds = Dataset()
    ds.SOPClassUID = RTImageStorage
    ds.SOPInstanceUID = generate_uid()
    ds.SeriesInstanceUID = generate_uid()
    ds.StudyInstanceUID = plan.get("StudyInstanceUID", generate_uid())
    ds.StudyDate = now.strftime("%Y%m%d")
    ds.ContentDate = now.strftime("%Y%m%d")
    ds.StudyTime = now.strftime("%H%M%S")
    ds.ContentTime = now.strftime("%H%M%S")
    ds.Modality = "RTIMAGE"
    ds.ConversionType = "WSD"
    ds.PatientName = plan.get("PatientName", "")
    ds.PatientID = plan.get("PatientID", "")
    ds.ImageType = ["DERIVED", "SECONDARY", "DRR"]
    ds.RTImageLabel = label
    ds.RTImagePlane = "NORMAL"
    ds.RadiationMachineName = plan.BeamSequence[0].get("TreatmentMachineName", "")
    ds.RTImagePosition = _rt_image_position(array, pixel_size)
    ds.SamplesPerPixel = 1
    ds.PhotometricInterpretation = "MONOCHROME2"
    ds.Rows = array.shape[0]
    ds.Columns = array.shape[1]
    ds.BitsAllocated = 16
    ds.BitsStored = 16
    ds.HighBit = 15
    ds.PixelRepresentation = 0
    ds.ImagePlanePixelSpacing = [pixel_size, pixel_size]
    ds.RadiationMachineSAD = 1000.0
    ds.RTImageSID = sid
    ds.GantryAngle = gantry
    ds.BeamLimitingDeviceAngle = coll
    ds.PatientSupportAngle = couch
    ds.ReferencedBeamNumber = beam_number

    referenced_plan = Dataset()
    referenced_plan.ReferencedSOPClassUID = plan.SOPClassUID
    referenced_plan.ReferencedSOPInstanceUID = plan.SOPInstanceUID
    ds.ReferencedRTPlanSequence = DicomSequence((referenced_plan,))

    ds.PixelData = array.tobytes()

    ds.file_meta = file_meta
    ds.file_meta.TransferSyntaxUID = ExplicitVRLittleEndian
    ds.file_meta.MediaStorageSOPClassUID = RTImageStorage
    ds.file_meta.MediaStorageSOPInstanceUID = ds.SOPInstanceUID
    ds.file_meta.ImplementationClassUID = generate_uid()

    extra_tags = extra_tags or {}
    for key, value in extra_tags.items():
        setattr(ds, key, value)
    return ds
