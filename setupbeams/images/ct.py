import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Self

import numpy as np
import pydicom
from pydicom.dataset import Dataset

logger = logging.getLogger(__name__)


@dataclass
class CTVolume:
    """An axial CT volume in Hounsfield units.

    Parameters
    ----------
    hu : np.ndarray
        The voxel values, indexed (slice, row, column), i.e. (z, y, x).
    spacing : tuple[float, float, float]
        The voxel size in mm along (z, y, x).
    origin : tuple[float, float, float]
        The patient coordinate (x, y, z) in mm of the first voxel.
    """

    hu: np.ndarray
    spacing: tuple[float, float, float]
    origin: tuple[float, float, float]

    @classmethod
    def from_datasets(cls, datasets: Iterable[Dataset]) -> Self:
        """Build the volume from CT slices. Slices are sorted by their z position.
        Only axial slices (identity ImageOrientationPatient) are supported."""
        slices = [ds for ds in datasets if ds.get("Modality") == "CT"]
        if not slices:
            raise ValueError("No CT slices found")
        slices.sort(key=lambda ds: float(ds.ImagePositionPatient[2]))

        hu = np.stack(
            [
                ds.pixel_array * float(ds.get("RescaleSlope", 1))
                + float(ds.get("RescaleIntercept", 0))
                for ds in slices
            ]
        ).astype(np.float32)
        if len(slices) > 1:
            z = [float(ds.ImagePositionPatient[2]) for ds in slices]
            dz = float(np.median(np.diff(z)))
        else:
            dz = float(slices[0].get("SliceThickness", 1))
        row_spacing, col_spacing = (float(v) for v in slices[0].PixelSpacing)
        origin = tuple(float(v) for v in slices[0].ImagePositionPatient)
        logger.debug("Loaded CT volume of shape %s", hu.shape)
        return cls(hu=hu, spacing=(dz, row_spacing, col_spacing), origin=origin)

    @classmethod
    def from_directory(cls, directory: str | Path) -> Self:
        """Load every CT slice in ``directory``; other files are skipped."""
        datasets = []
        for path in sorted(Path(directory).iterdir()):
            if not path.is_file():
                continue
            ds = pydicom.dcmread(path, force=True)
            if ds.get("Modality") == "CT":
                datasets.append(ds)
        return cls.from_datasets(datasets)

    def coordinates(self, axis: int) -> np.ndarray:
        """Patient coordinates in mm of the voxel centers along a (z, y, x) array axis."""
        # the origin is (x, y, z) while the array is (z, y, x)
        start = self.origin[2 - axis]
        return start + self.spacing[axis] * np.arange(self.hu.shape[axis])
