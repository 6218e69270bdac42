import logging
import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Self

import numpy as np
from plotly import graph_objects as go

from setupbeams.images.ct import CTVolume
from setupbeams.plans.direction import PatientOrientation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DRRLayer:
    """
    One layer of a DRR calculation.

    Parameters
    ----------
    weight : float
        The weight of the layer in the final image.
    ct_from : float
        The lower bound of the CT window in HU.
    ct_to : float
        The upper bound of the CT window in HU.
    geo_from : float, optional
        The start of the geometric clipping window in cm, measured from the
        isocenter along the beam axis, positive towards the source.
        If omitted, the full depth of the volume is used.
    geo_to : float, optional
        The end of the geometric clipping window in cm.
    """

    weight: float
    ct_from: float
    ct_to: float
    geo_from: float | None = None
    geo_to: float | None = None


@dataclass(frozen=True)
class DRRParameters:
    """
    The parameters of a DRR calculation.

    Parameters
    ----------
    layers : tuple[DRRLayer, ...]
        The layers that are summed into the image.
    size : float
        The side length of the (square) DRR in mm at the isocenter plane.
    pixel_size : float
        The pixel size of the DRR in mm.
    """

    layers: tuple[DRRLayer, ...]
    size: float = 500.0
    pixel_size: float = 1.0

    def replace(self, **overrides) -> Self:
        return replace(self, **overrides)


DRR_DEFAULT = DRRParameters(
    layers=(
        DRRLayer(2.0, 0.0, 130.0, -100.0, 100.0),
        DRRLayer(10.0, 100.0, 1000.0, -100.0, 100.0),
    )
)
DRR_CHEST = DRRParameters(
    layers=(
        DRRLayer(0.6, -990.0, 0.0, 1.0, 5.0),
        DRRLayer(0.1, -450.0, 0.0, -4.0, 8.0),
        DRRLayer(1.0, 100.0, 1000.0),
    )
)


class DRRSetting(Enum):
    DEFAULT = DRR_DEFAULT
    CHEST = DRR_CHEST


def select_drr_setting(plan_id: str) -> DRRSetting:
    """Breast plans use the chest setting; all other plans use the default setting."""
    if "BREAST" in plan_id.upper():
        return DRRSetting.CHEST
    return DRRSetting.DEFAULT


def source_direction(
    gantry_angle: float, orientation: PatientOrientation
) -> tuple[float, float]:
    """Unit vector (x, y) in patient coordinates pointing from the isocenter to the source."""
    g = math.radians(gantry_angle)
    x, y = math.sin(g), -math.cos(g)
    match orientation:
        case PatientOrientation.HEAD_FIRST_SUPINE:
            return x, y
        case PatientOrientation.HEAD_FIRST_PRONE:
            return -x, -y
        case PatientOrientation.FEET_FIRST_SUPINE:
            return -x, y
        case PatientOrientation.FEET_FIRST_PRONE:
            return x, -y
        case _:
            raise ValueError(f"Cannot determine the source position for orientation {orientation}")


def compute_drr(
    volume: CTVolume,
    isocenter: tuple[float, float, float],
    gantry_angle: float,
    orientation: PatientOrientation,
    parameters: DRRParameters,
) -> np.ndarray:
    """Compute a parallel-beam DRR of ``volume`` for a beam at ``gantry_angle``.

    Only the cardinal gantry angles are supported; the beam axis is snapped to the
    nearest patient axis. Each layer integrates the relative electron density of the
    voxels inside its HU window (and geometric window, if given), scaled by its
    weight. The image is centered on the isocenter, superior at the top.

    Returns
    -------
    np.ndarray
        The DRR with shape (N, N), N = size / pixel_size.
    """
    sx, sy = source_direction(gantry_angle, orientation)
    if abs(sx) > abs(sy):
        axis, lateral_axis, sign = 2, 1, math.copysign(1, sx)
    else:
        axis, lateral_axis, sign = 1, 2, math.copysign(1, sy)

    shape = [1, 1, 1]
    shape[axis] = -1
    depth_cm = (
        sign * (volume.coordinates(axis) - isocenter[2 - axis]) / 10
    ).reshape(shape)
    density = np.clip(volume.hu + 1000.0, 0, None) / 1000.0
    step_cm = volume.spacing[axis] / 10

    projection = np.zeros(tuple(np.delete(volume.hu.shape, axis)))
    for layer in parameters.layers:
        mask = (volume.hu >= layer.ct_from) & (volume.hu <= layer.ct_to)
        if layer.geo_from is not None and layer.geo_to is not None:
            mask &= (depth_cm >= layer.geo_from) & (depth_cm <= layer.geo_to)
        projection += (
            layer.weight * np.sum(np.where(mask, density, 0.0), axis=axis) * step_cm
        )

    # resample onto the DRR canvas; projection is (z, lateral)
    n = int(round(parameters.size / parameters.pixel_size))
    offsets = parameters.pixel_size * (np.arange(n) - (n - 1) / 2)
    rows = _nearest_index(volume, 0, isocenter[2] - offsets)
    cols = _nearest_index(volume, lateral_axis, isocenter[2 - lateral_axis] + offsets)
    image = np.zeros((n, n))
    row_ok, col_ok = rows >= 0, cols >= 0
    image[np.ix_(row_ok, col_ok)] = projection[np.ix_(rows[row_ok], cols[col_ok])]
    logger.debug(
        "DRR at gantry %s: %d layers, peak %.3f", gantry_angle, len(parameters.layers), image.max()
    )
    return image


def _nearest_index(volume: CTVolume, axis: int, positions: np.ndarray) -> np.ndarray:
    """Index of the voxel nearest to each position along ``axis``; -1 outside the volume."""
    start = volume.coordinates(axis)[0]
    idx = np.round((positions - start) / volume.spacing[axis]).astype(int)
    idx[(idx < 0) | (idx >= volume.hu.shape[axis])] = -1
    return idx


def plot_drr(
    image: np.ndarray, pixel_size: float, title: str = "DRR", show: bool = True
) -> go.Figure:
    """Plot a DRR with the isocenter at the origin."""
    fig = go.Figure()
    fig.add_heatmap(
        z=image,
        colorscale="gray",
        x0=-(image.shape[1] - 1) / 2 * pixel_size,
        dx=pixel_size,
        y0=(image.shape[0] - 1) / 2 * pixel_size,
        dy=-pixel_size,
    )
    fig.update_layout(
        yaxis_constrain="domain",
        xaxis_scaleanchor="y",
        xaxis_constrain="domain",
        xaxis_title="Lateral (mm)",
        yaxis_title="Superior (mm)",
        title_text=title,
        title_x=0.5,
    )
    if show:
        fig.show()
    return fig
