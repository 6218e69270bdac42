import tempfile
from pathlib import Path

import numpy as np
import pytest

from setupbeams.images.ct import CTVolume
from tests.utils import create_ct_slices, create_rt_plan


class TestCTVolume:
    def test_from_datasets(self):
        volume = CTVolume.from_datasets(create_ct_slices())
        assert volume.hu.shape == (3, 4, 5)
        np.testing.assert_allclose(volume.hu, 40)
        assert volume.spacing == (2.5, 1.0, 1.5)
        assert volume.origin == (-3.0, -2.0, 0.0)

    def test_slices_are_sorted(self):
        volume = CTVolume.from_datasets(create_ct_slices())
        np.testing.assert_allclose(volume.coordinates(0), [0.0, 2.5, 5.0])

    def test_coordinates(self):
        volume = CTVolume.from_datasets(create_ct_slices())
        np.testing.assert_allclose(volume.coordinates(1), [-2.0, -1.0, 0.0, 1.0])
        np.testing.assert_allclose(volume.coordinates(2), [-3.0, -1.5, 0.0, 1.5, 3.0])

    def test_other_modalities_are_ignored(self):
        volume = CTVolume.from_datasets([create_rt_plan(), *create_ct_slices()])
        assert volume.hu.shape[0] == 3

    def test_no_slices(self):
        with pytest.raises(ValueError):
            CTVolume.from_datasets([create_rt_plan()])

    def test_from_directory(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            for idx, ds in enumerate(create_ct_slices()):
                ds.save_as(Path(tmpdir) / f"CT{idx}.dcm", enforce_file_format=True)
            create_rt_plan().save_as(
                Path(tmpdir) / "RP.dcm", enforce_file_format=True
            )
            volume = CTVolume.from_directory(tmpdir)
        assert volume.hu.shape == (3, 4, 5)
