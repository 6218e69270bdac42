from unittest import TestCase

from parameterized import parameterized

from setupbeams.plans.machine import MachineParameters


def create_machine_parameters(energy_mode: str) -> MachineParameters:
    return MachineParameters.from_energy_mode(
        energy_mode, treatment_unit="TrueBeamSN1234", dose_rate=600
    )


class TestMachineParametersFromEnergyMode(TestCase):
    @parameterized.expand(
        [
            ("6X", "6X", None),
            ("10X-FFF", "10X", "FFF"),
            ("6X-SRS", "6X", "SRS"),
            ("6x-fff", "6x", "fff"),
            ("15E", "15E", None),
            ("6XFFF", "6XFFF", None),
            ("malformed!!", "malformed!!", None),
            ("", "", None),
        ]
    )
    def test_energy_and_fluence(self, energy_mode, energy, fluence):
        params = create_machine_parameters(energy_mode)
        self.assertEqual(params.energy, energy)
        self.assertEqual(params.fluence, fluence)

    def test_machine_context_is_kept(self):
        params = MachineParameters.from_energy_mode(
            "6X", treatment_unit="TB2", dose_rate=400
        )
        self.assertEqual(params.treatment_unit, "TB2")
        self.assertEqual(params.dose_rate, 400)

    def test_technique_is_always_static(self):
        self.assertEqual(create_machine_parameters("10X-FFF").technique, "STATIC")

    def test_immutable(self):
        params = create_machine_parameters("6X")
        with self.assertRaises(AttributeError):
            params.energy = "10X"

    def test_replace(self):
        params = create_machine_parameters("6X").replace(dose_rate=300)
        self.assertEqual(params.dose_rate, 300)
        self.assertEqual(params.energy, "6X")
