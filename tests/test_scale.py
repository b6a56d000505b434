import numpy as np
import pytest

from madphase import scale
from madphase.kinematics import lsquare
from madphase.tensor import Tensor


def on_shell(mass, px, py, pz):
    return [np.sqrt(mass**2 + px**2 + py**2 + pz**2), px, py, pz]


@pytest.fixture
def event():
    return np.array(
        [
            [
                [60.0, 0.0, 0.0, 60.0],
                [40.0, 0.0, 0.0, -40.0],
                on_shell(5.0, 10.0, -3.0, 12.0),
                on_shell(1.0, -10.0, 3.0, 8.0),
            ]
        ]
    )


def test_partonic_energy_matches_invariant_mass(event):
    expected = lsquare(event[0, 0] + event[0, 1])
    assert scale.scale_partonic_energy(event)[0] == pytest.approx(expected)


def test_partonic_energy_accepts_tensor(event):
    np.testing.assert_allclose(
        scale.scale_partonic_energy(Tensor.from_array(event)),
        scale.scale_partonic_energy(event),
    )


def test_transverse_mass_of_particle_at_rest_is_mass_squared():
    momenta = np.array(
        [[[1.0, 0.0, 0.0, 1.0], [1.0, 0.0, 0.0, -1.0], on_shell(7.0, 0.0, 0.0, 0.0)]]
    )
    assert scale.transverse_mass(momenta)[0] == pytest.approx(lsquare(momenta[0, 2]))


def test_transverse_mass_ignores_incoming(event):
    changed = event.copy()
    changed[0, 0] = [10.0, 0.0, 0.0, 10.0]
    np.testing.assert_allclose(scale.transverse_mass(changed), scale.transverse_mass(event))


def test_transverse_mass_scale_relations(event):
    mt = scale.transverse_mass(event)
    np.testing.assert_allclose(scale.scale_transverse_mass(event), mt * mt)
    np.testing.assert_allclose(
        4.0 * scale.scale_half_transverse_mass(event), scale.scale_transverse_mass(event)
    )


def test_transverse_mass_clips_spacelike_contributions():
    momenta = np.array(
        [[[1.0, 0.0, 0.0, 1.0], [1.0, 0.0, 0.0, -1.0], [1.0, 0.0, 0.0, 2.0]]]
    )
    assert scale.transverse_mass(momenta)[0] == 0.0


def test_transverse_energy_invariant_under_z_mirror_and_azimuth(event):
    mirrored = event.copy()
    mirrored[..., 3] *= -1.0
    np.testing.assert_allclose(
        scale.scale_transverse_energy(mirrored), scale.scale_transverse_energy(event)
    )
    rotated = event.copy()
    rotated[..., 1], rotated[..., 2] = -event[..., 2], event[..., 1]
    np.testing.assert_allclose(
        scale.scale_transverse_energy(rotated), scale.scale_transverse_energy(event)
    )


def test_transverse_energy_vanishes_along_beam():
    momenta = np.array(
        [[[1.0, 0.0, 0.0, 1.0], [1.0, 0.0, 0.0, -1.0], on_shell(1.0, 0.0, 0.0, 4.0)]]
    )
    assert scale.scale_transverse_energy(momenta)[0] == 0.0


def test_scales_are_batched(event):
    batch = np.concatenate([event, event], axis=0)
    for func in (
        scale.scale_transverse_energy,
        scale.scale_transverse_mass,
        scale.scale_half_transverse_mass,
        scale.scale_partonic_energy,
    ):
        result = func(batch)
        assert result.shape == (2,)
        assert result[0] == pytest.approx(result[1])
        assert result[0] == pytest.approx(func(event)[0])