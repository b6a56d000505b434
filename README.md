# madphase

madphase provides batched building blocks for phase-space sampling in event
generators. It is built on numpy.

Every function works on whole batches at once. Four-momenta are arrays whose
last axis holds `(E, px, py, pz)`. Functions accept numpy arrays, anything
`numpy.asarray` understands, or `Tensor` objects.

## Modules

- `madphase.tensor` provides `DataType` (`dt_int`, `dt_float`) and `Tensor`.
  - A `Tensor` is a float or 64-bit integer array of at most four dimensions,
    and its first axis is the batch axis.
  - It supports `size`, `dtype_size`, `byte_size`, `is_contiguous` and
    `index_value`.
  - `slice` returns a view that shares memory with the tensor.
  - `copy` returns an independent copy.
  - `zero`, `add` and `copy_from` work in place.
  - `contiguous(batch_size)` broadcasts a batch of one to `batch_size` and
    raises `ValueError` for any other mismatch.
  - `numpy()` returns the underlying array.
  - `Tensor.from_array` builds a tensor from an array.
- `madphase.kinematics` contains:
  - `kaellen` and `lsquare`
  - `rotate`, `boost` and `boost_beam`
  - `com_p_in`
  - `two_particle_decay`, `two_particle_decay_com` and `two_particle_decay_lab`
  - `two_particle_scattering`, `two_particle_scattering_com` and
    `two_particle_scattering_lab`
  - `t_inv_min_max`
  - `r_to_x1x2` and `x1x2_to_r`
  - `diff_cross_section`, which gives the result in picobarn
  - `invariants_from_momenta`
  - `sde2_channel_weights`, which gives normalised propagator channel weights
  - `pt_eta_phi_x`, which builds features from `x1`, `x2` and the (log pT, phi,
    eta) of each outgoing particle
  - `mirror_momenta`
- `madphase.scale` computes dynamical scales from momenta of shape
  `(..., particles, 4)`, where the first two particles are incoming. It
  provides `transverse_mass`, `scale_transverse_energy`,
  `scale_transverse_mass`, `scale_half_transverse_mass` and
  `scale_partonic_energy`.
- `madphase.device` provides:
  - `job_count_and_size`, which splits a batch into jobs for a thread pool.
  - `CpuDevice`, which has `tensor_copy`, `tensor_zero`, `tensor_add` and
    `foreach`. By default `foreach` calls `func(batch_size, 0)` once. With
    `concurrent=True` it runs `func(count, offset)` chunks on a thread pool and
    waits for them to finish.
- `madphase.ops` provides:
  - `nonzero`
  - `batch_gather` and `batch_scatter`
  - `random_uniform`
  - `unweight`, which does accept-reject unweighting
  - `vegas_histogram`, which builds per-dimension bins of squared weights and
    counts
  - `discrete_histogram`
- `madphase.linalg` provides `matmul`, a dense affine layer computing
  `x @ w.T + b`, and `matmul_backward`, which returns the input, weight and
  bias gradients.
- `madphase.runtime` provides `Step`, `Runtime` and `last_uses`.
  - A `Runtime` takes a list of steps over numbered locals, the input count,
    optional constants and a mapping from opcode to Python callable.
  - It checks that every local is defined before it is read.
  - It inserts instructions that release each local after its last use.
  - `schedule()` groups instructions into dependency waves.
  - `run(inputs)` returns the output locals.

## Installing

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Example

```python
import numpy as np
from madphase.kinematics import com_p_in, two_particle_decay_com, lsquare
from madphase.scale import scale_partonic_energy

e_cm = np.array([13000.0, 1000.0])
p1, p2 = com_p_in(e_cm)

r_phi = np.array([0.3, 0.7])
r_cos = np.array([0.5, 0.1])
m0 = np.array([125.0, 125.0])
m = np.zeros(2)
k1, k2, det = two_particle_decay_com(r_phi, r_cos, m0, m, m)
print(lsquare(k1 + k2))          # m0 ** 2

momenta = np.stack([p1, p2], axis=1)
print(scale_partonic_energy(momenta))   # e_cm ** 2
```

Unweighting a batch of weights:

```python
import numpy as np
from madphase.ops import unweight

rng = np.random.default_rng(1)
weights = rng.exponential(size=1000)
indices, uw_weights = unweight(weights, np.full(1000, weights.max()), rng)
```

Running a small dataflow:

```python
import numpy as np
from madphase.runtime import Runtime, Step

rt = Runtime(
    steps=[Step("add", (0, 1), (2,)), Step("mul", (2, 1), (3,))],
    input_count=2,
    local_count=4,
    output_indices=[3],
    operations={"add": np.add, "mul": np.multiply},
)
print(rt.run([np.array([1.0]), np.array([2.0])]))   # [array([6.])]
```

## What it does not do

madphase has no command-line program. It does not include the following:

- matrix-element evaluation
- PDF or running-coupling interpolation
- complete phase-space mappings or adaptive samplers
- neural-network layers other than `matmul`
- an event file format

The `Runtime` does not ship any operations of its own. Every opcode needs a
callable supplied by the caller.