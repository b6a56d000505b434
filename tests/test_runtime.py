import numpy as np
import pytest

from madphase.runtime import Runtime, Step, last_uses
from madphase.tensor import DataType, Tensor


def _add(a, b):
    return Tensor.from_array(a.numpy() + b.numpy())


def _mul(a, b):
    return Tensor.from_array(a.numpy() * b.numpy())


def _split(a):
    arr = a.numpy()
    return Tensor.from_array(arr[:, :1]), Tensor.from_array(arr[:, 1:])


OPS = {"add": _add, "mul": _mul, "split": _split}


def _graph():
    steps = [
        Step("add", (0, 1), (2,)),
        Step("mul", (0, 1), (3,)),
        Step("mul", (2, 3), (4,)),
    ]
    return Runtime(steps, 2, 5, [4], {}, OPS), steps


def test_run_matches_numpy():
    runtime, _ = _graph()
    a = np.array([[1.0, 2.0], [3.0, 4.0]])
    b = np.array([[0.5, -1.0], [2.0, 0.25]])
    (out,) = runtime.run([Tensor.from_array(a), Tensor.from_array(b)])
    np.testing.assert_allclose(out.numpy(), (a + b) * (a * b))


def test_multiple_outputs_and_constants():
    steps = [Step("split", (0,), (1, 2)), Step("add", (1, 3), (4,))]
    runtime = Runtime(steps, 1, 5, [4, 2], {3: 2.5}, OPS)
    x = np.array([[1.0, 7.0], [3.0, 9.0]])
    first, second = runtime.run([Tensor.from_array(x)])
    np.testing.assert_allclose(first.numpy(), x[:, :1] + 2.5)
    np.testing.assert_allclose(second.numpy(), x[:, 1:])


def test_integer_constant_becomes_index_tensor():
    captured = {}

    def keep(value):
        captured["value"] = value
        return value

    runtime = Runtime([Step("keep", (1,), (2,))], 1, 3, [2], {1: 7}, {"keep": keep})
    (out,) = runtime.run([Tensor.from_array([1.0])])
    assert out.dtype is DataType.dt_int
    assert out.shape == (1,)
    assert out.index_value() == 7


def test_last_uses_invariants():
    _, steps = _graph()
    result = last_uses(steps, [4])
    listed = [local for group in result for local in group]
    assert sorted(listed) == [0, 1, 2, 3]
    for step_index, group in enumerate(result):
        for local in group:
            uses = [
                i for i, s in enumerate(steps) if local in s.inputs or local in s.outputs
            ]
            assert max(uses) == step_index


def test_last_uses_excludes_outputs():
    steps = [Step("add", (0, 1), (2,))]
    result = last_uses(steps, [0, 2])
    assert result == [[1]]


def test_free_instructions_follow_every_use():
    runtime, _ = _graph()
    instructions = runtime.instructions
    frees = [(k, instr) for k, instr in enumerate(instructions) if instr.is_free]
    assert sorted(instr.inputs[0] for _, instr in frees) == [0, 1, 2, 3]
    for k, free in frees:
        local = free.inputs[0]
        for j, instr in enumerate(instructions):
            if not instr.is_free and (local in instr.inputs or local in instr.outputs):
                assert j < k
                assert k in instr.dependents


def test_schedule_respects_dependencies():
    runtime, _ = _graph()
    waves = runtime.schedule()
    instructions = runtime.instructions
    seen = [index for wave in waves for index in wave]
    assert sorted(seen) == list(range(len(instructions)))
    position = {index: w for w, wave in enumerate(waves) for index in wave}
    for index, instr in enumerate(instructions):
        for dependent in instr.dependents:
            assert position[dependent] > position[index]
    first_opcodes = {instructions[i].opcode for i in waves[0]}
    assert first_opcodes == {"add", "mul"}


def test_wrong_input_count():
    runtime, _ = _graph()
    with pytest.raises(ValueError):
        runtime.run([Tensor.from_array([[1.0]])])


def test_unknown_opcode():
    with pytest.raises(ValueError):
        Runtime([Step("div", (0, 1), (2,))], 2, 3, [2], {}, OPS)


def test_read_before_definition():
    with pytest.raises(ValueError):
        Runtime([Step("add", (0, 3), (2,))], 2, 4, [2], {}, OPS)


def test_local_index_out_of_range():
    with pytest.raises(IndexError):
        Runtime([Step("add", (0, 1), (9,))], 2, 3, [2], {}, OPS)


def test_constant_on_input_slot_rejected():
    with pytest.raises(ValueError):
        Runtime([Step("add", (0, 1), (2,))], 2, 3, [2], {0: 1.0}, OPS)


def test_operation_returning_wrong_count():
    runtime = Runtime([Step("add", (0, 1), (2, 3))], 2, 4, [2], {}, OPS)
    with pytest.raises(ValueError):
        runtime.run([Tensor.from_array([1.0]), Tensor.from_array([2.0])])


def test_undefined_output_rejected():
    with pytest.raises(ValueError):
        Runtime([Step("add", (0, 1), (2,))], 2, 4, [3], {}, OPS)