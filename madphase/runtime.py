"""Execution of instruction lists on batches of tensors.

A function is a list of :class:`Step` objects. Each step reads some local
slots and writes others. :class:`Runtime` works out which steps depend on
which. It adds instructions that release a local once nothing needs it any
more, and it runs the steps with user-supplied operations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Hashable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from madphase.tensor import Tensor


@dataclass(frozen=True)
class Step:
    """One operation: ``opcode`` applied to the locals ``inputs``, writing ``outputs``."""

    opcode: Hashable
    inputs: Tuple[int, ...]
    outputs: Tuple[int, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "inputs", tuple(int(i) for i in self.inputs))
        object.__setattr__(self, "outputs", tuple(int(i) for i in self.outputs))


@dataclass
class Instruction:
    """A scheduled instruction; ``opcode`` is ``None`` for releasing a local."""

    opcode: Optional[Hashable]
    inputs: Tuple[int, ...]
    outputs: Tuple[int, ...]
    dependents: List[int] = field(default_factory=list)
    dependency_count: int = 0

    @property
    def is_free(self) -> bool:
        return self.opcode is None


def last_uses(steps: Sequence[Step], output_indices: Sequence[int]) -> List[List[int]]:
    """For each step, the locals that no later step reads or writes.

    Locals that are outputs of the function are never listed.
    """
    last: Dict[int, int] = {}
    for step_index, step in enumerate(steps):
        for local in (*step.inputs, *step.outputs):
            last[local] = step_index
    keep = set(output_indices)
    result: List[List[int]] = [[] for _ in steps]
    for local, step_index in sorted(last.items()):
        if local not in keep:
            result[step_index].append(local)
    return result


def _constant_tensor(value: Any) -> Tensor:
    if isinstance(value, Tensor):
        return value
    if isinstance(value, (bool, int, np.integer)):
        return Tensor.from_array(np.array([int(value)], dtype=np.int64))
    if isinstance(value, (float, np.floating)):
        return Tensor.from_array(np.array([float(value)], dtype=np.float64))
    return Tensor.from_array(np.asarray(value)[None, ...])


def _add_dependent(instructions: List[Instruction], source: int, target: int) -> bool:
    dependents = instructions[source].dependents
    if target in dependents:
        return False
    dependents.append(target)
    return True


class Runtime:
    """Runs a list of steps with the operations given for their opcodes.

    ``constants`` maps local indices to values that are filled in before every
    run. Scalars become tensors of shape (1,), and other values get a leading
    batch axis of size one. ``operations`` maps each opcode to a callable that
    takes the input tensors and returns the outputs. It returns a single value
    when the step has one output, and a sequence otherwise.
    """

    def __init__(
        self,
        steps: Sequence[Step],
        input_count: int,
        local_count: int,
        output_indices: Sequence[int],
        constants: Optional[Mapping[int, Any]] = None,
        operations: Optional[Mapping[Hashable, Callable[..., Any]]] = None,
    ):
        constants = dict(constants or {})
        self._operations = dict(operations or {})
        if not 0 <= input_count <= local_count:
            raise ValueError("input count must lie between zero and the local count")
        self._input_count = input_count
        self._local_count = local_count
        self._output_indices = tuple(int(i) for i in output_indices)

        def check_range(local: int) -> None:
            if not 0 <= local < local_count:
                raise IndexError(f"local index {local} out of range")

        self._constants: Dict[int, Tensor] = {}
        for local, value in constants.items():
            check_range(local)
            if local < input_count:
                raise ValueError(f"local {local} is an input and cannot be a constant")
            self._constants[local] = _constant_tensor(value)

        defined = set(range(input_count)) | set(self._constants)
        for step in steps:
            if step.opcode is None or step.opcode not in self._operations:
                raise ValueError(f"no operation for opcode {step.opcode!r}")
            for local in step.inputs:
                check_range(local)
                if local not in defined:
                    raise ValueError(f"local {local} is read before it is defined")
            for local in step.outputs:
                check_range(local)
                defined.add(local)
        for local in self._output_indices:
            check_range(local)
            if local not in defined:
                raise ValueError(f"output local {local} is never defined")

        self._instructions: List[Instruction] = []
        self._ready_init: List[int] = []
        local_sources: Dict[int, int] = {}
        local_uses: Dict[int, List[int]] = {}
        freed = last_uses(steps, self._output_indices)

        for step, freed_locals in zip(steps, freed):
            index = len(self._instructions)
            self._instructions.append(Instruction(step.opcode, step.inputs, step.outputs))
            dependency_count = 0
            for local in step.inputs:
                local_uses.setdefault(local, []).append(index)
                source = local_sources.get(local)
                if source is not None and _add_dependent(self._instructions, source, index):
                    dependency_count += 1
            self._instructions[index].dependency_count = dependency_count
            if dependency_count == 0:
                self._ready_init.append(index)
            for local in step.outputs:
                local_sources[local] = index
                local_uses.setdefault(local, []).append(index)

            for local in freed_locals:
                free_index = len(self._instructions)
                self._instructions.append(Instruction(None, (local,), ()))
                free_count = sum(
                    _add_dependent(self._instructions, use, free_index)
                    for use in local_uses.get(local, [])
                )
                self._instructions[free_index].dependency_count = free_count
                if free_count == 0:
                    self._ready_init.append(free_index)

    @property
    def instructions(self) -> Tuple[Instruction, ...]:
        return tuple(self._instructions)

    @property
    def input_count(self) -> int:
        return self._input_count

    def schedule(self) -> List[List[int]]:
        """Instruction indices grouped into waves that can run concurrently.

        Every instruction comes in a later wave than all instructions it
        depends on.
        """
        ready_counts = [0] * len(self._instructions)
        waves: List[List[int]] = []
        ready = list(self._ready_init)
        while ready:
            waves.append(ready)
            next_ready: List[int] = []
            for index in ready:
                for dependent in self._instructions[index].dependents:
                    ready_counts[dependent] += 1
                    if ready_counts[dependent] == self._instructions[dependent].dependency_count:
                        next_ready.append(dependent)
            ready = next_ready
        if sum(len(wave) for wave in waves) != len(self._instructions):
            raise RuntimeError("instruction dependencies contain a cycle")
        return waves

    def run(self, inputs: Sequence[Any]) -> List[Any]:
        """Run all steps on ``inputs`` and return the output locals."""
        if len(inputs) != self._input_count:
            raise ValueError(
                f"expected {self._input_count} inputs, got {len(inputs)}"
            )
        local_values: List[Any] = [None] * self._local_count
        for local, tensor in self._constants.items():
            local_values[local] = tensor
        local_values[: self._input_count] = list(inputs)

        for instruction in self._instructions:
            if instruction.is_free:
                local_values[instruction.inputs[0]] = None
                continue
            args = [local_values[i] for i in instruction.inputs]
            result = self._operations[instruction.opcode](*args)
            output_count = len(instruction.outputs)
            if output_count == 1 and not isinstance(result, (tuple, list)):
                results = [result]
            elif isinstance(result, (tuple, list)):
                results = list(result)
            elif output_count == 0 and result is None:
                results = []
            else:
                results = [result]
            if len(results) != output_count:
                raise ValueError(
                    f"operation {instruction.opcode!r} returned {len(results)} values, "
                    f"expected {output_count}"
                )
            for local, value in zip(instruction.outputs, results):
                local_values[local] = value

        return [local_values[i] for i in self._output_indices]