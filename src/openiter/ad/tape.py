"""
Reverse-mode recording tape.

The tape stores elementary operations as (input slots, output slots, local
Jacobian) statements while recording is active. A reverse sweep propagates
output adjoints back to the registered inputs:

    adj[inputs] += J^T adj[outputs]

Features:
- Scoped recording sessions that always stop, including on error paths
- Passive sections in which operations are not recorded
- Detection of nested sessions and of input/output count changes between
  recordings of the same mode
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np

from ..core.exceptions import TapeError
from ..core.types import RecordingMode

logger = logging.getLogger(__name__)

PASSIVE = -1


@dataclass
class Statement:
    """One recorded elementary operation."""
    inputs: np.ndarray
    outputs: np.ndarray
    jacobian: np.ndarray  # shape (n_outputs, n_inputs)


class RecordingTape:
    """Process-local recording context with a single-writer discipline."""

    def __init__(self):
        self._statements: List[Statement] = []
        self._inputs: List[int] = []
        self._outputs: List[int] = []
        self._n_slots = 0
        self._adjoints = np.zeros(0)
        self._recording = False
        self._passive_depth = 0
        self._mode: Optional[RecordingMode] = None
        self._last_signature: Optional[Tuple[RecordingMode, int, int]] = None
        self._reference_signatures: Dict[RecordingMode, Tuple[int, int]] = {}

    @property
    def is_recording(self) -> bool:
        return self._recording

    @property
    def is_active(self) -> bool:
        """True while operations are being written to the tape."""
        return self._recording and self._passive_depth == 0

    @property
    def mode(self) -> Optional[RecordingMode]:
        return self._mode

    @property
    def n_inputs(self) -> int:
        return len(self._inputs)

    @property
    def n_outputs(self) -> int:
        return len(self._outputs)

    @property
    def n_statements(self) -> int:
        return len(self._statements)

    def reset(self) -> None:
        """Discard all recorded operations, registrations and adjoints."""
        if self._recording:
            raise TapeError("Cannot reset the tape while a recording is active")
        self._statements = []
        self._inputs = []
        self._outputs = []
        self._n_slots = 0
        self._adjoints = np.zeros(0)
        self._last_signature = None

    def start_recording(self, mode: Optional[RecordingMode] = None) -> None:
        if self._recording:
            raise TapeError("A recording session is already active")
        self._recording = True
        self._mode = mode
        logger.debug(f"Tape recording started (mode={mode})")

    def stop_recording(self) -> None:
        if not self._recording:
            raise TapeError("No recording session is active")
        self._recording = False
        self._passive_depth = 0
        if self._mode is not None:
            self._last_signature = (self._mode, self.n_inputs, self.n_outputs)
        logger.debug(f"Tape recording stopped: {self.n_inputs} inputs, "
                     f"{self.n_outputs} outputs, {self.n_statements} statements")

    @contextmanager
    def recording(self, mode: Optional[RecordingMode] = None):
        """Scoped recording session."""
        self.start_recording(mode)
        try:
            yield self
        finally:
            self.stop_recording()

    @contextmanager
    def passive(self):
        """Run a section without writing operations to the tape."""
        self._passive_depth += 1
        try:
            yield self
        finally:
            self._passive_depth = max(0, self._passive_depth - 1)

    def _new_slots(self, count: int) -> np.ndarray:
        slots = np.arange(self._n_slots, self._n_slots + count)
        self._n_slots += count
        return slots

    def register_input(self, values) -> np.ndarray:
        """Register values as independent inputs and return their slots."""
        if not self._recording:
            raise TapeError("Inputs can only be registered while recording")
        count = np.asarray(values).size
        slots = self._new_slots(count)
        self._inputs.extend(slots.tolist())
        return slots

    def register_output(self, slots) -> None:
        if not self._recording:
            raise TapeError("Outputs can only be registered while recording")
        slots = np.asarray(slots, dtype=int).ravel()
        self._outputs.extend(slots.tolist())

    def record_operation(self, inputs, jacobian) -> np.ndarray:
        """Record y = f(x) through its local Jacobian and return the slots of y.

        Inputs marked passive (-1) carry no derivative. When the tape is not
        active every output is passive.
        """
        jacobian = np.atleast_2d(np.asarray(jacobian, dtype=float))
        n_out = jacobian.shape[0]
        if not self.is_active:
            return np.full(n_out, PASSIVE, dtype=int)

        inputs = np.asarray(inputs, dtype=int).ravel()
        if jacobian.shape[1] != inputs.size:
            raise TapeError(f"Jacobian has {jacobian.shape[1]} columns for {inputs.size} inputs")
        if inputs.size and inputs.max() >= self._n_slots:
            raise TapeError("Operation refers to a slot that does not exist on this tape")

        outputs = self._new_slots(n_out)
        self._statements.append(Statement(inputs, outputs, jacobian))
        return outputs

    def _ensure_adjoint_storage(self) -> None:
        if self._adjoints.size < self._n_slots:
            grown = np.zeros(self._n_slots)
            grown[:self._adjoints.size] = self._adjoints
            self._adjoints = grown

    def set_adjoint(self, slots, values) -> None:
        self._ensure_adjoint_storage()
        slots = np.asarray(slots, dtype=int).ravel()
        values = np.broadcast_to(np.asarray(values, dtype=float).ravel(), slots.shape)
        active = slots != PASSIVE
        self._adjoints[slots[active]] = values[active]

    def get_adjoint(self, slots) -> np.ndarray:
        self._ensure_adjoint_storage()
        slots = np.asarray(slots, dtype=int).ravel()
        result = np.zeros(slots.size)
        active = slots != PASSIVE
        result[active] = self._adjoints[slots[active]]
        return result

    def clear_adjoints(self) -> None:
        self._adjoints = np.zeros(self._n_slots)

    def evaluate(self) -> None:
        """Reverse sweep over all recorded statements."""
        if self._recording:
            raise TapeError("Cannot evaluate the tape while recording")
        self._check_signature()
        self._ensure_adjoint_storage()

        for statement in reversed(self._statements):
            seed = self._adjoints[statement.outputs]
            if not np.any(seed):
                continue
            contribution = statement.jacobian.T @ seed
            active = statement.inputs != PASSIVE
            np.add.at(self._adjoints, statement.inputs[active], contribution[active])

    def _check_signature(self) -> None:
        if self._last_signature is None:
            return
        mode, n_in, n_out = self._last_signature
        reference = self._reference_signatures.setdefault(mode, (n_in, n_out))
        if reference != (n_in, n_out):
            raise TapeError(
                f"Recording for {mode.value} registered {n_in} inputs and {n_out} outputs, "
                f"previous recording of the same mode registered "
                f"{reference[0]} inputs and {reference[1]} outputs"
            )
