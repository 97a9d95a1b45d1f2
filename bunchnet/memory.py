"""
Float buffers mirrored between host (NumPy) and GPU (CuPy) memory.

The device copy is allocated lazily the first time a device view is
requested, so host-only runs never touch CuPy.
"""
import enum
import logging

import numpy as np

from .errors import UsageError

logger = logging.getLogger(__name__)


class CoherenceState(enum.Enum):
    HOST_OWNS = 'host'
    DEVICE_OWNS = 'device'
    SYNCED = 'synced'


def get_cupy():
    """Import CuPy on demand; only device paths need it."""
    import cupy as cp
    return cp


class MirroredBuffer:
    """
    A float32 array with an optional GPU-resident copy.

    Every accessor resolves coherence before handing out a view: if the
    requested side is stale the whole buffer is copied from the other side
    and the state becomes SYNCED. Write accessors then make the requested
    side the owner. Views are returned per call and must not be kept across
    calls that may write the other side.

    Args:
        capacity: Number of floats
    """
    def __init__(self, capacity):
        self.capacity = int(capacity)
        self._host = np.zeros(self.capacity, dtype=np.float32)
        self._device = None
        self._state = CoherenceState.HOST_OWNS

    def __len__(self):
        return self.capacity

    @property
    def coherence_state(self):
        return self._state

    @property
    def has_device_copy(self):
        return self._device is not None

    def _sync_host(self):
        if self._state is CoherenceState.DEVICE_OWNS:
            logger.debug("device->host copy of %d floats", self.capacity)
            self._host[...] = get_cupy().asnumpy(self._device)
            self._state = CoherenceState.SYNCED

    def _sync_device(self):
        cp = get_cupy()
        if self._device is None:
            self._device = cp.asarray(self._host)
            self._state = CoherenceState.SYNCED
        elif self._state is CoherenceState.HOST_OWNS:
            logger.debug("host->device copy of %d floats", self.capacity)
            self._device.set(self._host)
            self._state = CoherenceState.SYNCED

    def read(self):
        """Read-only host view."""
        self._sync_host()
        view = self._host.view()
        view.flags.writeable = False
        return view

    def read_write(self):
        """Writable host view; the host becomes the owner."""
        self._sync_host()
        self._state = CoherenceState.HOST_OWNS
        return self._host

    def device_read(self):
        """Device view for reading. CuPy has no read-only arrays, do not write it."""
        self._sync_device()
        return self._device

    def device_read_write(self):
        """Writable device view; the device becomes the owner."""
        self._sync_device()
        self._state = CoherenceState.DEVICE_OWNS
        return self._device

    def get(self, use_cuda=False, write=False):
        """Pick the side by flag, as the numeric backend does."""
        if use_cuda:
            return self.device_read_write() if write else self.device_read()
        return self.read_write() if write else self.read()

    def fill(self, value, use_cuda=False):
        self.get(use_cuda, write=True)[...] = value

    def copy_from(self, other, use_cuda=False):
        if len(other) != self.capacity:
            raise UsageError(128, f"Capacity mismatch: {len(other)} != {self.capacity}")
        self.get(use_cuda, write=True)[...] = other.get(use_cuda)

    def to_numpy(self):
        """Host copy of the current data."""
        return self.read().copy()

    def clone(self):
        buf = MirroredBuffer(self.capacity)
        if self._state is CoherenceState.DEVICE_OWNS:
            buf.copy_from(self, use_cuda=True)
        else:
            buf.copy_from(self)
        return buf

    def __repr__(self):
        return (f"MirroredBuffer(capacity={self.capacity}, "
                f"state={self._state.value}, device={self.has_device_copy})")
