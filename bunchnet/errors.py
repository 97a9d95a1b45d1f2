"""
Exceptions raised by the runtime.

Every failure here is a caller or configuration defect, so nothing in the
library catches these. Each error carries the numeric code used in its
message so logs from different runs can be grepped by code.
"""


class ANNError(Exception):
    """Base class for all runtime errors."""
    def __init__(self, code, message):
        self.code = code
        self.message = message
        super().__init__(f"[{code}] {message}")


class UsageError(ANNError):
    """Wrong token kind, mismatched sizes, unbuilt component and the like."""


class NumericIntegrityError(ANNError):
    """Non-finite values found in a weights matrix."""


class NotImplementedYetError(ANNError, NotImplementedError):
    """Configuration that exists but has no implementation (e.g. a CUDA path)."""
