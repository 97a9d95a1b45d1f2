"""
Tokens: the data units passed between components.

A TokenMemoryBlock stores a bunch of vectors unit-major: pattern `b`,
unit `i` lives at flat index `i * bunch_size + b`, so a bunch is a
`(vector_size, bunch_size)` matrix.
"""
import enum

import numpy as np

from .errors import UsageError
from .memory import MirroredBuffer


class TokenCode(enum.Enum):
    MEM_BLOCK = 'token_mem_block'
    VECTOR_TOKENS = 'vector_Tokens'


class Token:
    """Base class for all tokens."""
    token_code = None

    def clone(self):
        raise NotImplementedError


class TokenMemoryBlock(Token):
    """A resizable mirrored float buffer holding one bunch."""
    token_code = TokenCode.MEM_BLOCK

    def __init__(self, size=0, use_cuda=False):
        self.mem_block = MirroredBuffer(size)
        self.used_size = size
        self.use_cuda = use_cuda

    @property
    def max_size(self):
        return len(self.mem_block)

    def resize(self, size):
        """Set the used size, reallocating only when capacity is exceeded."""
        if size > self.max_size:
            self.mem_block = MirroredBuffer(size)
        self.used_size = size

    def set_use_cuda(self, use_cuda):
        self.use_cuda = use_cuda

    def bunch_view(self, vector_size, write=False, use_cuda=None):
        """
        (vector_size, bunch_size) view of the used part. The side is the
        token's own unless `use_cuda` picks it, as a component does.
        """
        if use_cuda is None:
            use_cuda = self.use_cuda
        if self.used_size % vector_size != 0:
            raise UsageError(128, f"Token size {self.used_size} is not a multiple "
                                  f"of vector size {vector_size}")
        data = self.mem_block.get(use_cuda, write=write)[:self.used_size]
        return data.reshape(vector_size, self.used_size // vector_size)

    def to_array(self, vector_size):
        """Host copy as (bunch_size, vector_size), one pattern per row."""
        data = self.mem_block.read()[:self.used_size]
        return data.reshape(vector_size, -1).T.copy()

    @classmethod
    def from_array(cls, patterns, use_cuda=False):
        """Build a token from a (bunch_size, vector_size) array."""
        patterns = np.asarray(patterns, dtype=np.float32)
        if patterns.ndim == 1:
            patterns = patterns.reshape(1, -1)
        token = cls(patterns.size, use_cuda=use_cuda)
        token.mem_block.read_write()[...] = patterns.T.ravel()
        return token

    def clone(self):
        token = TokenMemoryBlock(0, use_cuda=self.use_cuda)
        token.mem_block = self.mem_block.clone()
        token.used_size = self.used_size
        return token

    def __repr__(self):
        return f"TokenMemoryBlock(used_size={self.used_size}, max_size={self.max_size})"


class TokenBunchVector(Token):
    """A list of tokens. Components in this package only accept memory blocks."""
    token_code = TokenCode.VECTOR_TOKENS

    def __init__(self, tokens=None):
        self.tokens = list(tokens or [])

    def __len__(self):
        return len(self.tokens)

    def __getitem__(self, idx):
        return self.tokens[idx]

    def push_back(self, token):
        self.tokens.append(token)

    def clone(self):
        return TokenBunchVector([t.clone() for t in self.tokens])


def check_mem_block(token, code, what='input'):
    """Return the token as a TokenMemoryBlock or raise UsageError."""
    if token is None or token.token_code is not TokenCode.MEM_BLOCK:
        raise UsageError(code, f"Incorrect {what} Token type, expected token_mem_block!")
    return token
