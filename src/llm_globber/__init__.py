"""
llm-globber: Pack source files into a single LLM-friendly text bundle.

- `glob` concatenates files into one plain-text bundle with path headers,
  omitting binary content and optionally signing every record
- `unglob` restores the file tree from a bundle, optionally refusing to
  extract anything if a signature does not verify
"""

__version__ = "0.1.0"

from .config import Record, WriteResult, WriteStatus
from .errors import (
    GlobberError,
    MalformedBundleError,
    PathEscapeError,
    SignatureMismatchError,
)
from .reader import read
from .writer import write

__all__ = [
    "__version__",
    "GlobberError",
    "MalformedBundleError",
    "PathEscapeError",
    "Record",
    "SignatureMismatchError",
    "WriteResult",
    "WriteStatus",
    "read",
    "write",
]
