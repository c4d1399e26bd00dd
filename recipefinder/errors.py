"""Error taxonomy for recipe resolution.

Everything except `InvalidQuery` is recoverable: the search orchestrator
degrades to the next tier instead of surfacing it.
"""


class ResolverError(Exception):
    """Base class for failures raised by a resolution tier or collaborator."""


class InvalidQuery(ResolverError):
    """Empty ingredient list (after normalization). Rejected before any I/O."""


class QuotaExceeded(ResolverError):
    """No daily generations or credits left for the caller."""


class GenerationFailed(ResolverError):
    """Generation service errored, timed out or returned nothing usable."""


class StorageUnavailable(ResolverError):
    """Device store or pool store read/write failure."""


class NetworkUnavailable(ResolverError):
    """A remote collaborator could not be reached."""
