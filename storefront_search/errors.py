"""
Error taxonomy for the search engine.

ValidationError is raised before any retrieval is attempted, RetrievalError
wraps datastore and index failures. Both propagate to the caller unchanged.
"""


class SearchError(Exception):
    """Base class for search engine errors"""


class ValidationError(SearchError, ValueError):
    """Malformed request shape (bad page, bad price bounds, unknown sort mode...)"""


class RetrievalError(SearchError):
    """The datastore or search index failed to answer"""
