# stocksynapse/errors.py
from typing import Optional

# Failure taxonomy shared by the store, the forecast client and the API layer.


class StockSynapseError(Exception):
    pass


class ValidationError(StockSynapseError, ValueError):
    """Product fields supplied by a caller break an invariant."""


class PersistenceError(StockSynapseError):
    """The durable read or write behind the inventory failed."""


class ConfigurationError(StockSynapseError):
    pass


class ForecastingError(StockSynapseError):
    """
    Any failure in the forecast pipeline. `status_code` and `body` are kept
    when the remote API answered, so the caller can tell a quota problem from
    a bad response without retrying blindly.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
