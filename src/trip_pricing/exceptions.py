class PricingEngineError(Exception):
    """Base exception for pricing engine errors."""


class ExternalServiceError(PricingEngineError):
    """Raised when an upstream routing API call fails."""


class NoRouteFoundError(PricingEngineError):
    """Raised when the routing API answers without a drivable route."""


class CacheStoreError(PricingEngineError):
    """Raised when the toll cache store cannot be read or written."""


class InvalidZoneConfigurationError(PricingEngineError):
    """Raised when a zone definition cannot be turned into a geometry."""
