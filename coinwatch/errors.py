"""Exception hierarchy for coinwatch.

Every error raised on purpose by the package derives from CoinwatchError so
the CLI can render them uniformly.
"""


# Scheduler / queue messages
QUEUE_CONNECTION_FAILED = "Failed to connect to job queue"
QUEUE_NOT_INITIALIZED = "Queue not initialized"
PRICE_CHECK_FAILED = "Failed to check prices"
PRICE_NOT_FOUND = "Price not found for symbol"
ALERT_CHECK_ERROR = "Error checking alert"

# Price service messages
PROVIDER_NOT_AVAILABLE = "Provider is not available"
PROVIDER_NOT_SUPPORTED = "Provider is not supported"
INVALID_SYMBOLS = "Invalid symbols provided"
TOO_MANY_SYMBOLS = "At most 100 symbols per request"

# Alert store messages
ALERT_NOT_FOUND = "Alert not found"
ALERT_ALREADY_EXISTS = "An active alert with the same symbol, price and direction already exists"
ALERT_ALREADY_ACTIVE = "Alert is already active"
ALERT_ALREADY_INACTIVE = "Alert is already inactive"
USER_NOT_FOUND = "User not found"

# Notification messages
FIREBASE_NOT_INITIALIZED = "Firebase not initialized"
FIREBASE_CONFIG_MISSING = "Firebase configuration is incomplete"
INVALID_DEVICE_TOKEN = "Invalid device token"
INVALID_PAYLOAD = "Invalid notification payload"


class CoinwatchError(Exception):
    """Base class for all coinwatch errors."""


class ConfigurationError(CoinwatchError):
    """Required configuration is missing or invalid. Fatal at startup."""


class PriceServiceError(CoinwatchError):
    """Raised by the price aggregator."""


class ProviderNotAvailableError(PriceServiceError):
    def __init__(self, provider: str):
        super().__init__(f"{PROVIDER_NOT_AVAILABLE}: {provider}")
        self.provider = provider


class PriceRequestError(PriceServiceError, ValueError):
    """A price request failed validation before reaching the network."""


class PriceCheckError(CoinwatchError):
    """An evaluation run could not obtain prices and was aborted."""


class PriceNotFoundError(CoinwatchError):
    def __init__(self, symbol: str):
        super().__init__(f"{PRICE_NOT_FOUND} {symbol}")
        self.symbol = symbol


class AlertStoreError(CoinwatchError):
    """Raised by the alert store for domain rule violations."""


class UserNotFoundError(AlertStoreError):
    def __init__(self, message: str = USER_NOT_FOUND):
        super().__init__(message)


class AlertNotFoundError(AlertStoreError):
    def __init__(self, message: str = ALERT_NOT_FOUND):
        super().__init__(message)


class AlertAlreadyExistsError(AlertStoreError):
    def __init__(self, message: str = ALERT_ALREADY_EXISTS):
        super().__init__(message)


class AlertStateError(AlertStoreError):
    """Activation/deactivation requested on an alert already in that state."""


class QueueNotInitializedError(CoinwatchError):
    def __init__(self, message: str = QUEUE_NOT_INITIALIZED):
        super().__init__(message)


class PushTransportError(CoinwatchError):
    """The push transport could not deliver a message."""
