class PricewatchError(Exception):
    """Base class for domain errors raised by the pricewatch core."""


class PriceFetchError(PricewatchError):
    """The price provider was unreachable or returned no usable price."""

    def __init__(self, asset: str, reason: str):
        self.asset = asset
        self.reason = reason
        super().__init__(f"price fetch failed for {asset}: {reason}")


class NotificationError(PricewatchError):
    """The outbound notification could not be delivered."""

    def __init__(self, destination: str, reason: str):
        self.destination = destination
        self.reason = reason
        super().__init__(f"notification to {destination} failed: {reason}")


class InvalidAlertError(PricewatchError):
    """An alert rule violates a creation constraint; nothing was stored."""

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}")
