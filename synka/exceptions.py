"""Domain exceptions raised by the billing webhook pipeline."""


class WebhookPayloadError(ValueError):
    """The verified body is not a well-formed webhook payload."""

    def __init__(self, message: str, event_type: str | None = None) -> None:
        super().__init__(message)
        self.event_type = event_type


class DuplicatePaymentError(Exception):
    """A payment row for this gateway payment id already exists."""

    def __init__(self, razorpay_payment_id: str) -> None:
        super().__init__(f"Payment {razorpay_payment_id} already recorded")
        self.razorpay_payment_id = razorpay_payment_id


class InvalidSubscriptionStateError(ValueError):
    """A subscription write would leave the row in an illegal combination."""

    def __init__(self, subscription_id: object, reason: str) -> None:
        super().__init__(f"Subscription {subscription_id}: {reason}")
        self.subscription_id = subscription_id
        self.reason = reason
