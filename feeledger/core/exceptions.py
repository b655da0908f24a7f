from typing import Any, Optional

from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def detail(self) -> Any:
        """Value used as HTTPException.detail by routers."""
        return self.message


class NotFound(ServiceError):
    def __init__(self, message: str = "Not found") -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class Forbidden(ServiceError):
    def __init__(self, message: str = "Not allowed to access this account") -> None:
        super().__init__(message, status.HTTP_403_FORBIDDEN)


class Conflict(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class InvalidSignature(ServiceError):
    """Gateway callback signature did not verify. Nothing is written."""

    def __init__(self, message: str = "Invalid payment signature") -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class AmountMismatch(ServiceError):
    def __init__(self, expected, received) -> None:
        super().__init__(
            f"Callback amount {received} does not match ordered amount {expected}",
            status.HTTP_400_BAD_REQUEST,
        )
        self.expected = expected
        self.received = received


class OrderMismatch(ServiceError):
    def __init__(self, message: str = "Callback does not match the order's account or category") -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class AlreadyFinalized(ServiceError):
    """Verify/reject on a transaction that already reached a terminal state."""

    def __init__(self, transaction_id, current_status: str) -> None:
        super().__init__(
            f"Transaction is already {current_status}",
            status.HTTP_409_CONFLICT,
        )
        self.transaction_id = transaction_id
        self.current_status = current_status

    @property
    def detail(self) -> Any:
        return {
            "message": self.message,
            "transaction_id": str(self.transaction_id),
            "status": self.current_status,
        }


class AlreadyPaid(ServiceError):
    def __init__(self, message: str = "Due is already fully paid") -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class DueWaived(ServiceError):
    def __init__(self, message: str = "Due has been waived") -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class GatewayUnavailable(ServiceError):
    """Order creation against the payment gateway failed. Not retried here."""

    def __init__(self, message: str = "Payment gateway unavailable", upstream_status: Optional[int] = None) -> None:
        super().__init__(message, status.HTTP_502_BAD_GATEWAY)
        self.upstream_status = upstream_status


class DuplicateCallback(Exception):
    """A replayed gateway callback. Internal to the gateway service (becomes duplicate=True); routers never see it."""

    def __init__(self, order_id: str, payment_id: str) -> None:
        super().__init__(f"Payment {payment_id} for order {order_id} is already recorded")
        self.order_id = order_id
        self.payment_id = payment_id
