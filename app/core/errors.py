class DomainError(Exception):
    """Base class for errors raised by the dispatch/coupon services."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(DomainError):
    status_code = 404


class CouponExhaustedError(DomainError):
    status_code = 409


class InvalidCouponUpdateError(DomainError):
    status_code = 400
