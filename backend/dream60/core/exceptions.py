from typing import Any

from fastapi import status


class AuctionError(Exception):
    """Base error for scheduler, bidding, claim and payment operations."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, data: Any = None):
        super().__init__(message)
        self.message = message
        self.data = data


class BadRequestError(AuctionError):
    status_code = status.HTTP_400_BAD_REQUEST


class ForbiddenError(AuctionError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(AuctionError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(AuctionError):
    status_code = status.HTTP_409_CONFLICT


class PaymentGatewayError(AuctionError):
    """Gateway call failed; the client retries manually."""

    status_code = status.HTTP_502_BAD_GATEWAY
