"""
SQLAlchemy ORM Models

All database models unified export point
"""

from dream60.models.auction import Counter, DailyAuction, HourlyAuction, MasterAuction
from dream60.models.history import AuctionHistory
from dream60.models.payment import HourlyAuctionJoin, Payment
from dream60.models.user import User

__all__ = [
    "User",
    "Counter",
    "MasterAuction",
    "DailyAuction",
    "HourlyAuction",
    "AuctionHistory",
    "Payment",
    "HourlyAuctionJoin",
]
