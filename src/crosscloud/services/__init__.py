"""Services orchestrating the stores of a unit of work."""

from crosscloud.services.admin import AdminService
from crosscloud.services.keys import KeyExchangeService
from crosscloud.services.shares import SharesService

__all__ = ["AdminService", "KeyExchangeService", "SharesService"]
