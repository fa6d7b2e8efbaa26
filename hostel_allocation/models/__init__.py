# Hostel Allocation: Database Models
# Import all models here for SQLAlchemy discovery

from hostel_allocation.models.hostel import Hostel                  # noqa
from hostel_allocation.models.room import Room                      # noqa
from hostel_allocation.models.allocation import Allocation          # noqa
from hostel_allocation.models.payment import AllocationPayment      # noqa
