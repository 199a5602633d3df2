"""Settlement bounded context: charge settlement and refund reconciliation.

Consumes payment gateway events (charge captured, charge refunded) and moves
the Order aggregate and its collaborators (inventory, bookings, cases) into a
consistent state, recording the fee decomposition of every captured charge.
"""

import structlog
from protean.domain import Domain

settlement = Domain(name="settlement")

logger = structlog.get_logger(__name__)
