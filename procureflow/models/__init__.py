"""Central model registry: import all models so Alembic autodiscover works."""

from procureflow.database import Base  # noqa: F401

from procureflow.models.user import User, UserRoleAssignment  # noqa: F401
from procureflow.models.cost_center import CostCenter  # noqa: F401
from procureflow.models.vendor import Vendor  # noqa: F401
from procureflow.models.purchase_request import PurchaseRequest, PrLineItem  # noqa: F401
from procureflow.models.purchase_order import PurchaseOrder  # noqa: F401
from procureflow.models.invoice import Invoice  # noqa: F401
from procureflow.models.approval import Approval  # noqa: F401
from procureflow.models.asset import Equipment, AssetLedger, AssetMovement  # noqa: F401
