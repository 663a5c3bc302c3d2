"""Central model registry: import all models so Alembic autodiscover works."""

from approval_engine.database import Base  # noqa: F401

from approval_engine.models.user import User  # noqa: F401
from approval_engine.models.approval_type import ApprovalType  # noqa: F401
from approval_engine.models.approval_request import ApprovalRequest, ApprovalAssignment  # noqa: F401
from approval_engine.models.approval_history import ApprovalHistory  # noqa: F401
