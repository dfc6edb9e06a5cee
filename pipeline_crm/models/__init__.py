"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  PIPELINE CRM - Models Package                                               ║
║                                                                              ║
║  Exports tous les modèles pour import facile                                 ║
║  from pipeline_crm.models import LeadStatus, LeadTransition, etc.            ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

# Auth
from .auth import (
    Role,
    VALID_ROLES,
    UserLogin,
    VendedorCreate,
)

# Lead
from .lead import (
    LeadStatus,
    VALID_LEAD_STATUSES,
    ACTION_REQUIRED_STATUSES,
    PaymentMethod,
    MIN_PARCELAS,
    MAX_PARCELAS,
    Parcela,
    LeadPublicSubmit,
    LeadUpdate,
    LeadTransition,
    ParcelaUpdate,
    VendedorAssign,
    TagsReplace,
    SoldServiceEntry,
    SoldServicesReplace,
)

# Services (catalogue)
from .service import (
    ServiceCreate,
    ServiceUpdate,
)

# Closers
from .closer import (
    CloserCreate,
    CloserUpdate,
)

# Distribution
from .distribution import (
    DistributionMode,
    DistributionConfigUpdate,
    RosterMemberCreate,
    RosterMemberUpdate,
    BatchAssign,
)

__all__ = [
    # Auth
    "Role",
    "VALID_ROLES",
    "UserLogin",
    "VendedorCreate",
    # Lead
    "LeadStatus",
    "VALID_LEAD_STATUSES",
    "ACTION_REQUIRED_STATUSES",
    "PaymentMethod",
    "MIN_PARCELAS",
    "MAX_PARCELAS",
    "Parcela",
    "LeadPublicSubmit",
    "LeadUpdate",
    "LeadTransition",
    "ParcelaUpdate",
    "VendedorAssign",
    "TagsReplace",
    "SoldServiceEntry",
    "SoldServicesReplace",
    # Services
    "ServiceCreate",
    "ServiceUpdate",
    # Closers
    "CloserCreate",
    "CloserUpdate",
    # Distribution
    "DistributionMode",
    "DistributionConfigUpdate",
    "RosterMemberCreate",
    "RosterMemberUpdate",
    "BatchAssign",
]
