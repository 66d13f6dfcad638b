# Infrastructure Layer
from .uow import (
    UnitOfWork,
    PriorityRepository,
    AuditLogger,
    create_uow_provider
)
