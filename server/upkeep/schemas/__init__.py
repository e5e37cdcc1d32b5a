from upkeep.schemas.maintenance import (
    ScheduleCompletion,
    ScheduleCreate,
    ScheduleUpdate,
    TemplateCreate,
    TemplateUpdate,
)
from upkeep.schemas.notification import NotificationCreate

__all__ = [
    "ScheduleCreate",
    "ScheduleUpdate",
    "ScheduleCompletion",
    "TemplateCreate",
    "TemplateUpdate",
    "NotificationCreate",
]
