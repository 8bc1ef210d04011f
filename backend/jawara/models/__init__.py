from jawara.models.activity_log import ActivityLog  # noqa: F401
from jawara.models.event import Event, EventType, VisibilityScope  # noqa: F401
from jawara.models.notification import (  # noqa: F401
    Notification,
    NotificationStatus,
    NotificationType,
)
from jawara.models.school_class import Batch, ClassTeacher, SchoolClass, TeacherAssignment  # noqa: F401
from jawara.models.user import User, UserRole  # noqa: F401
