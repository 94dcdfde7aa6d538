from app.models.absence_request import AbsenceRequest, LeaveType  # noqa: F401
from app.models.activity_log import ActivityLog  # noqa: F401
from app.models.assignment_config import AssignmentConfig  # noqa: F401
from app.models.notification import Notification, NotificationEvent  # noqa: F401
from app.models.school_class import SchoolClass  # noqa: F401
from app.models.substitution_record import SubstitutionRecord, SubstitutionStatus  # noqa: F401
from app.models.teacher import Teacher  # noqa: F401
from app.models.teacher_workload import TeacherWorkloadState  # noqa: F401
from app.models.timetable_slot import TimetableSlot  # noqa: F401
from app.models.user import User, UserRole  # noqa: F401
