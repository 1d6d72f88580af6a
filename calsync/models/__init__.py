"""Database models."""

from .user import User
from .coach_profile import CoachProfile
from .calendar_integration import CalendarIntegration
from .cal_event_type import CalEventType
from .cal_webhook import CalWebhookSubscription
from .availability import CoachingAvailabilitySchedule
from .cal_booking import CalBooking
