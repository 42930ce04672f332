"""Class alarm scheduling: stored alarms kept in step with registered notifications."""

from .errors import AlarmError, NotFound, NotificationSchedulingError, StorageError, ValidationError
from .gateway import LocalNotificationGateway, NotificationGateway, ScheduledNotification, TriggerKind
from .parser import TimeOfDay, Weekday, parse_time_of_day, parse_weekdays
from .recovery import RecoveryReconciler, RecoveryReport
from .scheduler import AlarmScheduler, OneShotPastPolicy
from .storage import Alarm, AlarmDraft, AlarmStore, OnceRecurrence, Settings, SettingsStore, WeeklyRecurrence
