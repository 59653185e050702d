"""ORM models exposed for metadata discovery."""
from vicu.db.models.activity_log import ActivityLog
from vicu.db.models.event import Event
from vicu.db.models.experiment import Experiment
from vicu.db.models.experiment_action import ExperimentAction
from vicu.db.models.experiment_checkin import ExperimentCheckin
from vicu.db.models.lead import Lead
from vicu.db.models.step_assignment import StepAssignment
from vicu.db.models.user import User
from vicu.db.models.user_stats import UserStats
from vicu.db.models.whatsapp import WhatsAppConfig, WhatsAppPendingAction
from vicu.db.models.xp_event import XpEvent

__all__ = [
    "ActivityLog",
    "Event",
    "Experiment",
    "ExperimentAction",
    "ExperimentCheckin",
    "Lead",
    "StepAssignment",
    "User",
    "UserStats",
    "WhatsAppConfig",
    "WhatsAppPendingAction",
    "XpEvent",
]
