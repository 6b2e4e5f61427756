"""Alert system module."""
from alerts.engine import AlertEngine
from alerts.rules_manager import RulesManager, validate_rule
from alerts.history import AlertHistory
from alerts.state import AlertStateMachine
from alerts.channels import ConsoleChannel, FileChannel, CallbackChannel
