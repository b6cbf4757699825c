"""
Error taxonomy for the alert worker.

Evaluation errors (not found, incomplete config, poll, operator) fail the job
after the outcome is persisted. Delivery errors never leave a notifier.
Delegation errors fail the job. Persistence errors are escalated or swallowed
depending on the job kind.
"""


class AlertWorkerError(Exception):
    """Base class for all alert worker errors"""


class NotFoundError(AlertWorkerError):
    """Rule or configuration row does not exist"""


class ConfigIncompleteError(AlertWorkerError):
    """A rule's linked metric/notebook/database chain is broken"""


class PollError(AlertWorkerError):
    """Metric query failed, returned no rows, or returned a non-numeric value"""


class UnsupportedOperatorError(AlertWorkerError):
    """Condition operator is not one of >, <, >=, <=, =, !="""


class DeliveryError(AlertWorkerError):
    """Notification could not be delivered to Slack"""


class DelegationError(AlertWorkerError):
    """Trigger request to the application API could not be dispatched"""


class PersistenceError(AlertWorkerError):
    """History/audit log insert failed"""
