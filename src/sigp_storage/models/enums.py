import enum


class IntentStatus(str, enum.Enum):
    pending = "pending"
    confirmed = "confirmed"
    expired = "expired"


class MismatchPolicy(str, enum.Enum):
    reject = "reject"
    warn = "warn"
