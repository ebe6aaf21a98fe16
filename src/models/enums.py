from __future__ import annotations

from enum import StrEnum


class UserRole(StrEnum):
    __slots__ = ()

    CITIZEN = "CITIZEN"
    OFFICER = "OFFICER"
    ADMIN = "ADMIN"


class ComplaintStatus(StrEnum):
    __slots__ = ()

    NEW = "NEW"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"
    REJECTED = "REJECTED"


class ComplaintCategory(StrEnum):
    """Municipal complaint categories shown on the filing form."""

    __slots__ = ()

    ROAD_INFRASTRUCTURE = "Road & Infrastructure"
    WATER_SUPPLY = "Water Supply"
    ELECTRICITY = "Electricity"
    GARBAGE_COLLECTION = "Garbage Collection"
    STREET_LIGHTING = "Street Lighting"
    DRAINAGE = "Drainage"
    PUBLIC_PROPERTY_DAMAGE = "Public Property Damage"
    NOISE_POLLUTION = "Noise Pollution"
    AIR_POLLUTION = "Air Pollution"
    OTHER = "Other"


class NotificationType(StrEnum):
    __slots__ = ()

    INFO = "INFO"
    ACTION = "ACTION"
    ALERT = "ALERT"


class AuditAction(StrEnum):
    """Kinds of state-changing actions written to the audit log."""

    __slots__ = ()

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    ASSIGN = "ASSIGN"
    STATUS_CHANGE = "STATUS_CHANGE"
