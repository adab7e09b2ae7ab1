"""
Error taxonomy for SafeTrail

Every failure raised by the emergency core derives from SafeTrailError and
falls into one of four families:

- PreconditionError: fails fast before any side effect
- ResourceConflictError: rejected synchronously, state unchanged
- ExternalUnavailableError: a collaborator (sensor, transport, device) failed
- Boundary/configuration errors for input validation

Partial delivery failure is not an error; it is reported in an SOSReport.
"""


class SafeTrailError(Exception):
    """Base class for all SafeTrail errors"""
    pass


# Precondition failures

class PreconditionError(SafeTrailError):
    """A required input was missing or invalid; nothing was attempted"""
    pass


class NoContactsError(PreconditionError):
    """The user has no trusted contacts to alert"""

    def __init__(self, user_id: str):
        super().__init__(f"No emergency contacts registered for user {user_id}")
        self.user_id = user_id


class MissingUserError(PreconditionError):
    """No authenticated user id was supplied"""
    pass


class LocationUnavailableError(PreconditionError):
    """No location sample is available for the dispatch"""
    pass


class InvalidLocationError(PreconditionError):
    """The location sample is out of range or malformed"""
    pass


class InvalidMessageError(PreconditionError):
    """The message template is empty"""
    pass


# Resource conflicts

class ResourceConflictError(SafeTrailError):
    """The operation conflicts with the current state of a session"""
    pass


class AlreadyRecordingError(ResourceConflictError):
    """A capture stream of this kind is already recording"""

    def __init__(self, kind):
        super().__init__(f"{kind.value} recording is already in progress")
        self.kind = kind


class NotRecordingError(ResourceConflictError):
    """No capture stream of this kind is recording"""

    def __init__(self, kind):
        super().__init__(f"{kind.value} recording is not in progress")
        self.kind = kind


class AlreadyDispatchingError(ResourceConflictError):
    """The countdown already fired; the alert can no longer be cancelled"""
    pass


class NoPendingCountdownError(ResourceConflictError):
    """There is no countdown to cancel"""
    pass


class SessionAlreadyArmedError(ResourceConflictError):
    """The detection session is already listening"""
    pass


# External collaborators

class ExternalUnavailableError(SafeTrailError):
    """An external collaborator could not be used"""
    pass


class SensorUnavailableError(ExternalUnavailableError):
    """The threat sensor could not be acquired (e.g. microphone permission)"""
    pass


class SensorLostError(ExternalUnavailableError):
    """The threat sensor disconnected while subscribed"""
    pass


class TransportError(ExternalUnavailableError):
    """Message or call delivery failed"""
    pass


class CaptureError(ExternalUnavailableError):
    """The capture device failed to start or stop"""
    pass


class LocationPermissionError(ExternalUnavailableError):
    """The location source refused to provide a reading"""
    pass


# Boundary validation

class InvalidContactError(SafeTrailError):
    """A contact failed validation at the storage boundary"""
    pass


class ConfigurationError(SafeTrailError):
    """Configuration-related errors"""
    pass
