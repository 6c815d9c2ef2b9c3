# timetable/errors.py


class TimetableError(Exception):
    """Base class for everything the service raises on purpose."""


class ConfigError(TimetableError):
    pass


class BootstrapError(TimetableError):
    """The identity provider could not be reached or answered nonsense."""


class CredentialRequired(TimetableError):
    """No bearer token is held; the user has to finish the consent flow."""

    def __init__(self, consent_url=None):
        self.consent_url = consent_url
        msg = "No access token available yet; user interaction required."
        if consent_url:
            msg += f" Open {consent_url}"
        super().__init__(msg)


class DriveError(TimetableError):
    def __init__(self, message, status=None):
        super().__init__(message)
        self.status = status


class CorruptDocument(TimetableError):
    pass
