"""Exceptions raised by the cloudself provisioner."""


class BackendError(Exception):
    """A call to the CloudSelf backend failed."""


class TransportError(BackendError):
    """The backend could not be reached or did not answer in time."""


class ProtocolError(BackendError):
    """The backend answered 200 with a body that cannot be used."""


class StatusError(BackendError):
    """The backend answered with a non-200 status code."""

    def __init__(self, code, body):
        super().__init__(f"unexpected status code {code}: {body}")
        self.code = code
        self.body = body


class ProvisioningError(Exception):
    """A child object of a Website could not be created."""

    def __init__(self, website_name, message):
        super().__init__(message)
        self.website_name = website_name
        self.message = message
