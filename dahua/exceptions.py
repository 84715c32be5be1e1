"""Exceptions raised inside the Dahua event-stream engine."""


class DahuaAlertsError(Exception):
    """Base exception"""


class DigestChallengeError(DahuaAlertsError):
    """WWW-Authenticate challenge could not be parsed into realm/nonce"""


class AuthenticationRequired(DahuaAlertsError):
    """Server answered 401 with a WWW-Authenticate challenge"""

    def __init__(self, www_authenticate: str):
        super().__init__(www_authenticate)
        self.www_authenticate = www_authenticate


class StreamHTTPError(DahuaAlertsError):
    """Server answered with a non-2xx status that is not a Digest challenge"""

    def __init__(self, status: int, reason: str = ""):
        super().__init__(f"HTTP {status} {reason}".strip())
        self.status = status
        self.reason = reason
