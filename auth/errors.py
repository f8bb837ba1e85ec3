"""
auth/errors.py -- Authentication and authorization failures.

Every failure carries its HTTP status and a stable machine code so the API
layer can convert it in one exception handler (api/main.py). Messages are
deliberately generic: they never say whether a username exists or which role
an operation needs.
"""

from __future__ import annotations


class AuthError(Exception):
    status_code: int = 401
    code: str = "unauthorized"
    message: str = "Authentication required."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        if message:
            self.message = message


class InvalidCredentials(AuthError):
    """Wrong username or wrong password. The two cases are indistinguishable."""

    code = "bad_credentials"
    message = "Invalid username or password."


class Unauthenticated(AuthError):
    """No valid session."""


class MalformedSession(Unauthenticated):
    """Session cookie that could not have been issued by us.

    Handled exactly like Unauthenticated -- a tampered cookie looks the same
    to the client as no cookie at all.
    """


class Forbidden(AuthError):
    status_code = 403
    code = "forbidden"
    message = "Insufficient permissions."


class UserExists(AuthError):
    status_code = 409
    code = "conflict"
    message = "A user with that username or email already exists."


class StudentCodeTaken(Exception):
    """The generated student_code is already in use.

    Not an AuthError: it never reaches a client. AccountService catches it
    and retries with a fresh code.
    """
