"""
Enforcement sinks: what happens once the guard has decided to block.

The HTTP sink turns every action into a :class:`RequestTerminated` carrying
the final response. The application's exception handler returns that
response as-is, so no route code runs after enforcement.
"""

from abc import ABC, abstractmethod
from urllib.parse import urlencode

from starlette.responses import PlainTextResponse, RedirectResponse, Response


class RequestTerminated(Exception):
    """Raised to stop request processing and send ``response`` instead."""

    def __init__(self, response: Response):
        self.response = response
        super().__init__(f"Request terminated with status {response.status_code}")


class EnforcementSink(ABC):
    """Receiver of enforcement actions."""

    @abstractmethod
    def block(self, scope: str, reason: str) -> None:
        """Log the visitor out and send them to the login screen."""

    @abstractmethod
    def redirect_to(self, url: str) -> None:
        """Send the visitor to ``url`` and end the request."""

    @abstractmethod
    def force_404(self) -> None:
        """Answer the request as not found."""


def login_redirect_url(login_url: str, requested_url: str) -> str:
    """Login screen URL that returns the visitor to ``requested_url`` after re-authenticating."""
    separator = "&" if "?" in login_url else "?"
    return f"{login_url}{separator}{urlencode({'redirect_to': requested_url, 'reauth': 1})}"


class HttpEnforcementSink(EnforcementSink):
    """
    Sink producing Starlette responses.

    Args:
        login_url: Absolute or root-relative URL of the login screen.
        requested_url: URL the visitor asked for.
        cookie_name: Auth cookie cleared on logout.
    """

    def __init__(self, login_url: str, requested_url: str, cookie_name: str):
        self.login_url = login_url
        self.requested_url = requested_url
        self.cookie_name = cookie_name

    def block(self, scope: str, reason: str) -> None:
        response = RedirectResponse(
            login_redirect_url(self.login_url, self.requested_url),
            status_code=302,
        )
        # A stale session must not survive a block
        response.delete_cookie(self.cookie_name)
        response.headers["X-Portier-Block"] = f"{scope}:{reason}"
        raise RequestTerminated(response)

    def redirect_to(self, url: str) -> None:
        raise RequestTerminated(RedirectResponse(url, status_code=302))

    def force_404(self) -> None:
        raise RequestTerminated(PlainTextResponse("Not Found", status_code=404))
