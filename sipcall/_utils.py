"""Utilities and constants for the SIP call engine."""

import logging
import uuid

from rich.console import Console
from rich.logging import RichHandler

# Rich Console for pretty printing
console = Console()

# Configure logging with RichHandler
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
)

# Get logger for the package
logger = logging.getLogger("sipcall")

EOL = "\r\n"
SCHEME = "SIP"
VERSION = "2.0"
BRANCH = "z9hG4bK"

# Methods this engine originates or answers
ALLOWED_METHODS = ("INVITE", "ACK", "BYE", "INFO", "OPTIONS")

# Valid DTMF signals for application/dtmf-relay
DTMF_DIGITS = frozenset("0123456789*#ABCD")

# Compact header forms (RFC 3261 Section 7.3.3)
# Maps compact form -> normalized (lowercase) name
HEADERS_COMPACT = {
    "v": "via",
    "f": "from",
    "t": "to",
    "m": "contact",
    "i": "call-id",
    "e": "content-encoding",
    "l": "content-length",
    "c": "content-type",
    "s": "subject",
    "k": "supported",
}

# Headers whose canonical form is not plain Title-Case
HEADERS = {
    "call-id": "Call-ID",
    "cseq": "CSeq",
    "www-authenticate": "WWW-Authenticate",
    "proxy-authenticate": "Proxy-Authenticate",
    "mime-version": "MIME-Version",
    "content-id": "Content-ID",
    "via": "Via",
    "from": "From",
    "to": "To",
    "max-forwards": "Max-Forwards",
    "contact": "Contact",
    "content-type": "Content-Type",
    "content-length": "Content-Length",
    "authorization": "Authorization",
    "proxy-authorization": "Proxy-Authorization",
    "expires": "Expires",
    "user-agent": "User-Agent",
    "server": "Server",
    "allow": "Allow",
    "accept": "Accept",
    "supported": "Supported",
    "route": "Route",
    "record-route": "Record-Route",
    "warning": "Warning",
    "reason": "Reason",
}

# Headers that legitimately appear more than once in a message.
# Every occurrence of these is retained; for all others the first one wins.
REPEATABLE_HEADERS = frozenset(
    {
        "Via",
        "Route",
        "Record-Route",
        "Contact",
        "WWW-Authenticate",
        "Proxy-Authenticate",
        "Allow",
        "Supported",
        "Warning",
    }
)

# Standard SIP response reason phrases (RFC 3261)
REASON_PHRASES = {
    100: "Trying",
    180: "Ringing",
    181: "Call Is Being Forwarded",
    182: "Queued",
    183: "Session Progress",
    200: "OK",
    202: "Accepted",
    300: "Multiple Choices",
    301: "Moved Permanently",
    302: "Moved Temporarily",
    400: "Bad Request",
    401: "Unauthorized",
    402: "Payment Required",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    407: "Proxy Authentication Required",
    408: "Request Timeout",
    480: "Temporarily Unavailable",
    481: "Call/Transaction Does Not Exist",
    486: "Busy Here",
    487: "Request Terminated",
    488: "Not Acceptable Here",
    500: "Internal Server Error",
    501: "Not Implemented",
    503: "Service Unavailable",
    504: "Server Time-out",
    600: "Busy Everywhere",
    603: "Decline",
    604: "Does Not Exist Anywhere",
}


def generate_call_id(host: str) -> str:
    """Globally unique Call-ID scoped to the local host."""
    return f"{uuid.uuid4().hex}@{host}"


def generate_tag() -> str:
    return uuid.uuid4().hex[:8]


def generate_branch() -> str:
    return f"{BRANCH}{uuid.uuid4().hex[:16]}"
