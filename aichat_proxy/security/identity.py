"""Client identity used as the rate-limit key."""

from fastapi import Request

UNKNOWN_CLIENT = "unknown"


def get_client_identity(request: Request, trust_forwarded_for: bool = False) -> str:
    """Derive the rate-limit key for a request.

    With ``trust_forwarded_for`` the first address of X-Forwarded-For wins.
    Clients can set that header freely, so only enable it behind a proxy
    that overwrites it.
    """
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT
