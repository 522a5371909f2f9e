"""Request address helpers."""

from perch.http.request import Request


def base_address(request: Request) -> str:
    """The scheme and host the client used to reach this server.

    Honours ``X-Forwarded-Proto`` and ``X-Forwarded-Host`` when set by a
    reverse proxy, e.g. ``"https://example.com"``.
    """
    scheme = request.headers.get("x-forwarded-proto")
    host = request.headers.get("x-forwarded-host")

    if not scheme:
        scheme = "https" if request.is_secure else "http"
    if not host:
        host = request.host
    return f"{scheme}://{host}"


def base_path(path: str) -> str:
    """The last ``/``-separated element of *path*.

    Empty paths, ``"/"`` and paths ending in a slash give ``"/"``.
    """
    base = path.rsplit("/", 1)[-1]
    if not base:
        return "/"
    return base
