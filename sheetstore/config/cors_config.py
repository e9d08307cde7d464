"""
CORS options for the FastAPI app.

Browsers only see Content-Disposition (export and media download filenames)
when it is exposed explicitly, and must be allowed to send the identity
header.
"""

from typing import Any, Dict, List, Optional

from .settings import Settings, get_settings

EXPOSED_HEADERS = ["Content-Disposition", "Content-Length", "Content-Type"]
_LOCAL_HOSTS = ("localhost", "127.0.0.1")


def normalize_origin(origin: str) -> Optional[str]:
    """Scheme-qualified origin without trailing slash, or None when empty."""
    origin = origin.strip().rstrip("/")
    if not origin:
        return None
    if origin == "*" or "://" in origin:
        return origin
    scheme = "http" if origin.split(":")[0] in _LOCAL_HOSTS else "https"
    return f"{scheme}://{origin}"


def validate_cors_origins(origins: List[str]) -> List[str]:
    normalized = []
    for origin in origins:
        value = normalize_origin(origin)
        if value and value not in normalized:
            normalized.append(value)
    return normalized


def get_cors_config(settings: Optional[Settings] = None) -> Dict[str, Any]:
    """Keyword arguments for CORSMiddleware; wide open in debug mode."""
    settings = settings or get_settings()

    if settings.is_development:
        return {
            "allow_origins": ["*"],
            "allow_credentials": False,
            "allow_methods": ["*"],
            "allow_headers": ["*"],
            "expose_headers": EXPOSED_HEADERS,
            "max_age": 86400,
        }

    allow_headers = list(settings.CORS_ALLOW_HEADERS)
    if "*" not in allow_headers and settings.USER_HEADER not in allow_headers:
        allow_headers.append(settings.USER_HEADER)

    return {
        "allow_origins": validate_cors_origins(settings.CORS_ORIGINS),
        "allow_credentials": settings.CORS_ALLOW_CREDENTIALS,
        "allow_methods": settings.CORS_ALLOW_METHODS,
        "allow_headers": allow_headers,
        "expose_headers": EXPOSED_HEADERS,
        "max_age": 3600,
    }
