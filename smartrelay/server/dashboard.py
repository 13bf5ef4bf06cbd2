"""Static dashboard page and configuration diagnostics."""

from __future__ import annotations

import html
import logging
from pathlib import Path
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

DASHBOARD_ERROR_PAGE = (
    "<!DOCTYPE html><html><head><meta charset=\"utf-8\"><title>Dashboard</title>"
    "</head><body><h1>Erreur</h1>"
    "<p>Impossible de charger le tableau de bord.</p></body></html>"
)


def load_dashboard(path: str) -> str:
    """Read the dashboard page once; fall back to a fixed error page."""
    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.error("Failed to load dashboard from %s: %s", path, exc)
        return DASHBOARD_ERROR_PAGE


def script_url_is_valid(url: str) -> bool:
    parts = urlsplit(url.strip())
    return parts.scheme in ("http", "https") and bool(parts.netloc)


def mask_url(url: str, visible: int = 30) -> str:
    if len(url) <= visible:
        return url
    return f"{url[:visible]}..."


def render_env_report(script_url: str) -> tuple[str, int]:
    """Describe whether the reply script URL looks usable.

    Returns the HTML page and the status code to serve it with.
    """
    if not script_url:
        verdict = "APP_SCRIPT_URL n'est pas définie."
        ok = False
    elif not script_url_is_valid(script_url):
        verdict = "APP_SCRIPT_URL n'est pas une URL http(s) valide."
        ok = False
    else:
        verdict = "APP_SCRIPT_URL semble correctement configurée."
        ok = True

    shown = html.escape(mask_url(script_url)) if script_url else "(vide)"
    title = "Configuration OK" if ok else "Configuration invalide"
    page = (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        f"<title>{title}</title></head><body>"
        f"<h1>{title}</h1><p>{html.escape(verdict)}</p>"
        f"<p>URL: <code>{shown}</code></p></body></html>"
    )
    return page, 200 if ok else 500
