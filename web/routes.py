"""
web/routes.py -- Jinja2 template routes for the AI Platform web UI.

These routes serve server-rendered HTML. They share app.state with the API
routes (same stores, same cache provider) but return HTML instead of JSON.
Authentication is the access_token httpOnly cookie, validated by the same
gate sequence as the API (auth.dependencies.try_get_identity).

Route registration order matters: GET /providers/new must be registered
before any /providers/{provider_id} route or FastAPI captures "new" as a path
parameter.

Routes:
  GET  /                                -- redirect to /providers
  GET  /login                           -- login form
  POST /login                           -- handle password login, set cookie
  POST /logout                          -- revoke token, clear cookie
  GET  /providers                       -- provider cards (auth required)
  GET  /providers/new                   -- add form (auth required)
  POST /providers                       -- handle add, redirect to /providers
  GET  /providers/{provider_id}/edit    -- edit form (auth required)
  POST /providers/{provider_id}         -- handle edit, redirect to /providers
  POST /providers/{provider_id}/delete  -- delete, redirect to /providers
  POST /providers/{provider_id}/test    -- HTMX: probe result notification
"""

import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from starlette.concurrency import run_in_threadpool

from auth.dependencies import try_get_identity
from auth.errors import AuthError
from auth.models import Identity
from auth.revocation import TokenBlacklist
from auth.store import UserStore
from auth.tokens import (
    authenticate_user,
    create_access_token,
    decode_access_token,
    set_auth_cookie,
    token_remaining_seconds,
)
from cache.client import CacheUnavailableError
from cache.provider import get_cache
from providers.catalog import VENDORS, default_models, get_vendor
from providers.models import AIProvider
from providers.probe import ProviderProbeError, probe_provider
from providers.store import ProviderStore

logger = logging.getLogger("aiplatform.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
router = APIRouter()

# ---------------------------------------------------------------------------
# Auth helpers
# ---------------------------------------------------------------------------

# Whitelist mapping for ?error= query params on /login [M3].
# The raw query param is NEVER passed to templates -- only the message from
# this dict is. Prevents reflected XSS via crafted error query strings.
_ERROR_MESSAGES: dict[str, str] = {
    "bad_credentials": "Invalid email or password.",
    "session_expired": "Your session has ended. Please log in again.",
}

_MAX_PRIORITY = 100


def _safe_next(next_url: Optional[str]) -> str:
    """Validate a post-login redirect target. Only accept relative paths. [C2]

    Rejects absolute URLs and protocol-relative "//host" paths, both of which
    would redirect off-site after login.
    """
    if next_url and next_url.startswith("/") and not next_url.startswith("//"):
        return next_url
    return "/providers"


async def _require_identity(request: Request) -> tuple[Optional[Identity], Optional[RedirectResponse]]:
    """Resolve the caller from the cookie, or build the /login redirect.

    Call at the top of protected route handlers:
        identity, redirect = await _require_identity(request)
        if redirect:
            return redirect
    """
    identity = await try_get_identity(request)
    if identity is None:
        return None, RedirectResponse(f"/login?next={request.url.path}", status_code=302)
    return identity, None


def _parse_priority(raw: Optional[str], default: int = 1) -> Optional[int]:
    """Return the priority as an int in 1..100, or None when it is not one."""
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        return None
    if not 1 <= value <= _MAX_PRIORITY:
        return None
    return value


def _clean_url(raw: Optional[str]) -> tuple[Optional[str], Optional[str]]:
    """Return (base_url, error). Empty input means "use the vendor default"."""
    value = (raw or "").strip()
    if not value:
        return None, None
    if not value.startswith(("https://", "http://")):
        return None, "Base URL must start with http:// or https://."
    return value.rstrip("/"), None


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def index() -> RedirectResponse:
    return RedirectResponse("/providers", status_code=302)


@router.get("/login", response_class=HTMLResponse)
async def login_form(request: Request) -> HTMLResponse:
    """Render the login page; already-authenticated users go straight to /providers."""
    if await try_get_identity(request) is not None:
        return RedirectResponse("/providers", status_code=302)
    error_msg = _ERROR_MESSAGES.get(request.query_params.get("error", ""))  # [M3]
    return templates.TemplateResponse(
        request,
        "login.html",
        {"error_msg": error_msg, "next": _safe_next(request.query_params.get("next"))},
    )


@router.post("/login", response_class=HTMLResponse)
def login_post(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    next: Optional[str] = Form(default=None),
) -> RedirectResponse:
    """Handle the login form. Success sets the access_token cookie."""
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, email, password)  # [C1] timing equalization
    if user is None:
        return RedirectResponse("/login?error=bad_credentials", status_code=302)

    resp = RedirectResponse(_safe_next(next), status_code=302)  # [C2]
    set_auth_cookie(resp, create_access_token(user))
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/logout")
async def logout(request: Request) -> RedirectResponse:
    """Revoke the cookie's token, clear the cookie and go back to /login.

    The cookie is cleared even if revocation fails; the browser session ends
    either way.
    """
    token = request.cookies.get("access_token")
    if token:
        try:
            ttl = token_remaining_seconds(decode_access_token(token))
            await TokenBlacklist(get_cache(request)).revoke(token, ttl)
        except AuthError:
            pass  # already expired or forged: nothing to revoke
        except CacheUnavailableError as exc:
            logger.warning("Web logout not recorded in revocation list: %s", exc)
    resp = RedirectResponse("/login", status_code=302)
    resp.delete_cookie("access_token")
    return resp


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


@router.get("/providers", response_class=HTMLResponse)
async def providers_page(request: Request) -> HTMLResponse:
    identity, redirect = await _require_identity(request)
    if redirect:
        return redirect
    store: ProviderStore = request.app.state.provider_store
    return templates.TemplateResponse(
        request,
        "providers.html",
        {"identity": identity, "providers": store.list_providers(identity.user_id)},
    )


@router.get("/providers/new", response_class=HTMLResponse)
async def provider_create_form(request: Request) -> HTMLResponse:
    identity, redirect = await _require_identity(request)
    if redirect:
        return redirect
    return templates.TemplateResponse(
        request,
        "provider_form.html",
        {"identity": identity, "provider": None, "vendors": VENDORS, "form_data": {}, "error": None},
    )


@router.post("/providers", response_class=HTMLResponse)
async def provider_create(
    request: Request,
    name: str = Form(default=""),
    display_name: str = Form(default=""),
    api_key: str = Form(default=""),
    base_url: Optional[str] = Form(default=None),
    priority: Optional[str] = Form(default=None),
) -> HTMLResponse:
    """Handle the add form. Redirects to /providers on success."""
    identity, redirect = await _require_identity(request)
    if redirect:
        return redirect

    form_data = {
        "name": name,
        "display_name": display_name,
        "base_url": base_url or "",
        "priority": priority or "1",
    }

    def _form_error(message: str) -> HTMLResponse:
        return templates.TemplateResponse(
            request,
            "provider_form.html",
            {"identity": identity, "provider": None, "vendors": VENDORS, "form_data": form_data, "error": message},
            status_code=400,
        )

    name_clean = name.strip().lower()
    display_clean = display_name.strip()
    key_clean = api_key.strip()
    if not name_clean or not display_clean or not key_clean:
        return _form_error("Provider type, display name and API key are required.")
    url_clean, url_error = _clean_url(base_url)
    if url_error:
        return _form_error(url_error)
    if get_vendor(name_clean) is None and url_clean is None:
        return _form_error("Custom providers need a base URL.")
    priority_value = _parse_priority(priority)
    if priority_value is None:
        return _form_error(f"Priority must be a whole number from 1 to {_MAX_PRIORITY}.")

    store: ProviderStore = request.app.state.provider_store
    provider_id = store.create_provider(
        AIProvider(
            owner_id=identity.user_id,
            name=name_clean[:50],
            display_name=display_clean[:100],
            api_key=key_clean,
            base_url=url_clean,
            priority=priority_value,
            models=default_models(name_clean),
        )
    )
    logger.info("User %s added provider %s via web", identity.user_id, provider_id)
    return RedirectResponse("/providers", status_code=303)


@router.get("/providers/{provider_id}/edit", response_class=HTMLResponse)
async def provider_edit_form(request: Request, provider_id: str) -> HTMLResponse:
    identity, redirect = await _require_identity(request)
    if redirect:
        return redirect
    store: ProviderStore = request.app.state.provider_store
    provider = store.get_provider(provider_id, identity.user_id)
    if provider is None:
        return HTMLResponse("<h1>Provider not found</h1>", status_code=404)
    form_data = {
        "name": provider.name,
        "display_name": provider.display_name,
        "base_url": provider.base_url or "",
        "priority": str(provider.priority),
    }
    return templates.TemplateResponse(
        request,
        "provider_form.html",
        {"identity": identity, "provider": provider, "vendors": VENDORS, "form_data": form_data, "error": None},
    )


@router.post("/providers/{provider_id}", response_class=HTMLResponse)
async def provider_update(
    request: Request,
    provider_id: str,
    display_name: str = Form(default=""),
    api_key: Optional[str] = Form(default=None),
    base_url: Optional[str] = Form(default=None),
    priority: Optional[str] = Form(default=None),
) -> HTMLResponse:
    """Handle the edit form. A blank API key keeps the stored one."""
    identity, redirect = await _require_identity(request)
    if redirect:
        return redirect
    store: ProviderStore = request.app.state.provider_store
    provider = store.get_provider(provider_id, identity.user_id)
    if provider is None:
        return HTMLResponse("<h1>Provider not found</h1>", status_code=404)

    form_data = {
        "name": provider.name,
        "display_name": display_name,
        "base_url": base_url or "",
        "priority": priority or "",
    }

    def _form_error(message: str) -> HTMLResponse:
        return templates.TemplateResponse(
            request,
            "provider_form.html",
            {"identity": identity, "provider": provider, "vendors": VENDORS, "form_data": form_data, "error": message},
            status_code=400,
        )

    display_clean = display_name.strip()
    if not display_clean:
        return _form_error("Display name is required.")
    url_clean, url_error = _clean_url(base_url)
    if url_error:
        return _form_error(url_error)
    priority_value = _parse_priority(priority, default=provider.priority)
    if priority_value is None:
        return _form_error(f"Priority must be a whole number from 1 to {_MAX_PRIORITY}.")

    updates: dict = {"display_name": display_clean[:100], "base_url": url_clean, "priority": priority_value}
    if api_key and api_key.strip():
        updates["api_key"] = api_key.strip()
    store.update_provider(provider_id, identity.user_id, **updates)
    return RedirectResponse("/providers", status_code=303)


@router.post("/providers/{provider_id}/delete")
async def provider_delete(request: Request, provider_id: str) -> RedirectResponse:
    identity, redirect = await _require_identity(request)
    if redirect:
        return redirect
    store: ProviderStore = request.app.state.provider_store
    if store.delete_provider(provider_id, identity.user_id):
        logger.info("User %s deleted provider %s via web", identity.user_id, provider_id)
    return RedirectResponse("/providers", status_code=303)


@router.post("/providers/{provider_id}/test", response_class=HTMLResponse)
async def provider_test_htmx(request: Request, provider_id: str) -> HTMLResponse:
    """HTMX: run the connectivity probe and return a notification fragment."""
    identity = await try_get_identity(request)
    if identity is None:
        return HTMLResponse('<div class="notification error">Session expired. Please log in again.</div>', status_code=401)
    store: ProviderStore = request.app.state.provider_store
    provider = store.get_provider(provider_id, identity.user_id)
    if provider is None:
        return HTMLResponse('<div class="notification error">Provider not found.</div>', status_code=404)
    try:
        result = await run_in_threadpool(probe_provider, provider)
    except ProviderProbeError as exc:
        return templates.TemplateResponse(
            request,
            "_notification.html",
            {"ok": False, "message": f"Connection failed: {exc}"},
        )
    return templates.TemplateResponse(
        request,
        "_notification.html",
        {"ok": True, "message": f"Connection successful! Response time: {result.response_time_ms}ms"},
    )
