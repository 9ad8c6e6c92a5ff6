# backend/app.py

from typing import Optional

from fastapi import FastAPI, Request, Response, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.middleware.sessions import SessionMiddleware
from sqlalchemy.orm import Session

import httpx
from authlib.integrations.starlette_client import OAuth, OAuthError
from authlib.jose import JsonWebKey, jwt as jose_jwt
from authlib.jose.errors import JoseError

from . import config
from .auth_service import AuthService, TokenPair, user_to_dict
from .db import get_db, init_db
from .errors import UnauthorizedError, envelope, register_exception_handlers
from .links_service import LinksService, link_to_dict
from .logging_config import configure_logging, get_logger
from .metadata import MetadataResolver
from .models import User
from .schemas import (
    RegisterIn, LoginIn, RefreshIn, GoogleAuthIn, UpdateProfileIn, UpdatePasswordIn, LinkCreate,
    LinkSource,
)
from .security import current_user, set_auth_cookies, clear_auth_cookies

configure_logging()
logger = get_logger(__name__)

API = config.API_PREFIX

# ------------------------------------------------------------------------------
# FastAPI app
# ------------------------------------------------------------------------------
app = FastAPI(title=config.APP_TITLE)
app.add_middleware(SessionMiddleware, secret_key=config.SECRET_KEY, same_site="lax", https_only=config.IS_PRODUCTION)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_exception_handlers(app)

# ------------------------------------------------------------------------------
# OAuth (Google only)
# ------------------------------------------------------------------------------
oauth = OAuth()
oauth.register(
    name="google",
    server_metadata_url="https://accounts.google.com/.well-known/openid-configuration",
    client_id=config.GOOGLE_CLIENT_ID,
    client_secret=config.GOOGLE_CLIENT_SECRET,
    client_kwargs={"scope": "openid email profile"},
)
GOOGLE_ISSUERS = ["https://accounts.google.com", "accounts.google.com"]

# ------------------------------------------------------------------------------
# Dependencies
# ------------------------------------------------------------------------------
_resolver = MetadataResolver()


def get_resolver() -> MetadataResolver:
    return _resolver


def get_auth_service(db: Session = Depends(get_db)) -> AuthService:
    return AuthService(db)


def get_links_service(
    db: Session = Depends(get_db),
    resolver: MetadataResolver = Depends(get_resolver),
) -> LinksService:
    return LinksService(db, resolver)


def auth_response(message: str, user: User, tokens: TokenPair, status_code: int = 200) -> JSONResponse:
    """Envelope for login-like calls; hands the pair over in the configured transport."""
    data = {"user": user_to_dict(user)}
    if config.AUTH_TRANSPORT == "bearer":
        data["tokens"] = tokens.as_dict()
    resp = JSONResponse(envelope(True, message, data), status_code=status_code)
    if config.AUTH_TRANSPORT == "cookie":
        set_auth_cookies(resp, tokens.access_token, tokens.refresh_token)
    return resp


@app.on_event("startup")
async def on_startup():
    init_db()
    logger.info(f"{config.APP_TITLE} started (auth transport: {config.AUTH_TRANSPORT})")

# ------------------------------------------------------------------------------
# Auth routes
# ------------------------------------------------------------------------------
@app.post(f"{API}/auth/signup", status_code=201)
def signup(data: RegisterIn, auth: AuthService = Depends(get_auth_service)):
    user, tokens = auth.register(data.name, data.email, data.password)
    return auth_response("Account created successfully", user, tokens, status_code=201)


@app.post(f"{API}/auth/login")
def login(data: LoginIn, auth: AuthService = Depends(get_auth_service)):
    user, tokens = auth.login(data.email, data.password)
    return auth_response("Login successful", user, tokens)


@app.post(f"{API}/auth/token/refresh")
def refresh_token(request: Request, data: Optional[RefreshIn] = None, auth: AuthService = Depends(get_auth_service)):
    # cookie for web-style clients, body for mobile-style clients
    token = request.cookies.get(config.REFRESH_TOKEN_COOKIE) or (data.refresh_token if data else None)
    if not token:
        raise UnauthorizedError("Refresh token not provided")

    tokens = auth.refresh_token(token)
    body = envelope(True, "Token refreshed successfully")
    if config.AUTH_TRANSPORT == "bearer":
        body["data"] = {"tokens": tokens.as_dict()}
    resp = JSONResponse(body)
    if config.AUTH_TRANSPORT == "cookie":
        set_auth_cookies(resp, tokens.access_token, tokens.refresh_token)
    return resp


@app.post(f"{API}/auth/logout")
def logout(user: User = Depends(current_user), auth: AuthService = Depends(get_auth_service)):
    auth.logout(user)
    resp = JSONResponse(envelope(True, "Logout successful"))
    clear_auth_cookies(resp)
    return resp


@app.get(f"{API}/auth/me")
def me(user: User = Depends(current_user)):
    return envelope(True, "User retrieved successfully", {"user": user_to_dict(user)})


@app.put(f"{API}/auth/profile")
def update_profile(data: UpdateProfileIn, user: User = Depends(current_user), auth: AuthService = Depends(get_auth_service)):
    updated = auth.update_profile(user.id, name=data.name, avatar=data.avatar)
    return envelope(True, "Profile updated successfully", {"user": user_to_dict(updated)})


@app.put(f"{API}/auth/password")
def update_password(data: UpdatePasswordIn, user: User = Depends(current_user), auth: AuthService = Depends(get_auth_service)):
    auth.update_password(user.id, data.current_password, data.new_password)
    return envelope(True, "Password updated successfully")


def _redirect_uri_from_request(request: Request) -> str:
    # fallback to computed callback (ensure you visit the same host in your browser)
    return str(request.url_for("google_callback"))


@app.get(f"{API}/auth/google/login")
async def google_login(request: Request):
    redirect_uri = config.OAUTH_REDIRECT_URI or _redirect_uri_from_request(request)
    return await oauth.google.authorize_redirect(request, redirect_uri)


@app.get(f"{API}/auth/google/callback", name="google_callback")
async def google_callback(request: Request, auth: AuthService = Depends(get_auth_service)):
    try:
        token = await oauth.google.authorize_access_token(request)
    except OAuthError as e:
        logger.warning(f"google token exchange failed: {e.error} {e.description}")
        raise UnauthorizedError("OAuth token exchange failed")

    # authlib parses the id token into `userinfo` when openid scope is present
    userinfo = (token or {}).get("userinfo")
    if not userinfo:
        try:
            resp = await oauth.google.get("https://openidconnect.googleapis.com/v1/userinfo", token=token)
            userinfo = resp.json()
        except Exception as e:
            logger.warning(f"google userinfo fetch failed: {e!r}")
            raise UnauthorizedError("Failed to fetch Google user info")

    user, tokens = google_sign_in(auth, userinfo)
    if config.AUTH_TRANSPORT == "bearer":
        # no cookie jar on the other end, hand the pair over in the body
        return auth_response("Login successful", user, tokens)
    resp = RedirectResponse(config.OAUTH_SUCCESS_REDIRECT, status_code=302)
    set_auth_cookies(resp, tokens.access_token, tokens.refresh_token)
    return resp


async def verify_google_id_token(id_token: str) -> dict:
    """Check a Google ID token against Google's published keys and our client id."""
    jwk_set = await oauth.google.fetch_jwk_set()
    claims = jose_jwt.decode(
        id_token,
        JsonWebKey.import_key_set(jwk_set),
        claims_options={
            "iss": {"essential": True, "values": GOOGLE_ISSUERS},
            "aud": {"essential": True, "value": config.GOOGLE_CLIENT_ID},
        },
    )
    claims.validate()
    return dict(claims)


@app.post(f"{API}/auth/google")
async def google_id_token_login(data: GoogleAuthIn, auth: AuthService = Depends(get_auth_service)):
    """Sign-in for native clients that already hold a Google ID token."""
    try:
        claims = await verify_google_id_token(data.id_token)
    except JoseError as e:
        logger.info(f"google id token rejected: {e}")
        raise UnauthorizedError("Invalid Google token")
    except httpx.HTTPError as e:
        logger.warning(f"google key fetch failed: {e!r}")
        raise UnauthorizedError("Could not verify Google token")

    user, tokens = google_sign_in(auth, claims)
    return auth_response("Login successful", user, tokens)


def google_sign_in(auth: AuthService, userinfo: dict):
    if not userinfo.get("sub") or not userinfo.get("email"):
        raise UnauthorizedError("Google account has no email")
    # an unverified address must not be linked to an existing account
    if userinfo.get("email_verified") is False:
        raise UnauthorizedError("Google email is not verified")
    return auth.oauth_login(
        "google",
        str(userinfo["sub"]),
        userinfo["email"],
        name=userinfo.get("name") or "",
        avatar=userinfo.get("picture"),
    )

# ------------------------------------------------------------------------------
# Links
# ------------------------------------------------------------------------------
@app.post(f"{API}/links", status_code=201)
async def create_link(
    data: LinkCreate,
    user: User = Depends(current_user),
    links: LinksService = Depends(get_links_service),
):
    link = await links.create(
        user.id,
        data.url,
        source=data.source,
        title=data.title,
        category=data.category,
        thumbnail_url=data.thumbnail_url,
    )
    return envelope(True, "Link saved successfully", link_to_dict(link))


@app.get(f"{API}/links")
async def list_links(
    search: Optional[str] = None,
    source: Optional[LinkSource] = None,
    category: Optional[str] = None,
    user: User = Depends(current_user),
    links: LinksService = Depends(get_links_service),
):
    rows = await links.list(user.id, search=search, source=source, category=category)
    return envelope(True, "Links retrieved successfully", [link_to_dict(l) for l in rows])

# Health
@app.get("/health")
def health():
    return {"ok": True}
