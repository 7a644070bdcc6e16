"""
api/routes/v1/users.py -- Credential lifecycle and user endpoints.

Routes:
  POST  /api/v1/users/signup                  -- create account; issues credential
  POST  /api/v1/users/login                   -- password login; issues credential
  GET   /api/v1/users/logout                  -- overwrite the jwt cookie
  POST  /api/v1/users/forgotPassword          -- mail a one-time reset link
  PATCH /api/v1/users/resetPassword/{token}   -- consume reset secret; issues credential
  PATCH /api/v1/users/updatePassword          -- change password (requires auth)
  GET   /api/v1/users/me                      -- current user (requires auth)
  GET   /api/v1/users/status                  -- current user or null (soft auth)
  GET   /api/v1/users                         -- list users (admin, superadmin)

Every route that issues a credential returns it twice: as "token" in the JSON
envelope and as the httpOnly "jwt" cookie. Those responses also carry
Cache-Control: no-store.

Failures are raised as auth.errors.AuthError subclasses and rendered by the
exception handler in api/main.py.

Security:
  POST /login and POST /forgotPassword are rate-limited per client IP.
  authenticate_user() provides timing equalization -- use it, never inline.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    ForgotPasswordRequest,
    LoginRequest,
    ResetPasswordRequest,
    SignupRequest,
    SuccessResponse,
    UpdatePasswordRequest,
    UserData,
    UserListData,
    UserResponse,
)
from auth.dependencies import get_current_user, require_roles, try_get_current_user
from auth.errors import BadCredentials
from auth.models import Role, User
from auth.passwords import change_password, register_user, request_password_reset, reset_password
from auth.store import UserStore
from auth.tokens import TokenCodec, authenticate_user, clear_auth_cookie, set_auth_cookie
from core.config import get_settings

_settings = get_settings()

# Auth policy:
# - POST  /users/signup, /users/login, /users/forgotPassword: public
# - PATCH /users/resetPassword/{token}: public, the secret is the credential
# - GET   /users/logout: public
# - GET   /users/status: soft (try_get_current_user)
# - GET   /users/me, PATCH /users/updatePassword: get_current_user
# - GET   /users: require_roles(admin, superadmin)
router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _credential_response(request: Request, user: User, token: str, status_code: int = 200) -> JSONResponse:
    codec: TokenCodec = request.app.state.codec
    body = SuccessResponse(token=token, data=UserData(user=UserResponse.from_user(user)))
    resp = JSONResponse(status_code=status_code, content=body.model_dump(mode="json", exclude_none=True))
    set_auth_cookie(resp, token, codec.config)
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _base_url(request: Request) -> str:
    return f"{request.url.scheme}://{request.url.netloc}"


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/users/signup", status_code=201)
def signup(request: Request, body: SignupRequest) -> JSONResponse:
    """Create an account with the default role and log it in."""
    user, token = register_user(
        request.app.state.user_store,
        request.app.state.codec,
        email=body.email,
        password=body.password,
        password_confirm=body.password_confirm,
        name=body.name,
    )
    return _credential_response(request, user, token, status_code=201)


@limiter.limit(_settings.login_rate_limit)
@router.post("/users/login")
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; issue a credential.

    Wrong email and wrong password produce the same 401 and message.
    """
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, body.email, body.password)
    if user is None:
        raise BadCredentials()
    return _credential_response(request, user, request.app.state.codec.issue(user))


@router.get("/users/logout")
def logout(request: Request) -> JSONResponse:
    """Overwrite the credential cookie. Bearer tokens stay valid until they expire."""
    codec: TokenCodec = request.app.state.codec
    resp = JSONResponse(content=SuccessResponse().model_dump(exclude_none=True))
    clear_auth_cookie(resp, codec.config)
    return resp


@limiter.limit(_settings.forgot_password_rate_limit)
@router.post("/users/forgotPassword")
def forgot_password(request: Request, body: ForgotPasswordRequest) -> JSONResponse:
    """Mail a one-time reset link to the account owner."""
    request_password_reset(
        request.app.state.user_store,
        request.app.state.resets,
        request.app.state.mailer,
        email=body.email,
        base_url=_base_url(request),
    )
    body_out = SuccessResponse(message="token sent to mail")
    return JSONResponse(content=body_out.model_dump(exclude_none=True))


@router.patch("/users/resetPassword/{token}")
def reset_password_route(request: Request, token: str, body: ResetPasswordRequest) -> JSONResponse:
    """Consume the reset secret from the mailed link and set a new password."""
    user, credential = reset_password(
        request.app.state.user_store,
        request.app.state.codec,
        request.app.state.resets,
        secret=token,
        new_password=body.password,
        password_confirm=body.password_confirm,
    )
    return _credential_response(request, user, credential)


@router.get("/users/status")
def login_status(request: Request) -> JSONResponse:
    """Report who is logged in without failing when nobody is."""
    user = try_get_current_user(request)
    data = UserData(user=UserResponse.from_user(user) if user else None)
    return JSONResponse(content=SuccessResponse(data=data).model_dump(mode="json"))


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/users/me")
def me(current_user: User = Depends(get_current_user)) -> JSONResponse:
    body = SuccessResponse(data=UserData(user=UserResponse.from_user(current_user)))
    return JSONResponse(content=body.model_dump(mode="json", exclude_none=True))


@router.patch("/users/updatePassword")
def update_password(
    request: Request,
    body: UpdatePasswordRequest,
    current_user: User = Depends(get_current_user),
) -> JSONResponse:
    """Change the password of the logged-in user and reissue the credential.

    Every credential issued before this call is rejected as stale afterwards.
    """
    user, token = change_password(
        request.app.state.user_store,
        request.app.state.codec,
        current_user,
        current_password=body.current_password,
        new_password=body.password,
        password_confirm=body.password_confirm,
    )
    return _credential_response(request, user, token)


# ---------------------------------------------------------------------------
# Role-restricted endpoints
# ---------------------------------------------------------------------------


@router.get("/users")
def list_users(
    request: Request,
    current_user: User = Depends(require_roles(Role.admin, Role.superadmin)),
) -> JSONResponse:
    """List all accounts. Admin and superadmin only."""
    user_store: UserStore = request.app.state.user_store
    users = [UserResponse.from_user(u) for u in user_store.list_users()]
    body = SuccessResponse(data=UserListData(users=users))
    return JSONResponse(content=body.model_dump(mode="json", exclude_none=True))
