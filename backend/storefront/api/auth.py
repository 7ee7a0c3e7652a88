"""Auth: register, verify email, login, Google login, logout, refresh, password reset, 2FA."""

import logging
import secrets
from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import RedirectResponse

from storefront.api.cookies import (
    OAUTH_STATE_COOKIE,
    PASSWORD_RESET_COOKIE,
    REFRESH_COOKIE,
    VERIFY_EMAIL_COOKIE,
    expire_cookie,
    expire_session_cookies,
    set_action_cookie,
    set_oauth_state_cookie,
    set_session_cookies,
)
from storefront.api.deps import get_auth_flow, get_current_user, get_protected_user
from storefront.core.errors import UnauthorizedError
from storefront.core.security import constant_time_equals
from storefront.core.session import ACCESS_COOKIE
from storefront.schemas.auth import (
    CurrentUser,
    ForgotPasswordBody,
    LoginBody,
    LoginResponse,
    MessageResponse,
    RefreshResponse,
    RegisterBody,
    ResetPasswordBody,
    SecondEmailBody,
    SecondFactorVerifyBody,
    UsernameResponse,
)
from storefront.services.auth_flow import AuthFlow
from storefront.services.google_oauth import GoogleOAuthClient, get_google_oauth

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])

Flow = Annotated[AuthFlow, Depends(get_auth_flow)]
ProtectedUser = Annotated[CurrentUser, Depends(get_protected_user)]


@router.post(
    "/register",
    response_model=UsernameResponse,
    status_code=201,
    summary="Register a new user",
    responses={400: {"description": "Invalid input"}, 409: {"description": "Email already registered"}},
)
async def register(body: RegisterBody, response: Response, flow: Flow) -> UsernameResponse:
    """Create the account, log it in and email a verification link."""
    result = await flow.register(body)
    set_action_cookie(response, VERIFY_EMAIL_COOKIE, result.verify_email_token)
    set_session_cookies(response, result.tokens)
    return UsernameResponse(username=result.user.username)


@router.get(
    "/verify-email",
    response_model=MessageResponse,
    summary="Consume an email verification token",
    responses={400: {"description": "No token provided"}, 404: {"description": "Invalid or expired token"}},
)
async def verify_email(response: Response, flow: Flow, token: str | None = None) -> MessageResponse:
    await flow.verify_email(token)
    expire_cookie(response, VERIFY_EMAIL_COOKIE)
    return MessageResponse(message="Email verified successfully")


@router.post(
    "/login",
    response_model=LoginResponse,
    response_model_exclude_none=True,
    summary="Login with email and password",
    responses={401: {"description": "Invalid email or password"}},
)
async def login(body: LoginBody, response: Response, flow: Flow) -> LoginResponse:
    result = await flow.login(body.email, body.password)
    set_session_cookies(response, result.tokens)
    return LoginResponse(
        username=result.user.username,
        csrf_token=result.tokens.csrf_token,
        requires_second_factor=True if result.requires_second_factor else None,
    )


@router.get("/google", summary="Start Google login", response_class=RedirectResponse)
async def google_login(
    oauth: Annotated[GoogleOAuthClient, Depends(get_google_oauth)],
) -> RedirectResponse:
    state = secrets.token_urlsafe(32)
    redirect = RedirectResponse(oauth.authorization_url(state), status_code=302)
    set_oauth_state_cookie(redirect, state)
    return redirect


@router.get(
    "/google/redirect",
    response_model=LoginResponse,
    response_model_exclude_none=True,
    summary="Finish Google login",
    responses={401: {"description": "Authentication failed"}},
)
async def google_redirect(
    request: Request,
    response: Response,
    flow: Flow,
    oauth: Annotated[GoogleOAuthClient, Depends(get_google_oauth)],
    code: str | None = None,
    state: str | None = None,
) -> LoginResponse:
    expected_state = request.cookies.get(OAUTH_STATE_COOKIE)
    if not code or not state or not expected_state or not constant_time_equals(state, expected_state):
        raise UnauthorizedError("Authentication failed")
    profile = await oauth.fetch_profile(code)
    result = await flow.federated_login(profile)
    expire_cookie(response, OAUTH_STATE_COOKIE)
    set_session_cookies(response, result.tokens)
    return LoginResponse(username=result.user.username, csrf_token=result.tokens.csrf_token)


@router.get(
    "/me",
    response_model=CurrentUser,
    summary="Get current authenticated user",
    responses={401: {"description": "Not authenticated or invalid token"}},
)
async def me(user: Annotated[CurrentUser, Depends(get_current_user)]) -> CurrentUser:
    return user


@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="Revoke the current session",
    responses={401: {"description": "Not authenticated"}, 403: {"description": "CSRF token validation failed"}},
)
async def logout(request: Request, response: Response, user: ProtectedUser, flow: Flow) -> MessageResponse:
    await flow.logout(
        user,
        refresh_token=request.cookies.get(REFRESH_COOKIE),
        access_token=request.cookies.get(ACCESS_COOKIE),
    )
    expire_session_cookies(response)
    return MessageResponse(message="Logout successful")


@router.post(
    "/refresh",
    response_model=RefreshResponse,
    summary="Rotate refresh token and issue new access and CSRF tokens",
    responses={
        401: {"description": "Refresh token required"},
        403: {"description": "Refresh token revoked, unknown or invalid"},
        404: {"description": "User not found"},
    },
)
async def refresh_tokens(request: Request, response: Response, flow: Flow) -> RefreshResponse:
    tokens = await flow.refresh(request.cookies.get(REFRESH_COOKIE))
    set_session_cookies(response, tokens)
    return RefreshResponse(csrf_token=tokens.csrf_token)


@router.post(
    "/forgot-password",
    response_model=MessageResponse,
    summary="Email a password reset code",
)
async def forgot_password(body: ForgotPasswordBody, response: Response, flow: Flow) -> MessageResponse:
    action_token = await flow.forgot_password(body.email)
    if action_token:
        set_action_cookie(response, PASSWORD_RESET_COOKIE, action_token)
    return MessageResponse(message="If your email is registered, you will receive a password reset code")


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    summary="Set a new password with the emailed reset code",
    responses={400: {"description": "Missing fields or weak password"}, 401: {"description": "Invalid reset code"}},
)
async def reset_password(
    body: ResetPasswordBody, request: Request, response: Response, flow: Flow
) -> MessageResponse:
    await flow.reset_password(
        reset_code=body.reset_code,
        new_password=body.new_password,
        email=body.email,
        action_token=request.cookies.get(PASSWORD_RESET_COOKIE),
    )
    expire_cookie(response, PASSWORD_RESET_COOKIE)
    return MessageResponse(message="Password successfully reset")


@router.post("/2fa/addEmail", response_model=MessageResponse, summary="Attach a second email")
async def add_second_email(body: SecondEmailBody, user: ProtectedUser, flow: Flow) -> MessageResponse:
    await flow.add_second_email(user, body.second_email)
    return MessageResponse(message="Email added successfully")


@router.post(
    "/2fa/email/request",
    response_model=MessageResponse,
    summary="Send a second-factor code to the second email",
    responses={400: {"description": "Second email is not set"}},
)
async def request_second_factor(user: ProtectedUser, flow: Flow) -> MessageResponse:
    await flow.request_second_factor(user)
    return MessageResponse(message="Verification code sent to email.")


@router.post(
    "/2fa/email/verify",
    response_model=MessageResponse,
    summary="Verify a second-factor code",
    responses={400: {"description": "No code pending"}, 401: {"description": "Invalid or expired code"}},
)
async def verify_second_factor(
    body: SecondFactorVerifyBody, user: ProtectedUser, flow: Flow
) -> MessageResponse:
    await flow.verify_second_factor(user, body.code)
    return MessageResponse(message="2FA verification successful")
