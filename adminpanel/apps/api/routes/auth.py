from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from adminpanel.apps.api.deps import get_anonymous_context, get_db, get_request_context
from adminpanel.apps.api.errors import result_error
from adminpanel.apps.api.response import success_response
from adminpanel.core.context import RequestContext
from adminpanel.domain.schemas import (
    ChangePasswordRequest,
    ConfirmEmailRequest,
    ForgotPasswordRequest,
    LoginRequest,
    RefreshTokenRequest,
    RegisterRequest,
    ResetPasswordRequest,
)
from adminpanel.services.auth import authentication


router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login")
async def login(
    payload: LoginRequest,
    request: Request,
    ctx: RequestContext = Depends(get_anonymous_context),
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await authentication.login(db, ctx=ctx, username=payload.username, password=payload.password)
    if not result.ok:
        raise result_error(result)
    return success_response(request=request, data=result.data, messages=result.messages)


@router.post("/refresh")
async def refresh(
    payload: RefreshTokenRequest,
    request: Request,
    ctx: RequestContext = Depends(get_anonymous_context),
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await authentication.refresh_token(db, ctx=ctx, refresh_token=payload.refresh_token)
    if not result.ok:
        raise result_error(result)
    return success_response(request=request, data=result.data)


@router.post("/logout")
async def logout(
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await authentication.logout(db, ctx=ctx, user_id=ctx.user_id)
    return success_response(request=request, data=None, messages=result.messages)


@router.post("/forgot-password")
async def forgot_password(
    payload: ForgotPasswordRequest,
    request: Request,
    ctx: RequestContext = Depends(get_anonymous_context),
    db: AsyncSession = Depends(get_db),
) -> dict:
    # Constant response whether or not the email is registered.
    result = await authentication.forgot_password(db, ctx=ctx, email=payload.email)
    return success_response(request=request, data=None, messages=result.messages)


@router.post("/reset-password")
async def reset_password(
    payload: ResetPasswordRequest,
    request: Request,
    ctx: RequestContext = Depends(get_anonymous_context),
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await authentication.reset_password(
        db,
        ctx=ctx,
        email=payload.email,
        token=payload.token,
        new_password=payload.new_password,
        confirm_password=payload.confirm_password,
    )
    if not result.ok:
        raise result_error(result)
    return success_response(request=request, data=None, messages=result.messages)


@router.post("/register", status_code=201)
async def register(
    payload: RegisterRequest,
    request: Request,
    ctx: RequestContext = Depends(get_anonymous_context),
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await authentication.register(
        db,
        ctx=ctx,
        username=payload.username,
        email=payload.email,
        password=payload.password,
        confirm_password=payload.confirm_password,
        full_name=payload.full_name,
        phone_number=payload.phone_number,
    )
    if not result.ok:
        raise result_error(result)
    return success_response(request=request, data={"user_id": result.data}, messages=result.messages)


@router.post("/confirm-email")
async def confirm_email(
    payload: ConfirmEmailRequest,
    request: Request,
    ctx: RequestContext = Depends(get_anonymous_context),
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await authentication.confirm_email(db, ctx=ctx, email=payload.email, token=payload.token)
    if not result.ok:
        raise result_error(result)
    return success_response(request=request, data=None, messages=result.messages)


@router.post("/change-password")
async def change_password(
    payload: ChangePasswordRequest,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await authentication.change_password(
        db,
        ctx=ctx,
        user_id=ctx.user_id,
        current_password=payload.current_password,
        new_password=payload.new_password,
        confirm_password=payload.confirm_password,
    )
    if not result.ok:
        raise result_error(result)
    return success_response(request=request, data=None, messages=result.messages)
