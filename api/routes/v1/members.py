"""
api/routes/v1/members.py -- Local account and credential endpoints.

Routes:
  POST   /api/v1/members/join         -- local registration
  POST   /api/v1/members/login        -- password login; sets accessToken + apiKey cookies
  DELETE /api/v1/members/logout       -- clears both cookies
  GET    /api/v1/members/me           -- current member
  POST   /api/v1/members/me/api-key   -- rotate the API key; re-sets both cookies
  DELETE /api/v1/members/{id}         -- delete a member (admin only)

Access rules live in the policy table (auth/policy.py DEFAULT_RULES); the
Depends() guards here repeat them so a handler is never reachable anonymously
even under a permissive table.

Security:
  POST /login is rate-limited per IP (LOGIN_RATE_LIMIT).
  authenticate_member() provides timing equalization -- use it, never inline.
  Cache-Control: no-store on responses that carry credentials.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import IntegrityError

from api.envelope import envelope_response, error_response
from api.limiter import limiter
from api.models import ApiKeyResult, JoinRequest, LoginRequest, LoginResult, MemberDto
from auth.dependencies import current_member, require_admin
from auth.directory import MemberDirectory
from auth.models import ROLE_USER, Member
from auth.tokens import (
    authenticate_member,
    clear_credential_cookies,
    generate_api_key,
    hash_password,
    set_credential_cookies,
)
from core.config import get_settings

logger = logging.getLogger("gatekeeper.api.members")

router = APIRouter()


@router.post("/members/join", status_code=201)
async def join(request: Request, body: JoinRequest):
    """Register a local member with the USER role."""
    directory: MemberDirectory = request.app.state.member_directory
    member = Member(
        username=body.username,
        nickname=body.nickname,
        hashed_password=hash_password(body.password),
        api_key=generate_api_key(),
        roles=frozenset({ROLE_USER}),
    )
    try:
        member_id = directory.store.create_member(member)
    except IntegrityError as exc:
        raise HTTPException(status_code=409, detail="That username is already taken.") from exc

    created = directory.find_by_internal_key(member_id)
    logger.info("Member %d joined", member_id)
    return envelope_response(
        201,
        "201-1",
        f"Welcome, {created.nickname}.",
        MemberDto.from_member(created).model_dump(),
    )


@limiter.limit(get_settings().login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/members/login")
def login(request: Request, body: LoginRequest):
    """Authenticate with username and password; set both credential cookies.

    Wrong username and wrong password produce the same response so username
    existence is not leaked.
    """
    directory: MemberDirectory = request.app.state.member_directory
    member = authenticate_member(directory.store, body.username, body.password)
    if member is None:
        resp = error_response(401, message="Invalid username or password.")
        resp.headers["Cache-Control"] = "no-store"
        return resp

    access_token, api_key = directory.issue_credential(member)
    result = LoginResult(item=MemberDto.from_member(member), api_key=api_key, access_token=access_token)
    resp = envelope_response(200, "200-1", f"Welcome back, {member.nickname}.", result.model_dump(by_alias=True))
    set_credential_cookies(resp, access_token, api_key)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.delete("/members/logout")
async def logout():
    """Clear both credential cookies. Access credentials stay valid until expiry."""
    resp = envelope_response(200, "200-1", "Logged out.")
    clear_credential_cookies(resp)
    return resp


@router.get("/members/me")
async def me(member: Member = Depends(current_member)):
    return envelope_response(200, "200-1", "OK", MemberDto.from_member(member).model_dump())


@router.post("/members/me/api-key")
async def rotate_api_key(request: Request, member: Member = Depends(current_member)):
    """Replace the caller's API key. The previous key stops working immediately."""
    directory: MemberDirectory = request.app.state.member_directory
    new_key = directory.rotate_api_key(member)
    access_token, _ = directory.issue_credential(member)
    logger.info("Member %d rotated API key", member.id)
    resp = envelope_response(200, "200-1", "API key rotated.", ApiKeyResult(api_key=new_key).model_dump(by_alias=True))
    set_credential_cookies(resp, access_token, new_key)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.delete("/members/{member_id}")
async def delete_member(request: Request, member_id: int, admin: Member = Depends(require_admin)):
    """Delete a member. Its outstanding credentials stop resolving at once."""
    if member_id == admin.id:
        raise HTTPException(status_code=400, detail="You cannot delete your own account.")
    directory: MemberDirectory = request.app.state.member_directory
    if not directory.store.delete_member(member_id):
        raise HTTPException(status_code=404, detail="Member not found.")
    logger.info("Admin %d deleted member %d", admin.id, member_id)
    return envelope_response(200, "200-1", "Member deleted.")
