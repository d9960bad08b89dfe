"""
Workspace remote procedures.

Each procedure runs as the account behind the bearer access token; the
caller is never a request parameter. Errors are rendered by the AppError
handler in main.py.
"""

from fastapi import APIRouter
from pydantic import BaseModel, Field

from gym_access.deps import Access, AppSettings
from gym_access.models.base import as_utc
from gym_access.services.workspaces import build_invite_link

router = APIRouter(prefix="/rpc", tags=["workspaces"])


# -------------------------------------------------------------------------
# Request models
# -------------------------------------------------------------------------

class WorkspaceRef(BaseModel):
    wid: str


class CreateInviteRequest(BaseModel):
    wid: str
    ttl_hours: int | None = Field(default=168)


class AcceptInviteRequest(BaseModel):
    invite_token: str


class InviteByEmailRequest(BaseModel):
    wid: str
    member_email: str
    member_role: str | None = "coach"


class CreateWorkspaceRequest(BaseModel):
    name: str | None = None


class RemoveMemberRequest(BaseModel):
    wid: str
    user_id: str


def _workspace_dict(workspace) -> dict:
    return {
        "id": workspace.id,
        "name": workspace.name,
        "created_by": workspace.created_by,
        "created_at": as_utc(workspace.created_at).isoformat(),
    }


# -------------------------------------------------------------------------
# Predicates
# -------------------------------------------------------------------------

@router.post("/is_workspace_member")
async def is_workspace_member(body: WorkspaceRef, access: Access):
    return {"result": await access.is_member(body.wid)}


@router.post("/is_workspace_owner")
async def is_workspace_owner(body: WorkspaceRef, access: Access):
    return {"result": await access.is_owner(body.wid)}


# -------------------------------------------------------------------------
# Workspaces and members
# -------------------------------------------------------------------------

@router.post("/create_workspace_with_owner")
async def create_workspace_with_owner(body: CreateWorkspaceRequest, access: Access):
    workspace = await access.create_workspace_with_owner(body.name)
    return {"workspace_id": workspace.id}


@router.post("/list_workspaces")
async def list_workspaces(access: Access):
    return {"workspaces": [_workspace_dict(w) for w in await access.list_workspaces()]}


@router.post("/ensure_workspace")
async def ensure_workspace(access: Access, app_settings: AppSettings):
    """Workspaces of the caller; a first one is created when there is none."""
    workspaces = await access.ensure_default_workspace(app_settings.default_workspace_name)
    return {"workspaces": [_workspace_dict(w) for w in workspaces]}


@router.post("/list_workspace_members")
async def list_workspace_members(body: WorkspaceRef, access: Access):
    members = await access.list_members(body.wid)
    return {"members": [member.to_dict() for member in members]}


@router.post("/invite_workspace_member_by_email")
async def invite_workspace_member_by_email(body: InviteByEmailRequest, access: Access):
    user_id = await access.invite_by_email(body.wid, body.member_email, body.member_role)
    return {"user_id": user_id}


@router.post("/remove_workspace_member")
async def remove_workspace_member(body: RemoveMemberRequest, access: Access):
    await access.remove_member(body.wid, body.user_id)
    return {"removed": True}


# -------------------------------------------------------------------------
# Invites
# -------------------------------------------------------------------------

@router.post("/create_workspace_invite_for_coach")
async def create_workspace_invite_for_coach(
    body: CreateInviteRequest,
    access: Access,
    app_settings: AppSettings,
):
    invite = await access.create_invite(body.wid, body.ttl_hours)
    return {
        "token": invite.token,
        "expires_at": as_utc(invite.expires_at).isoformat(),
        "link": build_invite_link(
            invite.token,
            app_settings.telegram_bot_username,
            app_settings.mini_app_url,
        ),
    }


@router.post("/accept_workspace_invite")
async def accept_workspace_invite(body: AcceptInviteRequest, access: Access):
    return {"workspace_id": await access.accept_invite(body.invite_token)}
