# Models package
from gym_access.db import Base
from gym_access.models.account import Account, TelegramIdentity
from gym_access.models.workspace import Workspace
from gym_access.models.membership import Membership, MembershipRole, role_rank
from gym_access.models.workspace_invite import InviteState, WorkspaceInvite

__all__ = [
    "Base",
    "Account",
    "TelegramIdentity",
    "Workspace",
    "Membership",
    "MembershipRole",
    "role_rank",
    "InviteState",
    "WorkspaceInvite",
]
