"""
edudash/api/invitations.py
FastAPI routes for school invitation codes and teacher invitations.
"""

from typing import Annotated, List

from fastapi import APIRouter, Header, Response

from edudash.core.errors import NotFoundError
from edudash.features.invitations.service import (
    cleanup_expired_invitations,
    create_school_code,
    deactivate_codes,
    delete_teacher_invitation as service_delete_teacher_invitation,
    get_active_code,
    invite_teacher as service_invite_teacher,
    list_teacher_invitations,
    redeem_code,
    revoke_invitation as service_revoke_invitation,
)
from edudash.features.users.service import require_school_staff
from edudash.models.invitation import (
    CreateSchoolCodeRequest,
    InvitationType,
    InviteTeacherRequest,
    Redemption,
    RedeemCodeRequest,
    SchoolInvitationCode,
    TeacherInvitation,
)

router = APIRouter(prefix="/api", tags=["invitations"])


@router.post("/schools/{preschool_id}/invitation-code", response_model=SchoolInvitationCode, status_code=201)
def create_invitation_code(
    preschool_id: str,
    body: CreateSchoolCodeRequest,
    user_id: Annotated[str, Header(alias="X-User-Id")],
):
    """Replace the school's active code of this type with a fresh one."""
    require_school_staff(user_id, preschool_id)
    return create_school_code(
        preschool_id,
        user_id,
        invitation_type=body.invitation_type,
        description=body.description,
        max_uses=body.max_uses,
        expiry_days=body.expiry_days,
        invited_email=body.invited_email,
    )


@router.get("/schools/{preschool_id}/invitation-code", response_model=SchoolInvitationCode)
def get_invitation_code(
    preschool_id: str,
    user_id: Annotated[str, Header(alias="X-User-Id")],
    invitation_type: InvitationType = InvitationType.PARENT,
):
    require_school_staff(user_id, preschool_id)
    code = get_active_code(preschool_id, invitation_type)
    if code is None:
        raise NotFoundError("No active invitation code")
    return code


@router.delete("/schools/{preschool_id}/invitation-code")
def deactivate_invitation_code(
    preschool_id: str,
    user_id: Annotated[str, Header(alias="X-User-Id")],
    invitation_type: InvitationType = InvitationType.PARENT,
):
    require_school_staff(user_id, preschool_id)
    return {"deactivated": deactivate_codes(preschool_id, invitation_type)}


@router.post("/schools/{preschool_id}/teacher-invitations", response_model=TeacherInvitation, status_code=201)
def invite_teacher(
    preschool_id: str,
    body: InviteTeacherRequest,
    user_id: Annotated[str, Header(alias="X-User-Id")],
):
    require_school_staff(user_id, preschool_id)
    return service_invite_teacher(preschool_id, user_id, body.email, body.name)


@router.get("/schools/{preschool_id}/teacher-invitations", response_model=List[TeacherInvitation])
def get_teacher_invitations(
    preschool_id: str,
    user_id: Annotated[str, Header(alias="X-User-Id")],
):
    require_school_staff(user_id, preschool_id)
    return list_teacher_invitations(preschool_id)


@router.post(
    "/schools/{preschool_id}/teacher-invitations/{invitation_id}/revoke",
    response_model=TeacherInvitation,
)
def revoke_invitation(
    preschool_id: str,
    invitation_id: str,
    user_id: Annotated[str, Header(alias="X-User-Id")],
):
    require_school_staff(user_id, preschool_id)
    return service_revoke_invitation(invitation_id, preschool_id)


@router.delete("/schools/{preschool_id}/teacher-invitations/{invitation_id}", status_code=204)
def delete_teacher_invitation(
    preschool_id: str,
    invitation_id: str,
    user_id: Annotated[str, Header(alias="X-User-Id")],
):
    require_school_staff(user_id, preschool_id)
    service_delete_teacher_invitation(invitation_id, preschool_id)
    return Response(status_code=204)


@router.post("/schools/{preschool_id}/teacher-invitations/cleanup")
def cleanup_teacher_invitations(
    preschool_id: str,
    user_id: Annotated[str, Header(alias="X-User-Id")],
):
    """Drop teacher invitations that expired unused."""
    require_school_staff(user_id, preschool_id)
    return {"removed": cleanup_expired_invitations(preschool_id)}


@router.post("/invitations/redeem", response_model=Redemption)
def redeem_invitation(
    body: RedeemCodeRequest,
    user_id: Annotated[str, Header(alias="X-User-Id")],
):
    """Join a school with a code; the caller's profile takes the code's role."""
    return redeem_code(body.code, body.email, user_id, name=body.name)
