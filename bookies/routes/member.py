from fastapi import APIRouter, Depends, status
from typing import List
from sqlalchemy.orm import Session
from bookies.database import get_db
from bookies.exceptions import UnauthorizedError
from bookies.schemas.member import MemberCreate, MemberUpdate, MemberResponse
from bookies.services.auth import get_current_actor
from bookies.services.lifecycle import Actor
from bookies.services.members import MemberDirectory

router = APIRouter(prefix="/api/members", tags=["Members"])


def get_member_directory(
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
) -> MemberDirectory:
    """Member records hold personal data and are visible to administrators only."""
    if not actor.is_admin:
        raise UnauthorizedError("Only administrators can manage members")
    return MemberDirectory(db)


@router.get("", response_model=List[MemberResponse])
async def get_members(members: MemberDirectory = Depends(get_member_directory)):
    """All members, ordered by name."""
    return [MemberResponse(**m.to_dict()) for m in members.list()]

@router.get("/active", response_model=List[MemberResponse])
async def get_active_members(members: MemberDirectory = Depends(get_member_directory)):
    """Members whose card is active."""
    return [MemberResponse(**m.to_dict()) for m in members.list(active_only=True)]

@router.get("/{member_id}", response_model=MemberResponse)
async def get_member(member_id: int, members: MemberDirectory = Depends(get_member_directory)):
    return MemberResponse(**members.get(member_id).to_dict())

@router.post("", response_model=MemberResponse, status_code=status.HTTP_201_CREATED)
async def create_member(body: MemberCreate, members: MemberDirectory = Depends(get_member_directory)):
    """Register a member. The membership date defaults to today."""
    member = members.create(body.model_dump())
    return MemberResponse(**member.to_dict())

@router.put("/{member_id}", response_model=MemberResponse)
async def update_member(
    member_id: int,
    patch: MemberUpdate,
    members: MemberDirectory = Depends(get_member_directory)
):
    member = members.update(member_id, patch.model_dump(exclude_unset=True))
    return MemberResponse(**member.to_dict())

@router.delete("/{member_id}")
async def delete_member(member_id: int, members: MemberDirectory = Depends(get_member_directory)):
    members.delete(member_id)
    return {"message": "Member deleted successfully"}
