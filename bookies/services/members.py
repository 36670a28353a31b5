import logging
from typing import Dict, List

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bookies.exceptions import ConflictError, NotFoundError
from bookies.models.member import Member
from bookies.utils.timezone import now_local

logger = logging.getLogger(__name__)

MEMBER_FIELDS = (
    "first_name",
    "last_name",
    "email",
    "phone",
    "address",
    "membership_date",
    "is_active",
)


class MemberDirectory:
    """Library members. Each write is its own transaction."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, member_id: int) -> Member:
        member = self.db.query(Member).filter(Member.member_id == member_id).first()
        if not member:
            raise NotFoundError(f"Member not found with ID: {member_id}")
        return member

    def list(self, active_only: bool = False) -> List[Member]:
        query = self.db.query(Member)
        if active_only:
            query = query.filter(Member.is_active.is_(True))
        return query.order_by(Member.last_name, Member.first_name, Member.member_id).all()

    def create(self, fields: Dict) -> Member:
        values = {k: v for k, v in fields.items() if k in MEMBER_FIELDS}
        values["email"] = values["email"].lower()
        self._check_email_free(values["email"])
        if values.get("membership_date") is None:
            values["membership_date"] = now_local().date()

        member = Member(**values)
        self.db.add(member)
        self._commit(values["email"])
        self.db.refresh(member)
        logger.info(f"Member {member.member_id} ({member.email}) added")
        return member

    def update(self, member_id: int, patch: Dict) -> Member:
        member = self.get(member_id)
        if patch.get("email"):
            patch = {**patch, "email": patch["email"].lower()}
            if patch["email"] != member.email:
                self._check_email_free(patch["email"])

        for field, value in patch.items():
            if field in MEMBER_FIELDS:
                setattr(member, field, value)
        self._commit(member.email)
        self.db.refresh(member)
        logger.info(f"Member {member_id} updated")
        return member

    def delete(self, member_id: int) -> None:
        member = self.get(member_id)
        self.db.delete(member)
        self.db.commit()
        logger.info(f"Member {member_id} deleted")

    def _check_email_free(self, email: str) -> None:
        taken = self.db.query(Member).filter(func.lower(Member.email) == email).first()
        if taken:
            raise ConflictError(f"A member with email {email} already exists")

    def _commit(self, email: str) -> None:
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError(f"A member with email {email} already exists")
