from sqlalchemy import Column, String, Date, DateTime, Integer, Boolean, Text
from sqlalchemy.sql import func
from bookies.database import Base


class Member(Base):
    """A library card holder, kept by staff independently of login accounts."""

    __tablename__ = "member"

    member_id = Column(Integer, primary_key=True, autoincrement=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(50), nullable=True)
    address = Column(Text, nullable=True)
    membership_date = Column(Date, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def to_dict(self):
        return {
            "id": self.member_id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "membershipDate": self.membership_date.isoformat() if self.membership_date else None,
            "isActive": self.is_active,
        }
