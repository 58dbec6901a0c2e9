"""User and clinic membership model definitions."""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, UniqueConstraint

from clinic_backend.database import Base


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True)
    hashed_password = Column(String)
    role = Column(String, nullable=False, default="USER")  # ADMIN/USER
    is_active = Column(Boolean, nullable=False, default=True)


class ClinicUser(Base):
    """Membership of a user in a clinic with a clinic-scoped role."""
    __tablename__ = "clinic_users"
    __table_args__ = (UniqueConstraint("clinic_id", "user_id", name="uq_clinic_users_clinic_user"),)

    id = Column(Integer, primary_key=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String, nullable=False)  # CLINIC_MANAGER/CLINIC_STAFF/CLINIC_DOCTOR
    is_active = Column(Boolean, nullable=False, default=True)
