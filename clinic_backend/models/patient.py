"""Patient model definitions."""

from sqlalchemy import Column, ForeignKey, Integer, String

from clinic_backend.database import Base


class Patient(Base):
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False)
    full_name = Column(String, nullable=False)
    phone = Column(String, nullable=False)
