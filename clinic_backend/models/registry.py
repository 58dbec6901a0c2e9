"""Import every model module so string-based relationships resolve on first use."""

from clinic_backend.models import appointment, clinic, doctor, patient, schedule, slot, user  # noqa: F401

MODEL_MODULES = (appointment, clinic, doctor, patient, schedule, slot, user)
