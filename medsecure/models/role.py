from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    DOCTOR = "doctor"
    NURSE = "nurse"
    PATIENT = "patient"
    LAB_TECHNICIAN = "lab_technician"
    RECEPTIONIST = "receptionist"
    BILLING_STAFF = "billing_staff"
