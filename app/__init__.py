"""
Clinic Scheduling API

A FastAPI backend for multi-tenant clinics: patients, appointments and
role/clinic-scoped authorization on top of an external identity provider.
"""

__version__ = "1.0.0"
