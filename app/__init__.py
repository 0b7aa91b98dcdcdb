"""
MediQueue

A FastAPI service for clinic appointment booking and live walk-in queues,
with JWT authentication, role-based access control and doctor verification.
"""

__version__ = "1.0.0"
