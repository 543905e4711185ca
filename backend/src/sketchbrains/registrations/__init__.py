"""Event registrations."""

from sketchbrains.registrations.service import RegistrationService

__all__ = ["RegistrationService"]
