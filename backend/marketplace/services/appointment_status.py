# Overview: Initial booking status from the provider's auto-confirm policy.

from __future__ import annotations

STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"


def initial_booking_status(auto_confirm: bool) -> str:
    return STATUS_CONFIRMED if auto_confirm else STATUS_PENDING


class AppointmentStatusDeterminer:
    def __init__(self, settings_store):
        self.settings_store = settings_store

    def status_for(self, provider_id: int) -> str:
        return initial_booking_status(self.settings_store.auto_confirms(provider_id))
