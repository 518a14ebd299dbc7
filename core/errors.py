# -*- coding: utf-8 -*-


class TimerError(Exception):
    pass


class StoreError(TimerError):
    """The record store rejected an append."""


class NotificationError(TimerError):
    """A completion alert could not be scheduled."""
