"""Booking pipeline services.

Import the concrete modules (``quote_services``, ``booking_services``,
``sync_services``, ``alert_services``) directly.
"""
