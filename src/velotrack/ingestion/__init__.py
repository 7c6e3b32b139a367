"""Ingestion layer.

Turns raw broker messages into :class:`~velotrack.models.VehiclePosition`
records. Only the state store applies them to the vehicle table.
"""
