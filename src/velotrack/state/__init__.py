"""State/store layer.

This package owns the vehicle table and the connection state machine.
Ingested positions are only ever applied here, on the event loop that
owns the store.
"""
