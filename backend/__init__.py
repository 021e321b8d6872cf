"""
SkyRelay backend: shared-poll broadcast service and its WebSocket hub.
"""
