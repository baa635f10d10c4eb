"""
Core doorbell logic.

Event model, thread-to-loop channels, the event coordinator and the
adapters it drives (cue playback, webhook notifications, MQTT).
No process wiring here - see service.app.
"""
