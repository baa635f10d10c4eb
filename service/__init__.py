"""Process wiring and command line for the doorbell service."""
