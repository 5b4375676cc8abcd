"""Dream60 hourly auction scheduler."""
