"""Personal task manager backend with a reminder scheduling engine."""
