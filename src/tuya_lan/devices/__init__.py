"""Light capability surface, state normalization, heartbeat and discovery."""
