"""Hospital billing and double-entry accounting core."""
