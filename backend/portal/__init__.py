"""Manor community portal backend."""
