"""Step orchestration and the signal pipeline facade."""
