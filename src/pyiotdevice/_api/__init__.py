"""Control-plane endpoint modules."""
