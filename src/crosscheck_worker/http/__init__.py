"""HTTP helpers for submission downloads."""
