"""Service modules of the progression core."""
