"""HTTP surface of the matchday engine."""
