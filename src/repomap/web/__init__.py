"""HTTP surface for repomap."""
