"""Maintenance scripts for AniTilky."""
