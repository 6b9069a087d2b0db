"""Bulk transfer pipeline, job tracking and history."""
