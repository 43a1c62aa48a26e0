"""Utility helpers for the tracker mirror."""
