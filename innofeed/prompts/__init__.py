"""Prompt builders for every structured generation call."""
