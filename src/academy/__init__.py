"""Curriculum progress tracking, completion gating and credential eligibility."""
