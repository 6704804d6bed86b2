"""Mentorflow: curriculum, assignment and review workflow core for buddy mentoring."""

__version__ = "1.0.0"
