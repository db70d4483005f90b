"""Submission judging pipeline of the coding-contest platform."""

__version__ = "0.1.0"
