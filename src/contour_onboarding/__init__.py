"""Contour onboarding agent: a tool-mediated stakeholder interview that builds an enterprise contour map."""

__version__ = "0.1.0"
