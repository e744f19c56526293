"""sapcontact: reduced convex contact models for discrete-time multibody dynamics."""

__version__ = "0.1.0"
