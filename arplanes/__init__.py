"""Live flight tracking core for augmented-reality flight overlays."""

__version__ = "0.3.0"
