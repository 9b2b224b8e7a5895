"""worldvar — reconcile generator-authored variable updates with a state authority."""

__version__ = "0.1.0"
