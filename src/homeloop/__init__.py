"""homeloop: recurring chores and weekly contribution goals for a household."""

__version__ = "0.1.0"
