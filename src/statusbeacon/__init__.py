"""statusbeacon - background status monitor for developer workstations."""

__version__ = "0.3.0"
