"""ejectctl - Safely eject removable volumes held open by other processes."""

__version__ = "0.1.0"
