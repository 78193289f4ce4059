"""
#WHERE
    Imported by pipeline.py, main.py, the pairwise engine and tests.

#WHAT
    Animation data model and the MoCapSim text-format loader.
"""

from .loader import MocapLoader
from .models import Animation, MocapAnimation

__all__ = ["Animation", "MocapAnimation", "MocapLoader"]
