"""MoCapSim — motion-capture similarity via Dice-compared voxel descriptors."""

__version__ = "0.1.0"
