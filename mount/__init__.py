"""
Mount module - wires record attributes to uploaders.

Mountable (plain records) and MountableModel (SQLModel tables) install the
attribute accessors; Mounter is the per-attribute lifecycle controller
behind them.
"""

from mount.extension import Mountable, MountError
from mount.mounter import Mounter
from mount.orm import MountableModel

__all__ = ["Mountable", "MountableModel", "MountError", "Mounter"]
