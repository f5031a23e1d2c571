"""
wsprep - Workstation provisioning for macOS, Ubuntu and Arch Linux
"""

__version__ = "0.5.0"
__author__ = "Fletcher Nichol"
__email__ = "fnichol@nichol.ca"

from .core import Provisioner
from .errors import PrepError

__all__ = ["Provisioner", "PrepError"]
