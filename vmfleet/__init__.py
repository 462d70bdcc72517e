"""
vmfleet - bulk power control for vCenter-managed virtual machines.
"""

__version__ = "0.1.0"
