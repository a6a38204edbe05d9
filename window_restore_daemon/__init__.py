"""
Window Restore Daemon

Remembers where windows lived on external displays and puts them back after
the display disconnects, sleeps or flickers.
"""

__version__ = "1.0.0"
__author__ = "NixOS Configuration Team"
