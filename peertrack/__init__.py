"""
peertrack: crash recovery and download health monitoring for a peer-to-peer
music download client.
"""

__version__ = "0.3.0"
