"""
Media Processing Layer.

This package is responsible for media file validation during recovery.
"""

from .integrity import FileIntegrityChecker, verify_audio_format

__all__ = ["FileIntegrityChecker", "verify_audio_format"]
