"""
Provides methods for checking that recovered media files are decodable audio.
"""

import asyncio
import logging
import os
from pathlib import Path

import mutagen
from mutagen.flac import FLAC, FLACNoHeaderError
from mutagen.mp3 import MP3, HeaderNotFoundError

log = logging.getLogger(__name__)


class FileIntegrityChecker:
    """A collection of static methods for validating media file integrity."""

    @staticmethod
    def check_flac(filepath: str) -> bool:
        """
        Performs a basic integrity check on a FLAC file.

        Checks if the file can be opened by mutagen and has valid stream info.
        """
        try:
            audio = FLAC(filepath)
            if audio.info and audio.info.length > 0:
                return True
            log.warning(
                f"FLAC integrity check failed for '{filepath}': No valid stream info."
            )
            return False
        except FLACNoHeaderError:
            log.warning(
                f"FLAC integrity check failed for '{filepath}': Missing FLAC header."
            )
            return False
        except Exception as e:
            log.debug(f"FLAC check failed for '{filepath}' with unexpected error: {e}")
            return False

    @staticmethod
    def check_mp3(filepath: str) -> bool:
        """
        Performs a basic integrity check on an MP3 file.

        Checks if the file can be opened by mutagen and has valid stream info.
        """
        try:
            audio = MP3(filepath)
            if audio.info and audio.info.length > 0:
                return True
            log.warning(
                f"MP3 integrity check failed for '{filepath}': No valid stream info."
            )
            return False
        except HeaderNotFoundError:
            log.warning(
                f"MP3 integrity check failed for '{filepath}': Missing MP3 header."
            )
            return False
        except Exception as e:
            log.debug(f"MP3 check failed for '{filepath}' with unexpected error: {e}")
            return False

    @staticmethod
    def check_audio(filepath: str, expected_ext: str | None = None) -> bool:
        """
        Validates a file of any supported format.

        Partial downloads carry a temporary suffix, so the expected extension (from
        the final path) picks the strict FLAC/MP3 checks; anything else is sniffed
        from the file contents.

        Args:
            filepath: Path to the audio file.
            expected_ext: Extension of the file's final name, with or without dot.

        Returns:
            True if the file parses as audio with a positive duration.
        """
        ext = (expected_ext or os.path.splitext(filepath)[1]).lower().lstrip(".")
        if ext == "flac":
            return FileIntegrityChecker.check_flac(filepath)
        if ext == "mp3":
            return FileIntegrityChecker.check_mp3(filepath)

        try:
            audio = mutagen.File(filepath)
        except mutagen.MutagenError as e:
            log.warning(f"Integrity check failed for '{filepath}': {e}")
            return False
        except Exception as e:
            log.debug(f"Audio check failed for '{filepath}' with unexpected error: {e}")
            return False

        if audio is None:
            log.warning(f"Integrity check failed for '{filepath}': Unknown format.")
            return False
        if audio.info and getattr(audio.info, "length", 0) > 0:
            return True
        log.warning(
            f"Integrity check failed for '{filepath}': No valid stream info."
        )
        return False


async def verify_audio_format(path: Path | str, expected_ext: str | None = None) -> bool:
    """Runs the integrity check on a worker thread."""
    return await asyncio.to_thread(
        FileIntegrityChecker.check_audio, str(path), expected_ext
    )
