"""
Services module for backend business logic
"""

from .audio_converter import AudioConverter, AudioFormat, ConversionResult
from .metadata_prober import MetadataProber
from .process_runner import ProcessRunner

__all__ = ["AudioConverter", "AudioFormat", "ConversionResult", "MetadataProber", "ProcessRunner"]
