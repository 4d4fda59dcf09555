"""VoiceTrigger - real-time spoken trigger phrase alerts."""

__version__ = "0.1.0"
