"""SessionWatch: live view of assistant sessions from transcripts and hooks."""

__version__ = "0.1.0"
