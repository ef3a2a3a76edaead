"""
Switchboard: a telephony-to-realtime-voice bridge that routes each call
between specialist personas.
"""

__version__ = "0.4.0"
