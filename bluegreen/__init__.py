"""Blue/green deployment orchestration.

Brings a new application version up in the idle slot, gates it on health,
shifts reverse-proxy traffic across, and commits the switch atomically.
"""

__version__ = "1.0.0"
