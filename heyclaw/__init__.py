"""
heyclaw - Heychat bridge for agent messaging runtimes.
"""

__version__ = "0.1.0"
__logo__ = "📦"
