"""
taskflow - task reminder scheduling and delivery
"""

__version__ = "0.1.0"
__logo__ = "🔔"
