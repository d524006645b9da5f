"""
smbridge CLI - Command-line interface for bridge control.

Usage:
    smbridge-cli update-mapping config/mapping.yaml
    smbridge-cli status
    smbridge-cli help
"""

__version__ = "1.0.0"
