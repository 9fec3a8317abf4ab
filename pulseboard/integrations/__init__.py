# pulseboard/integrations/__init__.py
"""
External service integrations for Pulseboard.
"""
