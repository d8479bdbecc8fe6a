"""
qtrack.commands - CLI command implementations
"""
