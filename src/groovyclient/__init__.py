"""
A thin client that executes a command line on an already running
groovyserver instead of starting a new runtime for each invocation.
"""

version = "0.1.0"
"""The version of this client."""
