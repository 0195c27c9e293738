"""
Fleet Client module.

HTTP client and command-line interface for the build scheduler API.
"""
