"""
Fleet Server module.

FastAPI application hosting the build scheduler and exposing its state and
operator actions over HTTP.
"""
