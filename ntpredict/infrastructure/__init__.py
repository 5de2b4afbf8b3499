"""
Infrastructure package for the NTP prediction pipeline.

This package contains infrastructure components including data access, logging,
command line configuration, the worker pool, and other cross-cutting concerns.
"""
