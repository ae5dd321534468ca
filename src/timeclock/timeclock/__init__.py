"""Workforce time clock package.

This package is organized by feature modules (entries, users, storage, session, ...)
with a thin command line layer on top of async service/repository layers.
"""
